# autowebinar_app/errors.py
# -*- coding: utf-8 -*-
from __future__ import annotations
from flask import current_app, jsonify


class CheckoutError(Exception):
    """Erro de domínio com status HTTP associado."""
    status_code = 400

    def __init__(self, message: str, status_code: int | None = None, payload: dict | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.payload = payload or {}

    def to_dict(self) -> dict:
        data = dict(self.payload)
        data["error"] = self.message
        return data


class ValidationError(CheckoutError):
    status_code = 400

    def __init__(self, message: str, fields: dict | None = None):
        super().__init__(message, payload={"fields": fields} if fields else None)
        self.fields = fields or {}


class AuthError(CheckoutError):
    status_code = 401


class ForbiddenError(CheckoutError):
    status_code = 403


class NotFoundError(CheckoutError):
    status_code = 404


class ConflictError(CheckoutError):
    status_code = 409


class InvalidTransitionError(ConflictError):
    pass


class GatewayError(CheckoutError):
    """Falha no gateway (rede, recusa, resposta inválida)."""
    status_code = 502

    def __init__(self, message: str = "Não foi possível comunicar com o gateway de pagamento. Tente novamente.",
                 status_code: int | None = None, payload: dict | None = None, code: str | None = None):
        super().__init__(message, status_code=status_code, payload=payload)
        self.code = code


def register_error_handlers(app):
    @app.errorhandler(CheckoutError)
    def _checkout_error(err: CheckoutError):
        if err.status_code >= 500:
            current_app.logger.warning("%s: %s", type(err).__name__, err.message)
        return jsonify(err.to_dict()), err.status_code
