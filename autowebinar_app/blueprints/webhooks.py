# autowebinar_app/blueprints/webhooks.py
# -*- coding: utf-8 -*-
from __future__ import annotations
from flask import Blueprint, request, jsonify, current_app

from ..extensions import db
from ..services.webhook_service import handle_webhook

bp = Blueprint("webhooks", __name__, url_prefix="/webhook")


def _receive(gateway_name: str):
    # sempre 200: o gateway reenvia o que não for confirmado e a reentrega é idempotente
    payload = request.get_data()
    try:
        result = handle_webhook(gateway_name, payload, request.headers)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("[webhook] erro processando evento %s", gateway_name)
        result = "error"
    return jsonify(received=True, result=result)


@bp.route("/mercadopago", methods=["POST"])
def mercadopago():
    return _receive("mercadopago")


@bp.route("/stripe", methods=["POST"])
def stripe_webhook():
    return _receive("stripe")
