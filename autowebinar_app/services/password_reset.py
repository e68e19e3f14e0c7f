# autowebinar_app/services/password_reset.py
# -*- coding: utf-8 -*-
"""
Definição/redefinição de senha por link assinado (itsdangerous).

O token carrega o id do admin e uma impressão do hash atual da senha: depois
de usado (senha trocada) ele deixa de valer.
"""
from __future__ import annotations
import hashlib

from flask import current_app
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from ..errors import ValidationError
from ..extensions import db
from ..models import Admin
from .mailer import send_email

SALT = "password-reset"
MIN_PASSWORD_LENGTH = 8


def _serializer() -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(current_app.config["SECRET_KEY"], salt=SALT)


def _fingerprint(admin: Admin) -> str:
    return hashlib.sha256((admin.password_hash or "").encode("utf-8")).hexdigest()[:16]


def make_reset_token(admin: Admin) -> str:
    return _serializer().dumps({"id": admin.id, "fp": _fingerprint(admin)})


def reset_link(admin: Admin) -> str:
    return current_app.config["APP_URL"].rstrip("/") + f"/redefinir-senha?token={make_reset_token(admin)}"


def load_reset_token(token: str) -> Admin:
    try:
        data = _serializer().loads(token or "", max_age=current_app.config.get("PASSWORD_RESET_MAX_AGE", 86400))
    except SignatureExpired:
        raise ValidationError("Link expirado. Solicite uma nova redefinição de senha.")
    except BadSignature:
        raise ValidationError("Link de redefinição inválido.")

    admin = db.session.get(Admin, data.get("id")) if isinstance(data, dict) else None
    if admin is None or data.get("fp") != _fingerprint(admin):
        raise ValidationError("Link de redefinição inválido ou já utilizado.")
    return admin


def request_password_reset(email: str) -> bool:
    """Envia o link quando a conta existe. A resposta HTTP é a mesma nos dois casos."""
    email = (email or "").strip().lower()
    admin = Admin.query.filter_by(email=email).first() if email else None
    if admin is None or not admin.is_active:
        current_app.logger.info("[auth] redefinição pedida para e-mail sem conta: %s", email)
        return False
    text = (
        f"Olá, {admin.name}!\n\n"
        f"Para criar uma nova senha, acesse o link abaixo:\n{reset_link(admin)}\n\n"
        "Se você não pediu a redefinição, ignore este e-mail."
    )
    return send_email(admin.email, "Redefinição de senha", text)


def reset_password(token: str, password: str) -> Admin:
    if len(password or "") < MIN_PASSWORD_LENGTH:
        raise ValidationError("Senha muito curta.",
                              {"password": f"Use pelo menos {MIN_PASSWORD_LENGTH} caracteres."})
    admin = load_reset_token(token)
    admin.set_password(password)
    db.session.commit()
    current_app.logger.info("[auth] senha redefinida para %s", admin.email)
    return admin


def send_access_email(admin: Admin, plan_name: str | None = None) -> bool:
    """Boas-vindas da conta criada no checkout, com o link para definir a senha."""
    text = (
        f"Olá, {admin.name}!\n\n"
        f"Seu pagamento foi aprovado{f' (plano {plan_name})' if plan_name else ''} e sua conta está pronta.\n"
        f"Login: {admin.email}\n"
        f"Defina sua senha de acesso:\n{reset_link(admin)}\n"
    )
    return send_email(admin.email, "Seu acesso ao AutoWebinar", text)
