# autowebinar_app/blueprints/auth.py
# -*- coding: utf-8 -*-
from __future__ import annotations

from flask import Blueprint, request, jsonify, session, current_app

from ..decorators import login_required, current_admin
from ..errors import AuthError, ValidationError
from ..models import Admin
from ..services.password_reset import request_password_reset, reset_password
from ..utils import utcnow, isoformat

bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def _me(admin: Admin) -> dict:
    return {
        "id": admin.id,
        "name": admin.name,
        "email": admin.email,
        "role": admin.role,
        "planoId": admin.plano_id,
        "accessExpiresAt": isoformat(admin.access_expires_at),
        "hasAccess": admin.has_access(utcnow()),
        "paymentStatus": admin.payment_status,
    }


@bp.route("/login", methods=["POST"])
def login():
    data = request.get_json(silent=True) or {}
    email = (data.get("email") or "").strip().lower()
    pwd = data.get("password") or ""
    if not email or not pwd:
        raise ValidationError("Informe e-mail e senha.")

    u = Admin.query.filter_by(email=email).first()
    if not u or not u.check_password(pwd):
        current_app.logger.info("[auth] login inválido para %s", email)
        raise AuthError("Credenciais inválidas.")
    if not u.is_active:
        raise AuthError("Conta desativada.")

    session["user"] = {"id": u.id, "email": u.email, "role": u.role}
    return jsonify(_me(u))


@bp.route("/logout", methods=["POST"])
def logout():
    session.clear()
    return jsonify(ok=True)


@bp.route("/me")
@login_required
def me():
    return jsonify(_me(current_admin()))


@bp.route("/forgot-password", methods=["POST"])
def forgot_password():
    data = request.get_json(silent=True) or {}
    request_password_reset(data.get("email") or "")
    # mesma resposta exista ou não a conta
    return jsonify(ok=True, message="Se o e-mail estiver cadastrado, enviaremos o link de redefinição.")


@bp.route("/reset-password", methods=["POST"])
def reset_password_route():
    data = request.get_json(silent=True) or {}
    admin = reset_password(data.get("token") or "", data.get("password") or "")
    return jsonify(ok=True, email=admin.email)
