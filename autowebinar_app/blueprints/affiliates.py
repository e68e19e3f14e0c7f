# autowebinar_app/blueprints/affiliates.py
# -*- coding: utf-8 -*-
from __future__ import annotations
from flask import Blueprint, request, jsonify, redirect, current_app

from ..decorators import login_required, current_admin
from ..errors import ForbiddenError
from ..services import affiliate_service
from ..utils import isoformat
from .checkout import AFFILIATE_COOKIE

bp = Blueprint("affiliates", __name__)

COOKIE_MAX_AGE = 30 * 24 * 3600   # 30 dias


@bp.route("/r/<code>")
def referral(code: str):
    base = current_app.config["APP_URL"].rstrip("/")
    link = affiliate_service.track_click(code)
    if link is None:
        return redirect(f"{base}/", code=302)
    target = f"{base}/checkout/{link.plano_id}" if link.plano_id else f"{base}/#planos"
    resp = redirect(target, code=302)
    resp.set_cookie(AFFILIATE_COOKIE, link.code, max_age=COOKIE_MAX_AGE, httponly=True, samesite="Lax")
    return resp


def _my_affiliate():
    aff = current_admin().affiliate
    if aff is None or aff.status not in ("active", "pending"):
        raise ForbiddenError("Conta de afiliado não encontrada.")
    return aff


@bp.route("/api/afiliado/dashboard")
@login_required
def dashboard():
    return jsonify(affiliate_service.affiliate_dashboard(_my_affiliate()))


@bp.route("/api/afiliado/saques", methods=["POST"])
@login_required
def solicitar_saque():
    aff = _my_affiliate()
    if aff.status != "active":
        raise ForbiddenError("Afiliado ainda não aprovado.")
    data = request.get_json(silent=True) or {}
    w = affiliate_service.request_withdrawal(aff, data.get("amount"), data.get("pixKey"), data.get("pixKeyType"))
    return jsonify(id=w.id, amount=w.amount, status=w.status, requestedAt=isoformat(w.requested_at)), 201
