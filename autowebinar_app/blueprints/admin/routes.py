# autowebinar_app/blueprints/admin/routes.py
# -*- coding: utf-8 -*-
from __future__ import annotations
from flask import request, jsonify

from . import admin_bp
from ...decorators import admin_required, current_admin
from ...models import Plan
from ...services import affiliate_service
from ...services.plan_catalog import create_plan, update_plan, get_plan, serialize_plan
from ...services.settings import set_setting, list_settings
from ...utils import isoformat

# credenciais editáveis pelo painel (grupo "checkout")
CREDENTIAL_KEYS = (
    "STRIPE_SECRET_KEY",
    "STRIPE_PUBLISHABLE_KEY",
    "STRIPE_WEBHOOK_SECRET",
    "MERCADOPAGO_ACCESS_TOKEN",
    "MERCADOPAGO_PUBLIC_KEY",
    "MERCADOPAGO_WEBHOOK_SECRET",
)


def _mask(v: str) -> str:
    if not v:
        return ""
    return v[:4] + "…" + v[-4:] if len(v) > 10 else "****"


def _is_secret(key: str) -> bool:
    return key.endswith(("_SECRET_KEY", "_WEBHOOK_SECRET", "_ACCESS_TOKEN"))


# -------- planos --------
@admin_bp.route("/checkout/planos", methods=["GET"])
@admin_required
def planos_list():
    plans = Plan.query.order_by(Plan.ordem.asc(), Plan.id.asc()).all()
    return jsonify([serialize_plan(p) for p in plans])


@admin_bp.route("/checkout/planos", methods=["POST"])
@admin_required
def planos_create():
    plan = create_plan(request.get_json(silent=True) or {})
    return jsonify(serialize_plan(plan)), 201


@admin_bp.route("/checkout/planos/<int:plano_id>", methods=["PATCH"])
@admin_required
def planos_update(plano_id: int):
    plan = update_plan(get_plan(plano_id), request.get_json(silent=True) or {})
    return jsonify(serialize_plan(plan))


# -------- credenciais --------
@admin_bp.route("/checkout/config", methods=["GET"])
@admin_required
def checkout_config():
    saved = list_settings()
    out = {}
    for k in CREDENTIAL_KEYS:
        s = saved.get(k)
        value = s.value if s else ""
        out[k] = _mask(value) if (s is not None and s.is_secret) else value
    return jsonify(out)


@admin_bp.route("/checkout/config", methods=["POST"])
@admin_required
def checkout_config_update():
    data = request.get_json(silent=True) or {}
    changed = []
    for k in CREDENTIAL_KEYS:
        if data.get(k):
            set_setting(k, data[k].strip(), secret=_is_secret(k))
            changed.append(k)
    return jsonify(ok=True, updated=changed)


# -------- saques de afiliados --------
@admin_bp.route("/afiliados/saques/<int:saque_id>/pagar", methods=["POST"])
@admin_required
def saque_pagar(saque_id: int):
    data = request.get_json(silent=True) or {}
    w = affiliate_service.mark_withdrawal_paid(saque_id, current_admin(), data.get("transactionId"))
    return jsonify(id=w.id, status=w.status, processedAt=isoformat(w.processed_at))


@admin_bp.route("/afiliados/saques/<int:saque_id>/rejeitar", methods=["POST"])
@admin_required
def saque_rejeitar(saque_id: int):
    data = request.get_json(silent=True) or {}
    w = affiliate_service.reject_withdrawal(saque_id, current_admin(), data.get("notes"))
    return jsonify(id=w.id, status=w.status, processedAt=isoformat(w.processed_at))
