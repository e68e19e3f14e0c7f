# autowebinar_app/blueprints/checkout.py
# -*- coding: utf-8 -*-
from __future__ import annotations
from flask import Blueprint, request, jsonify

from ..decorators import current_admin
from ..errors import ValidationError
from ..services import checkout_service
from ..services.plan_catalog import list_active_plans, get_plan, serialize_plan

bp = Blueprint("checkout", __name__, url_prefix="/api/checkout")

AFFILIATE_COOKIE = "aff_ref"


def _json() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("JSON inválido.")
    return data


@bp.route("/planos/ativos")
def planos_ativos():
    admin = current_admin()
    landing = request.args.get("landing") in ("1", "true")
    return jsonify([serialize_plan(p, admin) for p in list_active_plans(landing_only=landing)])


@bp.route("/planos/<int:plano_id>")
def plano(plano_id: int):
    return jsonify(serialize_plan(get_plan(plano_id, active_only=True), current_admin()))


@bp.route("/iniciar/<int:plano_id>", methods=["POST"])
def iniciar(plano_id: int):
    data = _json()
    renovacao = bool(data.get("renovacao")) or request.args.get("renovacao") in ("1", "true")
    affiliate_code = data.get("affiliateCode") or request.cookies.get(AFFILIATE_COOKIE)
    result = checkout_service.start_checkout(
        plano_id, data, admin=current_admin(), renovacao=renovacao, affiliate_code=affiliate_code,
    )
    return jsonify(result), 201


@bp.route("/mercadopago/processar", methods=["POST"])
def mercadopago_processar():
    data = _json()
    pagamento_id = data.pop("pagamentoId", None)
    if not pagamento_id:
        raise ValidationError("pagamentoId é obrigatório.")
    payment_data = data.get("formData") or data
    return jsonify(checkout_service.process_mercadopago_payment(pagamento_id, payment_data))


@bp.route("/mercadopago/assinatura", methods=["POST"])
def mercadopago_assinatura():
    data = _json()
    if not data.get("pagamentoId"):
        raise ValidationError("pagamentoId é obrigatório.")
    result = checkout_service.authorize_mercadopago_subscription(
        data["pagamentoId"],
        card_token=data.get("token"),
        payer_email=(data.get("payer") or {}).get("email") or data.get("email"),
        payment_method_id=data.get("payment_method_id"),
        issuer_id=data.get("issuer_id"),
    )
    return jsonify(result)


@bp.route("/pagamento/<pagamento_id>/status")
def pagamento_status(pagamento_id: str):
    return jsonify(checkout_service.payment_status(pagamento_id))
