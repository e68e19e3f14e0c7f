# autowebinar_app/services/checkout_service.py
# -*- coding: utf-8 -*-
"""
Sessão de checkout: valida o comprador, chama o gateway e persiste o
CheckoutPagamento. Fatura, assinatura e acesso do Admin só mudam via webhook.
"""
from __future__ import annotations
import re
from dataclasses import dataclass
from datetime import datetime, timedelta

from flask import current_app

from ..errors import AuthError, ConflictError, ForbiddenError, GatewayError, NotFoundError, ValidationError
from ..extensions import db
from ..models import CheckoutPagamento
from ..models.payment import INICIADO, PENDING, IN_PROCESS, APPROVED, REJECTED, EXPIRED
from ..utils import utcnow, new_id, only_digits, isoformat
from .gateways import get_gateway
from .gateways.base import CardToken
from .payment_errors import friendly_error
from .plan_catalog import get_plan, classify_purchase, PURCHASE_LABELS
from . import affiliate_service

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

# status do /v1/payments -> status da sessão
SESSION_STATUS = {
    "approved": APPROVED,
    "pending": PENDING,
    "in_process": IN_PROCESS,
    "in_mediation": IN_PROCESS,
    "authorized": IN_PROCESS,
    "rejected": REJECTED,
    "cancelled": REJECTED,
}


@dataclass
class BuyerInfo:
    nome: str
    email: str
    telefone: str
    documento: str | None = None
    tipo_documento: str | None = None


# -------- documentos --------
def is_valid_cpf(value) -> bool:
    d = only_digits(value)
    if len(d) != 11 or d == d[0] * 11:
        return False
    for size in (9, 10):
        total = sum(int(d[i]) * (size + 1 - i) for i in range(size))
        dv = (total * 10) % 11
        if dv == 10:
            dv = 0
        if dv != int(d[size]):
            return False
    return True


def is_valid_cnpj(value) -> bool:
    d = only_digits(value)
    if len(d) != 14 or d == d[0] * 14:
        return False
    weights = [5, 4, 3, 2, 9, 8, 7, 6, 5, 4, 3, 2]
    for size in (12, 13):
        w = weights if size == 12 else [6] + weights
        r = sum(int(d[i]) * w[i] for i in range(size)) % 11
        dv = 0 if r < 2 else 11 - r
        if dv != int(d[size]):
            return False
    return True


def validate_buyer(data: dict) -> BuyerInfo:
    errors = {}
    nome = (data.get("nome") or "").strip()
    email = (data.get("email") or "").strip().lower()
    telefone = (data.get("telefone") or "").strip()
    documento = only_digits(data.get("documento")) or None
    tipo = (data.get("tipoDocumento") or data.get("tipo_documento") or "").lower() or None

    if not nome:
        errors["nome"] = "Nome é obrigatório."
    if not email:
        errors["email"] = "E-mail é obrigatório."
    elif not EMAIL_RE.match(email):
        errors["email"] = "E-mail inválido."
    if not telefone:
        errors["telefone"] = "Telefone é obrigatório."
    elif len(only_digits(telefone)) < 10:
        errors["telefone"] = "Telefone inválido."

    if documento:
        if tipo is None:
            tipo = "cnpj" if len(documento) == 14 else "cpf"
        if tipo == "cpf" and not is_valid_cpf(documento):
            errors["documento"] = "CPF inválido."
        elif tipo == "cnpj" and not is_valid_cnpj(documento):
            errors["documento"] = "CNPJ inválido."
        elif tipo not in ("cpf", "cnpj"):
            errors["tipoDocumento"] = "Tipo de documento inválido."

    if errors:
        raise ValidationError("Dados do comprador inválidos.", errors)
    return BuyerInfo(nome=nome, email=email, telefone=telefone,
                     documento=documento, tipo_documento=tipo if documento else None)


def _prefill_from_admin(admin, data: dict) -> dict:
    """Renovação: e-mail travado no da conta; campos ausentes vêm do Admin/último pagamento."""
    email = (data.get("email") or "").strip().lower()
    if email and email != admin.email.lower():
        raise ForbiddenError("O e-mail da renovação deve ser o e-mail da conta.")
    merged = dict(data)
    merged["email"] = admin.email
    merged.setdefault("nome", admin.name)
    if not merged.get("telefone"):
        merged["telefone"] = admin.telefone or ""
    if not merged.get("documento"):
        last = (CheckoutPagamento.query
                .filter_by(admin_id=admin.id, status=APPROVED)
                .order_by(CheckoutPagamento.criado_em.desc())
                .first())
        if last and last.documento:
            merged["documento"] = last.documento
            merged["tipoDocumento"] = last.tipo_documento
    return merged


# -------- início --------
def start_checkout(plan_id, data: dict, admin=None, renovacao: bool = False,
                   affiliate_code: str | None = None) -> dict:
    plan = get_plan(plan_id, active_only=True)
    data = dict(data or {})
    if renovacao:
        if admin is None:
            raise AuthError("Faça login para renovar o plano.")
        data = _prefill_from_admin(admin, data)
    buyer = validate_buyer(data)

    link = affiliate_service.resolve_link(affiliate_code) if affiliate_code else None

    # o id existe antes do insert: vai como referência para o gateway
    session = CheckoutPagamento(
        id=new_id(),
        plano_id=plan.id,
        nome=buyer.nome,
        email=buyer.email,
        telefone=buyer.telefone,
        documento=buyer.documento,
        tipo_documento=buyer.tipo_documento,
        valor=plan.preco,
        gateway=plan.gateway,
        status=INICIADO,
        is_renovacao=bool(renovacao),
        admin_id=admin.id if admin is not None else None,
        affiliate_link_code=link.code if link else None,
        failure_attempts=0,
    )

    gw = get_gateway(plan.gateway)
    # GatewayError sobe sem nada persistido
    if plan.is_recurring:
        handle = gw.create_subscription(session, plan)
        session.gateway_subscription_id = handle.external_id
    else:
        handle = gw.create_payment(session, plan)
        session.gateway_payment_id = handle.external_id

    db.session.add(session)
    db.session.commit()
    current_app.logger.info("[checkout] sessão %s iniciada: plano=%s gateway=%s email=%s renovacao=%s",
                            session.id, plan.id, plan.gateway, buyer.email, renovacao)

    acao = classify_purchase(admin, plan)
    result = {
        "pagamentoId": session.id,
        "gateway": plan.gateway,
        "isRecurring": plan.is_recurring,
        "acao": acao,
        "acaoLabel": PURCHASE_LABELS[acao],
        "valor": plan.preco,
    }
    if handle.client_secret:
        result["clientSecret"] = handle.client_secret
    if plan.gateway == "stripe":
        result["stripePublishableKey"] = handle.public_key
    else:
        result["mpPublicKey"] = handle.public_key
        if handle.redirect_url:
            result["mpInitPoint"] = handle.redirect_url
    return result


def get_session(pagamento_id) -> CheckoutPagamento:
    session = db.session.get(CheckoutPagamento, str(pagamento_id or ""))
    if session is None:
        raise NotFoundError("Pagamento não encontrado.")
    return session


def _ensure_open(session: CheckoutPagamento) -> None:
    if session.status == APPROVED:
        raise ConflictError("Este pagamento já foi aprovado.")
    if session.status == EXPIRED:
        raise ConflictError("Esta sessão de checkout expirou. Inicie um novo checkout.")


def record_failure(session: CheckoutPagamento, code: str | None, now: datetime | None = None) -> dict:
    err = friendly_error(session.gateway, code)
    session.gateway_error_code = code
    session.user_friendly_error = err.message
    session.failure_attempts = (session.failure_attempts or 0) + 1
    session.last_failure_at = now or utcnow()
    return err.to_dict()


# -------- Mercado Pago (Brick) --------
def process_mercadopago_payment(pagamento_id, payment_data: dict) -> dict:
    session = get_session(pagamento_id)
    if session.gateway != "mercadopago":
        raise ValidationError("Pagamento não pertence ao Mercado Pago.")
    _ensure_open(session)
    plan = get_plan(session.plano_id)
    if plan.is_recurring:
        raise ValidationError("Planos recorrentes usam a autorização de assinatura.")
    payment_data = dict(payment_data or {})
    if not payment_data.get("payment_method_id"):
        raise ValidationError("Método de pagamento é obrigatório.",
                              {"payment_method_id": "Informe o método de pagamento."})

    try:
        handle = get_gateway("mercadopago").create_payment(session, plan, payment_data)
    except GatewayError as e:
        if e.status_code == 402:
            # recusa da API: conta como tentativa
            e.payload.update(record_failure(session, e.code))
            db.session.commit()
        raise

    session.gateway_payment_id = handle.external_id
    session.metodo_pagamento = handle.payment_method
    session.status_detail = handle.status_detail
    session.status = SESSION_STATUS.get(handle.status, PENDING)

    result = {
        "pagamentoId": session.id,
        "status": session.status,
        "statusDetail": handle.status_detail,
    }
    if session.status == REJECTED:
        result.update(record_failure(session, handle.status_detail))
        current_app.logger.info("[checkout] pagamento %s recusado (%s), tentativa %s",
                                session.id, handle.status_detail, session.failure_attempts)
    if handle.instructions:
        result["pix" if handle.payment_method == "pix" else "instructions"] = handle.instructions
    db.session.commit()
    return result


def authorize_mercadopago_subscription(pagamento_id, card_token: str, payer_email: str,
                                       payment_method_id: str | None = None,
                                       issuer_id: str | None = None) -> dict:
    session = get_session(pagamento_id)
    if session.gateway != "mercadopago":
        raise ValidationError("Pagamento não pertence ao Mercado Pago.")
    _ensure_open(session)
    plan = get_plan(session.plano_id)
    if not plan.is_recurring:
        raise ValidationError("Plano não é recorrente.")
    if not card_token:
        raise ValidationError("Token do cartão é obrigatório.", {"token": "Token do cartão ausente."})

    card = CardToken(token=card_token, payer_email=(payer_email or session.email),
                     payment_method_id=payment_method_id, issuer_id=issuer_id)
    try:
        handle = get_gateway("mercadopago").create_subscription(session, plan, card)
    except GatewayError as e:
        if e.status_code == 402:
            e.payload.update(record_failure(session, e.code))
            db.session.commit()
        raise

    session.gateway_subscription_id = handle.external_id
    session.metodo_pagamento = "credit_card"
    session.status = PENDING
    db.session.commit()
    current_app.logger.info("[checkout] assinatura %s autorizada no gateway (%s)", session.id, handle.status)
    return {"pagamentoId": session.id, "status": handle.status}


def payment_status(pagamento_id) -> dict:
    session = get_session(pagamento_id)
    return {
        "pagamentoId": session.id,
        "status": session.status,
        "statusDetail": session.status_detail,
        "metodoPagamento": session.metodo_pagamento,
        "valor": session.valor,
        "plano": session.plano.nome if session.plano else None,
        "isRenovacao": session.is_renovacao,
        "userFriendlyError": session.user_friendly_error,
        "failureAttempts": session.failure_attempts,
        "dataAprovacao": isoformat(session.data_aprovacao),
    }


# -------- job --------
def expire_stale_checkouts(now: datetime | None = None) -> int:
    """Update condicional: se o webhook aprovar antes, o status já não casa e a linha fica."""
    now = now or utcnow()
    cutoff = now - timedelta(hours=int(current_app.config.get("CHECKOUT_SESSION_TTL_HOURS", 48)))
    n = (CheckoutPagamento.query
         .filter(CheckoutPagamento.status.in_((INICIADO, PENDING)),
                 CheckoutPagamento.criado_em < cutoff)
         .update({"status": EXPIRED, "atualizado_em": now}, synchronize_session=False))
    db.session.commit()
    if n:
        current_app.logger.info("[checkout] %s sessão(ões) expirada(s)", n)
    return n
