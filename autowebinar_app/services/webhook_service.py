# autowebinar_app/services/webhook_service.py
# -*- coding: utf-8 -*-
"""
Recebimento de webhooks: verifica -> normaliza -> aplica.

A chave (gateway, external_id, event_type) é inserida na mesma transação que
os efeitos do evento; reentrega do mesmo evento bate na unique e vira no-op.
"""
from __future__ import annotations
import secrets
from datetime import datetime, timedelta
from functools import partial

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..errors import InvalidTransitionError
from ..extensions import db
from ..models import Admin, CheckoutPagamento, Invoice, Plan, Subscription, WebhookEvent
from ..models.payment import APPROVED, PENDING, REJECTED
from ..utils import utcnow
from .access_provisioner import apply_plan_access, mark_payment_failed
from .affiliate_service import record_sale
from .gateways import get_gateway
from .gateways.base import (
    NormalizedEvent,
    PAYMENT_APPROVED, PAYMENT_REJECTED, PAYMENT_PENDING,
    SUBSCRIPTION_AUTHORIZED, SUBSCRIPTION_PAUSED, SUBSCRIPTION_CANCELLED,
)
from .payment_errors import friendly_error
from .password_reset import send_access_email
from . import subscription_service as subs

INVALID_SIGNATURE = "invalid_signature"
IGNORED = "ignored"
APPLIED = "applied"
DUPLICATE = "duplicate"
REJECTED_TRANSITION = "rejected_transition"

FREQUENCY_DAYS = {"days": 1, "months": 30, "years": 365}


def handle_webhook(gateway_name: str, payload: bytes, headers) -> str:
    gw = get_gateway(gateway_name)
    if not gw.verify_webhook_signature(payload, headers):
        current_app.logger.warning("[webhook] assinatura inválida (%s); evento descartado", gateway_name)
        return INVALID_SIGNATURE

    event = gw.parse_webhook_event(payload)
    if event is None:
        current_app.logger.info("[webhook] %s: notificação sem efeito de cobrança", gateway_name)
        return IGNORED

    return apply_event(event)


def apply_event(event: NormalizedEvent) -> str:
    """Aplica o evento numa transação. Retorna applied, duplicate, rejected_transition ou ignored."""
    handler = HANDLERS.get(event.event_type)
    if handler is None:
        return IGNORED

    db.session.add(WebhookEvent(gateway=event.gateway, external_id=event.external_id,
                                event_type=event.event_type, received_at=utcnow()))
    try:
        db.session.flush()
    except IntegrityError:
        db.session.rollback()
        current_app.logger.info("[webhook] duplicado: %s %s %s",
                                event.gateway, event.event_type, event.external_id)
        return DUPLICATE

    # notificações (e-mail) só saem depois do commit
    after_commit = []
    try:
        handler(event, after_commit)
        db.session.commit()
    except InvalidTransitionError as e:
        db.session.rollback()
        current_app.logger.warning("[webhook] %s %s rejeitado: %s", event.event_type, event.external_id, e.message)
        return REJECTED_TRANSITION
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info("[webhook] aplicado: %s %s %s", event.gateway, event.event_type, event.external_id)
    for notify in after_commit:
        notify()
    return APPLIED


# -------- resolução --------
def _find_session(event: NormalizedEvent) -> CheckoutPagamento | None:
    if event.reference:
        s = db.session.get(CheckoutPagamento, str(event.reference))
        if s is not None:
            return s
    if event.subscription_external_id:
        s = (CheckoutPagamento.query
             .filter_by(gateway=event.gateway, gateway_subscription_id=event.subscription_external_id)
             .order_by(CheckoutPagamento.criado_em.desc()).first())
        if s is not None:
            return s
    return (CheckoutPagamento.query
            .filter_by(gateway=event.gateway, gateway_payment_id=event.external_id)
            .first())


def _find_subscription(event: NormalizedEvent) -> Subscription | None:
    ext = event.subscription_external_id
    if not ext:
        return None
    return Subscription.query.filter_by(gateway=event.gateway, external_id=ext).first()


def _resolve_admin(session: CheckoutPagamento, after_commit: list | None = None) -> Admin:
    """Comprador novo ganha conta com senha aleatória e recebe por e-mail o link para definir a sua."""
    admin = db.session.get(Admin, session.admin_id) if session.admin_id else None
    if admin is None:
        admin = Admin.query.filter_by(email=session.email).first()
    if admin is None:
        admin = Admin(name=session.nome, email=session.email, telefone=session.telefone, role="user")
        admin.set_password(secrets.token_urlsafe(16))
        db.session.add(admin)
        db.session.flush()
        current_app.logger.info("[webhook] conta criada para %s", session.email)
        if after_commit is not None:
            plan = db.session.get(Plan, session.plano_id)
            after_commit.append(partial(send_access_email, admin, plan.nome if plan else None))
    session.admin_id = admin.id
    return admin


def _next_billing(plan: Plan, start: datetime) -> datetime:
    days = FREQUENCY_DAYS.get(plan.frequencia_tipo or "months", 30) * int(plan.frequencia or 1)
    return start + timedelta(days=days)


def _ensure_subscription(event: NormalizedEvent, session: CheckoutPagamento | None,
                         admin: Admin, plan: Plan) -> Subscription:
    ext = event.subscription_external_id or (session.gateway_subscription_id if session else None)
    sub = Subscription.query.filter_by(gateway=event.gateway, external_id=ext).first() if ext else None
    if sub is None:
        sub = Subscription(
            admin_id=admin.id,
            plano_id=plan.id,
            pagamento_id=session.id if session else None,
            gateway=event.gateway,
            external_id=ext,
            status=subs.PENDING,
        )
        db.session.add(sub)
        db.session.flush()
    return sub


def _upsert_invoice(event: NormalizedEvent, status: str, session: CheckoutPagamento | None,
                    admin: Admin | None = None, sub: Subscription | None = None) -> Invoice:
    inv = Invoice.query.filter_by(gateway=event.gateway, external_id=event.external_id).first()
    if inv is None:
        inv = Invoice(gateway=event.gateway, external_id=event.external_id, status=PENDING,
                      created_at=event.occurred_at)
        db.session.add(inv)
    if inv.status == APPROVED:
        # fatura aprovada é terminal
        return inv
    inv.status = status
    inv.amount = event.amount if event.amount is not None else (session.valor if session else inv.amount)
    inv.payment_method = event.payment_method or inv.payment_method
    if session is not None:
        inv.pagamento_id = session.id
        inv.plano_id = session.plano_id
        inv.admin_id = inv.admin_id or session.admin_id
    if admin is not None:
        inv.admin_id = admin.id
    if sub is not None:
        inv.subscription_id = sub.id
        inv.plano_id = inv.plano_id or sub.plano_id
        inv.admin_id = inv.admin_id or sub.admin_id
    if status == APPROVED:
        inv.approved_at = event.occurred_at
    return inv


# -------- handlers --------
def _on_payment_approved(event: NormalizedEvent, after_commit: list) -> None:
    session = _find_session(event)
    sub = _find_subscription(event)
    if session is None and sub is None:
        current_app.logger.warning("[webhook] pagamento %s aprovado sem checkout correspondente (ref=%s)",
                                   event.external_id, event.reference)
        return

    if session is not None:
        admin = _resolve_admin(session, after_commit)
        plan = db.session.get(Plan, session.plano_id)
    else:
        admin = db.session.get(Admin, sub.admin_id)
        plan = db.session.get(Plan, sub.plano_id)

    provision = True
    if plan.is_recurring or sub is not None:
        sub = _ensure_subscription(event, session, admin, plan)
        if sub.status == subs.CANCELLED:
            # cobrança de ciclo emitida antes do cancelamento: a fatura vale, a assinatura não volta
            provision = not subs.is_superseded(admin, sub)
            current_app.logger.warning("[webhook] pagamento %s para assinatura cancelada %s (%s)",
                                       event.external_id, sub.id,
                                       "acesso renovado" if provision else "plano já substituído; acesso mantido")
        else:
            subs.transition(sub, subs.ACTIVE, event.occurred_at)
            sub.next_billing_date = event.next_billing_date or _next_billing(plan, event.occurred_at)
            subs.supersede_previous(admin, sub, event.occurred_at)
    else:
        # compra única substitui qualquer recorrência ainda viva
        subs.supersede_previous(admin, None, event.occurred_at)

    _upsert_invoice(event, APPROVED, session, admin, sub)
    if provision:
        apply_plan_access(admin, plan, event.occurred_at)

    if session is not None:
        first_approval = session.status != APPROVED
        session.status = APPROVED
        session.status_detail = event.status_detail or session.status_detail
        session.metodo_pagamento = event.payment_method or session.metodo_pagamento
        session.data_aprovacao = session.data_aprovacao or event.occurred_at
        if not plan.is_recurring or not session.gateway_payment_id:
            session.gateway_payment_id = event.external_id
        if first_approval and session.affiliate_link_code:
            record_sale(session, event.amount if event.amount is not None else session.valor, event.occurred_at)


def _on_payment_rejected(event: NormalizedEvent, after_commit: list) -> None:
    session = _find_session(event)
    sub = _find_subscription(event)
    if session is None and sub is None:
        current_app.logger.warning("[webhook] pagamento %s recusado sem checkout correspondente",
                                   event.external_id)
        return

    _upsert_invoice(event, REJECTED, session, sub=sub)
    err = friendly_error(event.gateway, event.status_detail)

    if session is not None and session.status != APPROVED:
        session.status = REJECTED
        session.status_detail = event.status_detail
        session.gateway_error_code = event.status_detail
        session.user_friendly_error = err.message
        session.failure_attempts = (session.failure_attempts or 0) + 1
        session.last_failure_at = event.occurred_at

    # recusa em assinatura já cancelada não afeta o tenant
    if sub is not None and sub.status != subs.CANCELLED:
        if sub.status == subs.ACTIVE:
            subs.transition(sub, subs.PAUSED, event.occurred_at)
        admin = db.session.get(Admin, sub.admin_id)
        if admin is not None:
            mark_payment_failed(admin, err.message)


def _on_payment_pending(event: NormalizedEvent, after_commit: list) -> None:
    session = _find_session(event)
    sub = _find_subscription(event)
    if session is None and sub is None:
        return
    _upsert_invoice(event, PENDING, session, sub=sub)
    if session is not None and session.status not in (APPROVED, REJECTED):
        session.status = PENDING
        session.metodo_pagamento = event.payment_method or session.metodo_pagamento


def _on_subscription_authorized(event: NormalizedEvent, after_commit: list) -> None:
    sub = _find_subscription(event)
    if sub is not None and sub.pagamento_id:
        session = db.session.get(CheckoutPagamento, sub.pagamento_id)
    else:
        session = _find_session(event)

    if sub is None:
        if session is None:
            current_app.logger.warning("[webhook] assinatura %s autorizada sem checkout correspondente",
                                       event.subscription_external_id)
            return
        admin = _resolve_admin(session, after_commit)
        plan = db.session.get(Plan, session.plano_id)
        sub = _ensure_subscription(event, session, admin, plan)
    else:
        admin = db.session.get(Admin, sub.admin_id)
        plan = db.session.get(Plan, sub.plano_id)

    subs.transition(sub, subs.ACTIVE, event.occurred_at)
    sub.next_billing_date = event.next_billing_date or sub.next_billing_date or \
        _next_billing(plan, event.occurred_at)
    subs.supersede_previous(admin, sub, event.occurred_at)
    apply_plan_access(admin, plan, event.occurred_at)
    if session is not None and session.status != APPROVED:
        session.status = APPROVED
        session.data_aprovacao = session.data_aprovacao or event.occurred_at


def _on_subscription_paused(event: NormalizedEvent, after_commit: list) -> None:
    sub = _find_subscription(event)
    if sub is None:
        current_app.logger.warning("[webhook] pausa de assinatura desconhecida: %s", event.subscription_external_id)
        return
    subs.transition(sub, subs.PAUSED, event.occurred_at)
    admin = db.session.get(Admin, sub.admin_id)
    if admin is not None:
        mark_payment_failed(admin, admin.payment_failed_reason or "Assinatura pausada pelo gateway.")


def _on_subscription_cancelled(event: NormalizedEvent, after_commit: list) -> None:
    sub = _find_subscription(event)
    if sub is None:
        current_app.logger.warning("[webhook] cancelamento de assinatura desconhecida: %s",
                                   event.subscription_external_id)
        return
    # acesso já pago continua até access_expires_at
    subs.transition(sub, subs.CANCELLED, event.occurred_at)


HANDLERS = {
    PAYMENT_APPROVED: _on_payment_approved,
    PAYMENT_REJECTED: _on_payment_rejected,
    PAYMENT_PENDING: _on_payment_pending,
    SUBSCRIPTION_AUTHORIZED: _on_subscription_authorized,
    SUBSCRIPTION_PAUSED: _on_subscription_paused,
    SUBSCRIPTION_CANCELLED: _on_subscription_cancelled,
}
