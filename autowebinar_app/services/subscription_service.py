# autowebinar_app/services/subscription_service.py
# -*- coding: utf-8 -*-
from __future__ import annotations
from datetime import datetime, timedelta

from flask import current_app

from ..errors import GatewayError, InvalidTransitionError, NotFoundError
from ..extensions import db
from ..models import Subscription, Invoice, Plan, AdminUsage
from ..utils import utcnow, isoformat
from .gateways import get_gateway
from .plan_catalog import list_active_plans, serialize_plan

PENDING = "pending"
ACTIVE = "active"
PAUSED = "paused"
CANCELLED = "cancelled"

TRANSITIONS = {
    PENDING: {ACTIVE, CANCELLED},
    ACTIVE: {PAUSED, CANCELLED},
    PAUSED: {ACTIVE, CANCELLED},
    CANCELLED: set(),
}

RENEW_PROMPT_DAYS = 3


def can_transition(current: str, new_status: str) -> bool:
    return current == new_status or new_status in TRANSITIONS.get(current, set())


def transition(sub: Subscription, new_status: str, when: datetime | None = None) -> bool:
    """Aplica a transição. Retorna False quando já estava no estado (no-op)."""
    if sub.status == new_status:
        return False
    if new_status not in TRANSITIONS.get(sub.status, set()):
        raise InvalidTransitionError(
            f"Transição inválida de assinatura: {sub.status} -> {new_status}",
            payload={"from": sub.status, "to": new_status},
        )
    sub.status = new_status
    if new_status == CANCELLED:
        sub.cancelled_at = when or utcnow()
    return True


def current_subscription(admin) -> Subscription | None:
    return (Subscription.query
            .filter(Subscription.admin_id == admin.id, Subscription.status != CANCELLED)
            .order_by(Subscription.created_at.desc(), Subscription.id.desc())
            .first())


def supersede_previous(admin, keep: Subscription | None = None, when: datetime | None = None) -> int:
    """Cancela as demais assinaturas vivas do tenant (troca de plano), aqui e no gateway.

    Falha do gateway não desfaz a troca: a assinatura fica com
    ``gateway_cancel_pending`` (visível no painel) e o scheduler tenta de novo.
    """
    q = Subscription.query.filter(
        Subscription.admin_id == admin.id,
        Subscription.status.in_((PENDING, ACTIVE, PAUSED)),
    )
    if keep is not None:
        q = q.filter(Subscription.id != keep.id)
    n = 0
    for sub in q.all():
        transition(sub, CANCELLED, when)
        cancel_at_gateway(sub)
        n += 1
    return n


def is_superseded(admin, sub: Subscription) -> bool:
    """Assinatura cancelada cujo plano já foi substituído (outra assinatura viva ou outro plano)."""
    if sub.status != CANCELLED:
        return False
    if admin.plano_id is not None and admin.plano_id != sub.plano_id:
        return True
    return Subscription.query.filter(
        Subscription.admin_id == admin.id,
        Subscription.id != sub.id,
        Subscription.status.in_((PENDING, ACTIVE, PAUSED)),
    ).first() is not None


def cancel_at_gateway(sub: Subscription) -> bool:
    if not sub.external_id:
        return True
    try:
        get_gateway(sub.gateway).cancel_subscription(sub.external_id)
    except GatewayError as e:
        current_app.logger.exception("[checkout] cancelamento no gateway da assinatura %s (%s) falhou",
                                     sub.id, sub.external_id)
        sub.gateway_cancel_pending = True
        sub.gateway_cancel_error = (e.message or "")[:255]
        return False
    sub.gateway_cancel_pending = False
    sub.gateway_cancel_error = None
    current_app.logger.info("[checkout] assinatura %s cancelada no gateway %s", sub.id, sub.gateway)
    return True


def retry_pending_cancellations() -> int:
    """Reenvia ao gateway os cancelamentos que falharam. Retorna quantos foram confirmados."""
    pending = Subscription.query.filter_by(status=CANCELLED, gateway_cancel_pending=True).all()
    done = sum(1 for sub in pending if cancel_at_gateway(sub))
    db.session.commit()
    return done


def cancel_subscription(admin) -> Subscription:
    sub = current_subscription(admin)
    if sub is None:
        raise NotFoundError("Nenhuma assinatura ativa.")

    # gateway primeiro: se falhar (GatewayError 502) nada muda localmente
    if sub.external_id:
        get_gateway(sub.gateway).cancel_subscription(sub.external_id)

    transition(sub, CANCELLED)
    db.session.commit()
    current_app.logger.info("[checkout] assinatura %s cancelada pelo admin %s", sub.id, admin.email)
    return sub


def renew_subscription(admin, plan_id=None, data: dict | None = None) -> dict:
    from .checkout_service import start_checkout

    target = plan_id or admin.plano_id
    if not target:
        sub = current_subscription(admin)
        target = sub.plano_id if sub else None
    if not target:
        raise NotFoundError("Nenhum plano para renovar.")
    return start_checkout(target, data or {}, admin=admin, renovacao=True)


def serialize_subscription(sub: Subscription | None) -> dict | None:
    if sub is None:
        return None
    return {
        "id": sub.id,
        "status": sub.status,
        "gateway": sub.gateway,
        "planoId": sub.plano_id,
        "nextBillingDate": isoformat(sub.next_billing_date),
        "cancelledAt": isoformat(sub.cancelled_at),
        "gatewayCancelPending": bool(sub.gateway_cancel_pending),
        "createdAt": isoformat(sub.created_at),
    }


def serialize_invoice(inv: Invoice) -> dict:
    return {
        "id": inv.id,
        "amount": inv.amount,
        "status": inv.status,
        "paymentMethod": inv.payment_method,
        "gateway": inv.gateway,
        "approvedAt": isoformat(inv.approved_at),
        "createdAt": isoformat(inv.created_at),
    }


def _usage(admin) -> dict:
    u = AdminUsage.query.filter_by(admin_id=admin.id).first()
    storage_gb = round((u.storage_bytes if u else 0) / (1024 ** 3), 2)
    return {
        "webinars": {"used": u.webinars_count if u else 0, "limit": admin.webinar_limit},
        "uploads": {"used": u.uploads_count if u else 0, "limit": admin.upload_limit},
        "storageGb": {"used": storage_gb, "limit": admin.storage_limit},
        "whatsappAccounts": {"used": u.whatsapp_accounts_count if u else 0,
                             "limit": admin.whatsapp_account_limit},
    }


def should_prompt_renewal(admin, sub: Subscription | None, now: datetime) -> bool:
    if sub is not None and sub.status == PAUSED:
        return True
    if admin.payment_status == "failed":
        return True
    if admin.access_expires_at is not None:
        return admin.access_expires_at <= now + timedelta(days=RENEW_PROMPT_DAYS)
    return False


def subscription_overview(admin, now: datetime | None = None) -> dict:
    now = now or utcnow()
    sub = current_subscription(admin)
    plan = db.session.get(Plan, admin.plano_id) if admin.plano_id else None
    invoices = (Invoice.query.filter_by(admin_id=admin.id)
                .order_by(Invoice.created_at.desc(), Invoice.id.desc()).limit(50).all())

    pending_cancel = (Subscription.query
                      .filter_by(admin_id=admin.id, status=CANCELLED, gateway_cancel_pending=True)
                      .order_by(Subscription.id.asc()).all())

    days_left = None
    if admin.access_expires_at is not None:
        days_left = max((admin.access_expires_at - now).days, 0)

    return {
        "plan": serialize_plan(plan) if plan else None,
        "subscription": serialize_subscription(sub),
        "invoices": [serialize_invoice(i) for i in invoices],
        "usage": _usage(admin),
        "access": {
            "hasAccess": admin.has_access(now),
            "expiresAt": isoformat(admin.access_expires_at),
            "daysLeft": days_left,
            "paymentStatus": admin.payment_status,
            "paymentFailedReason": admin.payment_failed_reason,
        },
        # cobrança antiga que o gateway ainda não confirmou como cancelada
        "pendingCancellations": [serialize_subscription(s) for s in pending_cancel],
        "showRenewPrompt": should_prompt_renewal(admin, sub, now),
        "availablePlans": [serialize_plan(p, admin) for p in list_active_plans()],
    }
