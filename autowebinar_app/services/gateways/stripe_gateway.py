# autowebinar_app/services/gateways/stripe_gateway.py
# -*- coding: utf-8 -*-
from __future__ import annotations
import json

import stripe
from flask import current_app

from ...errors import GatewayError
from ...utils import utcnow, from_timestamp
from ..settings import get_credential
from .base import (
    PaymentGateway, GatewayHandle, NormalizedEvent, CardToken, lower_headers,
    PAYMENT_APPROVED, PAYMENT_REJECTED, PAYMENT_PENDING,
    SUBSCRIPTION_AUTHORIZED, SUBSCRIPTION_PAUSED, SUBSCRIPTION_CANCELLED,
)

INTERVALS = {"days": "day", "months": "month", "years": "year"}

PAYMENT_INTENT_EVENTS = {
    "payment_intent.succeeded": PAYMENT_APPROVED,
    "payment_intent.processing": PAYMENT_PENDING,
    "payment_intent.payment_failed": PAYMENT_REJECTED,
}
INVOICE_EVENTS = {
    "invoice.paid": PAYMENT_APPROVED,
    "invoice.payment_succeeded": PAYMENT_APPROVED,
    "invoice.payment_failed": PAYMENT_REJECTED,
}
SUBSCRIPTION_EVENTS = (
    "customer.subscription.created",
    "customer.subscription.updated",
    "customer.subscription.resumed",
    "customer.subscription.paused",
    "customer.subscription.deleted",
)
# status da subscription no Stripe -> evento normalizado (incomplete não muda nada)
SUBSCRIPTION_STATUS = {
    "active": SUBSCRIPTION_AUTHORIZED,
    "trialing": SUBSCRIPTION_AUTHORIZED,
    "past_due": SUBSCRIPTION_PAUSED,
    "unpaid": SUBSCRIPTION_PAUSED,
    "paused": SUBSCRIPTION_PAUSED,
    "canceled": SUBSCRIPTION_CANCELLED,
    "incomplete_expired": SUBSCRIPTION_CANCELLED,
}


def _stripe():
    stripe.api_key = get_credential("STRIPE_SECRET_KEY")
    return stripe


def _dig(obj, *path, default=None):
    """Lê chaves aninhadas tanto de dicts quanto de StripeObject."""
    cur = obj
    for key in path:
        if cur is None:
            return default
        if isinstance(cur, dict):
            cur = cur.get(key)
        else:
            try:
                cur = cur[key]
            except (KeyError, TypeError, IndexError):
                cur = getattr(cur, key, None)
    return default if cur is None else cur


class StripeGateway(PaymentGateway):
    name = "stripe"

    def _metadata(self, session, plan) -> dict:
        return {"pagamento_id": session.id, "plano_id": str(plan.id)}

    def create_payment(self, session, plan, payment_data=None) -> GatewayHandle:
        s = _stripe()
        try:
            intent = s.PaymentIntent.create(
                amount=int(plan.preco),
                currency=current_app.config.get("CURRENCY", "BRL").lower(),
                receipt_email=session.email,
                description=plan.nome,
                automatic_payment_methods={"enabled": True},
                metadata=self._metadata(session, plan),
                idempotency_key=f"pi-{session.id}",
            )
        except stripe.StripeError as e:
            current_app.logger.exception("[checkout] stripe PaymentIntent falhou: %s", e)
            raise GatewayError(code=getattr(e, "code", None)) from e

        return GatewayHandle(
            external_id=intent.id,
            status="pending",
            client_secret=intent.client_secret,
            public_key=get_credential("STRIPE_PUBLISHABLE_KEY"),
            payment_method="card",
        )

    def _price_id(self, s, plan) -> str:
        if plan.stripe_price_id:
            return plan.stripe_price_id
        price = s.Price.create(
            unit_amount=int(plan.preco),
            currency=current_app.config.get("CURRENCY", "BRL").lower(),
            recurring={
                "interval": INTERVALS.get(plan.frequencia_tipo or "months", "month"),
                "interval_count": int(plan.frequencia or 1),
            },
            product_data={"name": plan.nome},
        )
        return price.id

    def create_subscription(self, session, plan, card: CardToken | None = None) -> GatewayHandle:
        s = _stripe()
        try:
            customer = s.Customer.create(
                email=session.email,
                name=session.nome,
                phone=session.telefone,
                metadata={"pagamento_id": session.id},
            )
            sub = s.Subscription.create(
                customer=customer.id,
                items=[{"price": self._price_id(s, plan)}],
                payment_behavior="default_incomplete",
                payment_settings={"save_default_payment_method": "on_subscription"},
                expand=["latest_invoice.confirmation_secret", "latest_invoice.payment_intent"],
                metadata=self._metadata(session, plan),
            )
        except stripe.StripeError as e:
            current_app.logger.exception("[checkout] stripe Subscription falhou: %s", e)
            raise GatewayError(code=getattr(e, "code", None)) from e

        client_secret = (
            _dig(sub, "latest_invoice", "confirmation_secret", "client_secret")
            or _dig(sub, "latest_invoice", "payment_intent", "client_secret")
        )
        return GatewayHandle(
            external_id=sub.id,
            status="pending",
            client_secret=client_secret,
            public_key=get_credential("STRIPE_PUBLISHABLE_KEY"),
            payment_method="card",
        )

    def cancel_subscription(self, external_id: str) -> None:
        s = _stripe()
        try:
            s.Subscription.cancel(external_id)
        except stripe.StripeError as e:
            current_app.logger.exception("[checkout] stripe cancelamento falhou (%s): %s", external_id, e)
            raise GatewayError(code=getattr(e, "code", None)) from e

    def is_refunded(self, payment_external_id: str) -> bool:
        s = _stripe()
        try:
            intent = payment_external_id
            if payment_external_id.startswith("in_"):
                # fatura de assinatura: o estorno fica no PaymentIntent que a pagou
                intent = _dig(s.Invoice.retrieve(payment_external_id), "payment_intent")
                if not intent:
                    # API nova: o PaymentIntent só vem em invoice.payments expandido
                    inv = s.Invoice.retrieve(payment_external_id, expand=["payments"])
                    intent = _dig(inv, "payments", "data", 0, "payment", "payment_intent")
                if not intent:
                    return False
            refunds = s.Refund.list(payment_intent=intent, limit=1)
            disputes = s.Dispute.list(payment_intent=intent, limit=1)
        except stripe.StripeError as e:
            current_app.logger.exception("[affiliate] stripe consulta de estorno falhou (%s): %s",
                                         payment_external_id, e)
            raise GatewayError(code=getattr(e, "code", None)) from e
        return bool(_dig(refunds, "data")) or bool(_dig(disputes, "data"))

    def verify_webhook_signature(self, payload: bytes, headers) -> bool:
        secret = get_credential("STRIPE_WEBHOOK_SECRET")
        sig = lower_headers(headers).get("stripe-signature")
        if not secret or not sig:
            return False
        try:
            _stripe().Webhook.construct_event(payload, sig, secret)
        except (ValueError, stripe.SignatureVerificationError):
            return False
        return True

    def parse_webhook_event(self, payload: bytes) -> NormalizedEvent | None:
        try:
            event = json.loads(payload)
        except ValueError:
            return None
        typ = event.get("type") or ""
        obj = _dig(event, "data", "object", default={})
        occurred_at = from_timestamp(event.get("created")) or utcnow()

        if typ in PAYMENT_INTENT_EVENTS:
            reference = _dig(obj, "metadata", "pagamento_id")
            # PaymentIntents de faturas de assinatura chegam via invoice.*
            if not reference:
                return None
            return NormalizedEvent(
                gateway=self.name,
                external_id=obj.get("id"),
                event_type=PAYMENT_INTENT_EVENTS[typ],
                occurred_at=occurred_at,
                amount=obj.get("amount"),
                payer_email=obj.get("receipt_email"),
                reference=reference,
                payment_method=(obj.get("payment_method_types") or ["card"])[0],
                status_detail=_dig(obj, "last_payment_error", "decline_code")
                or _dig(obj, "last_payment_error", "code"),
            )

        if typ in INVOICE_EVENTS:
            sub_id = obj.get("subscription") or _dig(
                obj, "parent", "subscription_details", "subscription")
            if not sub_id:
                return None
            return NormalizedEvent(
                gateway=self.name,
                external_id=obj.get("id"),
                event_type=INVOICE_EVENTS[typ],
                occurred_at=occurred_at,
                amount=obj.get("amount_paid") if typ != "invoice.payment_failed" else obj.get("amount_due"),
                payer_email=obj.get("customer_email"),
                reference=_dig(obj, "parent", "subscription_details", "metadata", "pagamento_id"),
                subscription_external_id=sub_id,
                payment_method="card",
                next_billing_date=from_timestamp(_dig(obj, "lines", "data", 0, "period", "end")),
            )

        if typ in SUBSCRIPTION_EVENTS:
            status = "canceled" if typ == "customer.subscription.deleted" else obj.get("status")
            event_type = SUBSCRIPTION_STATUS.get(status)
            if not event_type:
                return None
            period_end = obj.get("current_period_end") or _dig(
                obj, "items", "data", 0, "current_period_end")
            return NormalizedEvent(
                gateway=self.name,
                # a mesma subscription oscila entre status; a chave é a notificação (evt_...)
                external_id=event.get("id") or f"{obj.get('id')}@{event.get('created')}",
                event_type=event_type,
                occurred_at=occurred_at,
                reference=_dig(obj, "metadata", "pagamento_id"),
                subscription_external_id=obj.get("id"),
                next_billing_date=from_timestamp(period_end),
            )

        return None
