# autowebinar_app/services/gateways/mercadopago.py
# -*- coding: utf-8 -*-
"""
Adaptador Mercado Pago (API REST via ``requests``).

- cobrança única: preferência do Checkout Pro (init_point) ou ``/v1/payments``
  quando o Payment Brick já entregou token/método;
- recorrente: ``/preapproval`` autorizado com card token;
- webhooks só trazem o id do recurso, então o parse consulta a API.
"""
from __future__ import annotations
import hashlib
import hmac
import json

import requests
from flask import current_app

from ...errors import GatewayError
from ...utils import utcnow, only_digits, parse_iso
from ..settings import get_credential
from .base import (
    PaymentGateway, GatewayHandle, NormalizedEvent, CardToken, lower_headers,
    PAYMENT_APPROVED, PAYMENT_REJECTED, PAYMENT_PENDING,
    SUBSCRIPTION_AUTHORIZED, SUBSCRIPTION_PAUSED, SUBSCRIPTION_CANCELLED,
)

PAYMENT_STATUS = {
    "approved": PAYMENT_APPROVED,
    "pending": PAYMENT_PENDING,
    "in_process": PAYMENT_PENDING,
    "in_mediation": PAYMENT_PENDING,
    "authorized": PAYMENT_PENDING,
    "rejected": PAYMENT_REJECTED,
    "cancelled": PAYMENT_REJECTED,
}
PREAPPROVAL_STATUS = {
    "authorized": SUBSCRIPTION_AUTHORIZED,
    "paused": SUBSCRIPTION_PAUSED,
    "cancelled": SUBSCRIPTION_CANCELLED,
}
PAYMENT_TYPES = {
    "bank_transfer": "pix",
    "ticket": "boleto",
    "credit_card": "credit_card",
    "debit_card": "debit_card",
}


def _cents(value) -> int | None:
    if value is None:
        return None
    return int(round(float(value) * 100))


def parse_signature_header(value: str) -> dict:
    """'ts=1704908010,v1=618c8534...' -> {'ts': '1704908010', 'v1': '618c8534...'}"""
    parts = {}
    for chunk in (value or "").split(","):
        k, sep, v = chunk.strip().partition("=")
        if sep:
            parts[k.strip()] = v.strip()
    return parts


def signature_manifest(data_id: str, request_id: str, ts: str) -> str:
    return f"id:{data_id};request-id:{request_id};ts:{ts};"


class MercadoPagoGateway(PaymentGateway):
    name = "mercadopago"

    # -------- HTTP --------
    def _request(self, method: str, path: str, json_body=None, idempotency_key: str | None = None) -> dict:
        token = get_credential("MERCADOPAGO_ACCESS_TOKEN")
        if not token:
            current_app.logger.error("[checkout] MERCADOPAGO_ACCESS_TOKEN não configurado")
            raise GatewayError("Mercado Pago não configurado.", status_code=503)

        headers = {"Authorization": f"Bearer {token}", "Content-Type": "application/json"}
        if idempotency_key:
            headers["X-Idempotency-Key"] = idempotency_key
        url = current_app.config.get("MERCADOPAGO_API_URL", "https://api.mercadopago.com").rstrip("/") + path

        try:
            resp = requests.request(method, url, json=json_body, headers=headers,
                                    timeout=current_app.config.get("GATEWAY_TIMEOUT", 15))
        except requests.RequestException as e:
            current_app.logger.exception("[checkout] mercadopago %s %s falhou", method, path)
            raise GatewayError() from e

        if resp.status_code >= 500:
            current_app.logger.error("[checkout] mercadopago %s %s -> %s", method, path, resp.status_code)
            raise GatewayError()
        if resp.status_code >= 400:
            try:
                body = resp.json()
            except ValueError:
                body = {}
            current_app.logger.warning("[checkout] mercadopago %s %s -> %s %s",
                                       method, path, resp.status_code, body.get("message"))
            raise GatewayError("Pagamento recusado pelo Mercado Pago. Revise os dados e tente novamente.",
                               status_code=402, code=body.get("error") or str(resp.status_code))
        try:
            return resp.json()
        except ValueError as e:
            raise GatewayError() from e

    def _notification_url(self) -> str:
        return current_app.config["APP_URL"].rstrip("/") + "/webhook/mercadopago"

    def _payer(self, session) -> dict:
        payer = {"email": session.email}
        nome = (session.nome or "").split(" ", 1)
        payer["first_name"] = nome[0]
        if len(nome) > 1:
            payer["last_name"] = nome[1]
        if session.documento:
            payer["identification"] = {
                "type": (session.tipo_documento or "cpf").upper(),
                "number": only_digits(session.documento),
            }
        return payer

    # -------- cobrança única --------
    def create_payment(self, session, plan, payment_data=None) -> GatewayHandle:
        if payment_data:
            return self._process_payment(session, plan, payment_data)

        base = current_app.config["APP_URL"].rstrip("/")
        body = {
            "items": [{
                "id": str(plan.id),
                "title": plan.nome,
                "quantity": 1,
                "currency_id": current_app.config.get("CURRENCY", "BRL"),
                "unit_price": plan.preco / 100,
            }],
            "payer": self._payer(session),
            "external_reference": session.id,
            "notification_url": self._notification_url(),
            "back_urls": {
                "success": f"{base}/checkout/sucesso?pagamento={session.id}",
                "pending": f"{base}/checkout/pendente?pagamento={session.id}",
                "failure": f"{base}/checkout/erro?pagamento={session.id}",
            },
            "auto_return": "approved",
        }
        pref = self._request("POST", "/checkout/preferences", body)
        return GatewayHandle(
            external_id=str(pref.get("id")),
            status="pending",
            redirect_url=pref.get("init_point"),
            public_key=get_credential("MERCADOPAGO_PUBLIC_KEY"),
        )

    def _process_payment(self, session, plan, data: dict) -> GatewayHandle:
        body = {
            "transaction_amount": plan.preco / 100,
            "description": plan.nome,
            "payment_method_id": data.get("payment_method_id"),
            "external_reference": session.id,
            "notification_url": self._notification_url(),
            "payer": self._payer(session),
        }
        if data.get("token"):
            body["token"] = data["token"]
            body["installments"] = int(data.get("installments") or 1)
        if data.get("issuer_id"):
            body["issuer_id"] = str(data["issuer_id"])
        payer_email = (data.get("payer") or {}).get("email")
        if payer_email:
            body["payer"]["email"] = payer_email

        # uma chave por tentativa: retry da mesma tentativa não cobra duas vezes
        payment = self._request("POST", "/v1/payments", body,
                                idempotency_key=f"{session.id}-{session.failure_attempts or 0}")

        tx = (payment.get("point_of_interaction") or {}).get("transaction_data") or {}
        instructions = {}
        if tx.get("qr_code"):
            instructions = {
                "qrCode": tx.get("qr_code"),
                "qrCodeBase64": tx.get("qr_code_base64"),
                "ticketUrl": tx.get("ticket_url"),
            }
        boleto_url = (payment.get("transaction_details") or {}).get("external_resource_url")
        if boleto_url:
            instructions["boletoUrl"] = boleto_url

        return GatewayHandle(
            external_id=str(payment.get("id")),
            status=payment.get("status") or "pending",
            status_detail=payment.get("status_detail"),
            payment_method=PAYMENT_TYPES.get(payment.get("payment_type_id"), payment.get("payment_type_id")),
            instructions=instructions,
        )

    # -------- recorrente --------
    def create_subscription(self, session, plan, card: CardToken | None = None) -> GatewayHandle:
        frequency = int(plan.frequencia or 1)
        frequency_type = plan.frequencia_tipo or "months"
        if frequency_type == "years":
            # preapproval só aceita days/months
            frequency, frequency_type = frequency * 12, "months"

        if card and session.gateway_subscription_id:
            body = {"card_token_id": card.token, "status": "authorized"}
            pre = self._request("PUT", f"/preapproval/{session.gateway_subscription_id}", body)
        else:
            body = {
                "reason": plan.nome,
                "external_reference": session.id,
                "payer_email": card.payer_email if card else session.email,
                "back_url": current_app.config["APP_URL"].rstrip("/") + f"/checkout/sucesso?pagamento={session.id}",
                "notification_url": self._notification_url(),
                "auto_recurring": {
                    "frequency": frequency,
                    "frequency_type": frequency_type,
                    "transaction_amount": plan.preco / 100,
                    "currency_id": current_app.config.get("CURRENCY", "BRL"),
                },
            }
            if card:
                body["card_token_id"] = card.token
                body["status"] = "authorized"
            else:
                body["status"] = "pending"
            pre = self._request("POST", "/preapproval", body)

        return GatewayHandle(
            external_id=str(pre.get("id")),
            status=pre.get("status") or "pending",
            redirect_url=pre.get("init_point"),
            public_key=get_credential("MERCADOPAGO_PUBLIC_KEY"),
            payment_method="credit_card",
        )

    def cancel_subscription(self, external_id: str) -> None:
        self._request("PUT", f"/preapproval/{external_id}", {"status": "cancelled"})

    def is_refunded(self, payment_external_id: str) -> bool:
        payment = self._request("GET", f"/v1/payments/{payment_external_id}")
        return payment.get("status") in ("refunded", "charged_back") or bool(
            payment.get("transaction_amount_refunded"))

    # -------- webhooks --------
    def verify_webhook_signature(self, payload: bytes, headers) -> bool:
        secret = get_credential("MERCADOPAGO_WEBHOOK_SECRET")
        h = lower_headers(headers)
        sig = parse_signature_header(h.get("x-signature", ""))
        ts, v1 = sig.get("ts"), sig.get("v1")
        if not secret or not ts or not v1:
            return False
        try:
            body = json.loads(payload or b"{}")
        except ValueError:
            return False
        data_id = str((body.get("data") or {}).get("id") or "").lower()
        if not data_id:
            return False

        manifest = signature_manifest(data_id, h.get("x-request-id", ""), ts)
        expected = hmac.new(secret.encode("utf-8"), manifest.encode("utf-8"), hashlib.sha256).hexdigest()
        return hmac.compare_digest(expected, v1)

    def parse_webhook_event(self, payload: bytes) -> NormalizedEvent | None:
        try:
            body = json.loads(payload)
        except ValueError:
            return None
        topic = body.get("type") or body.get("topic") or ""
        resource_id = str((body.get("data") or {}).get("id") or "")
        if not resource_id:
            return None

        if topic == "payment":
            return self._payment_event(self._request("GET", f"/v1/payments/{resource_id}"))
        if topic == "subscription_preapproval":
            return self._preapproval_event(self._request("GET", f"/preapproval/{resource_id}"),
                                          notification_id=body.get("id"))
        if topic == "subscription_authorized_payment":
            return self._authorized_payment_event(
                self._request("GET", f"/authorized_payments/{resource_id}"))
        return None

    def _payment_event(self, payment: dict) -> NormalizedEvent | None:
        event_type = PAYMENT_STATUS.get(payment.get("status"))
        if not event_type:
            # refunded / charged_back: fora do ciclo de cobrança
            return None
        occurred_at = parse_iso(payment.get("date_approved")) or parse_iso(payment.get("date_last_updated")) or utcnow()
        return NormalizedEvent(
            gateway=self.name,
            external_id=str(payment.get("id")),
            event_type=event_type,
            occurred_at=occurred_at,
            amount=_cents(payment.get("transaction_amount")),
            payer_email=(payment.get("payer") or {}).get("email"),
            reference=payment.get("external_reference"),
            subscription_external_id=(payment.get("metadata") or {}).get("preapproval_id"),
            payment_method=PAYMENT_TYPES.get(payment.get("payment_type_id"), payment.get("payment_type_id")),
            status_detail=payment.get("status_detail"),
        )

    def _preapproval_event(self, pre: dict, notification_id=None) -> NormalizedEvent | None:
        event_type = PREAPPROVAL_STATUS.get(pre.get("status"))
        if not event_type:
            return None
        # o preapproval vai e volta entre status: cada versão (last_modified) é um evento
        version = pre.get("last_modified") or notification_id
        pre_id = str(pre.get("id"))
        return NormalizedEvent(
            gateway=self.name,
            external_id=f"{pre_id}@{version}" if version else pre_id,
            event_type=event_type,
            occurred_at=parse_iso(pre.get("last_modified")) or utcnow(),
            amount=_cents((pre.get("auto_recurring") or {}).get("transaction_amount")),
            payer_email=pre.get("payer_email"),
            reference=pre.get("external_reference"),
            subscription_external_id=pre_id,
            payment_method="credit_card",
            next_billing_date=parse_iso(pre.get("next_payment_date")),
        )

    def _authorized_payment_event(self, ap: dict) -> NormalizedEvent | None:
        payment = ap.get("payment") or {}
        event_type = PAYMENT_STATUS.get(payment.get("status"))
        if not event_type or not payment.get("id"):
            return None
        return NormalizedEvent(
            gateway=self.name,
            external_id=str(payment.get("id")),
            event_type=event_type,
            occurred_at=parse_iso(ap.get("debit_date")) or parse_iso(ap.get("last_modified")) or utcnow(),
            amount=_cents(ap.get("transaction_amount")),
            reference=ap.get("external_reference"),
            subscription_external_id=str(ap.get("preapproval_id") or "") or None,
            payment_method="credit_card",
            status_detail=payment.get("status_detail"),
        )
