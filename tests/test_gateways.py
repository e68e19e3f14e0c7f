# tests/test_gateways.py
# -*- coding: utf-8 -*-
from __future__ import annotations
import hashlib
import hmac
import json
from datetime import datetime

import pytest
import requests
import stripe

from autowebinar_app.errors import GatewayError, NotFoundError
from autowebinar_app.models import CheckoutPagamento
from autowebinar_app.services.gateways import get_gateway, StripeGateway, MercadoPagoGateway
from autowebinar_app.services.gateways.base import CardToken
from autowebinar_app.services.gateways.mercadopago import parse_signature_header, signature_manifest
from autowebinar_app.services.settings import set_setting


class _StripeObj(dict):
    """dict com acesso por atributo, como o StripeObject."""
    __getattr__ = dict.get


@pytest.fixture
def session(plan_one_time):
    return CheckoutPagamento(id="chk-123", plano_id=plan_one_time.id, nome="Maria Souza",
                             email="maria@test.com", telefone="11988887777", documento="52998224725",
                             tipo_documento="cpf", valor=plan_one_time.preco, gateway="mercadopago",
                             failure_attempts=0)


def test_get_gateway_unknown(db_session):
    with pytest.raises(NotFoundError):
        get_gateway("paypal")


# =====================================================================================
# Stripe
# =====================================================================================
@pytest.fixture
def stripe_calls(monkeypatch):
    calls = {}

    def _rec(name, result):
        def _fn(*a, **k):
            calls[name] = k or a
            return result
        return staticmethod(_fn)

    monkeypatch.setattr(stripe.PaymentIntent, "create",
                        _rec("intent", _StripeObj(id="pi_1", client_secret="pi_1_secret")), raising=False)
    monkeypatch.setattr(stripe.Customer, "create", _rec("customer", _StripeObj(id="cus_1")), raising=False)
    monkeypatch.setattr(stripe.Price, "create", _rec("price", _StripeObj(id="price_1")), raising=False)
    monkeypatch.setattr(stripe.Subscription, "create", _rec("subscription", _StripeObj(
        id="sub_1", latest_invoice={"confirmation_secret": {"client_secret": "seti_secret"}})), raising=False)
    monkeypatch.setattr(stripe.Subscription, "cancel", _rec("cancel", None), raising=False)
    return calls


def test_stripe_create_payment(db_session, session, plan_one_time, stripe_calls):
    handle = StripeGateway().create_payment(session, plan_one_time)
    assert handle.external_id == "pi_1"
    assert handle.client_secret == "pi_1_secret"
    assert handle.public_key == "pk_test_123"
    kwargs = stripe_calls["intent"]
    assert kwargs["amount"] == 9700
    assert kwargs["currency"] == "brl"
    assert kwargs["metadata"]["pagamento_id"] == "chk-123"
    assert stripe.api_key == "sk_test_123"


def test_stripe_create_subscription_builds_price(db_session, session, plan_recurring, stripe_calls):
    handle = StripeGateway().create_subscription(session, plan_recurring)
    assert handle.external_id == "sub_1"
    assert handle.client_secret == "seti_secret"
    assert stripe_calls["price"]["recurring"] == {"interval": "month", "interval_count": 1}
    assert stripe_calls["subscription"]["payment_behavior"] == "default_incomplete"
    assert stripe_calls["subscription"]["items"] == [{"price": "price_1"}]


def test_stripe_uses_configured_price(db_session, session, plan_recurring, stripe_calls):
    plan_recurring.stripe_price_id = "price_fixed"
    StripeGateway().create_subscription(session, plan_recurring)
    assert "price" not in stripe_calls
    assert stripe_calls["subscription"]["items"] == [{"price": "price_fixed"}]


def test_stripe_error_becomes_gateway_error(db_session, session, plan_one_time, monkeypatch):
    def _fail(**k):
        raise stripe.StripeError("boom")
    monkeypatch.setattr(stripe.PaymentIntent, "create", staticmethod(_fail), raising=False)
    with pytest.raises(GatewayError) as exc:
        StripeGateway().create_payment(session, plan_one_time)
    assert exc.value.status_code == 502


def test_stripe_credentials_from_settings(db_session, session, plan_one_time, stripe_calls):
    set_setting("STRIPE_SECRET_KEY", "sk_live_painel")
    StripeGateway().create_payment(session, plan_one_time)
    assert stripe.api_key == "sk_live_painel"


def test_stripe_signature(db_session, monkeypatch):
    gw = StripeGateway()
    assert gw.verify_webhook_signature(b"{}", {}) is False

    def _construct(payload, sig, secret):
        if sig != "t=1,v1=ok":
            raise stripe.SignatureVerificationError("bad", sig)
        return {}
    monkeypatch.setattr(stripe.Webhook, "construct_event", staticmethod(_construct), raising=False)
    assert gw.verify_webhook_signature(b"{}", {"Stripe-Signature": "t=1,v1=ok"}) is True
    assert gw.verify_webhook_signature(b"{}", {"Stripe-Signature": "t=1,v1=bad"}) is False


def _stripe_event(typ, obj, created=1736510400):
    return json.dumps({"id": "evt_1", "type": typ, "created": created, "data": {"object": obj}}).encode()


def test_stripe_parse_payment_intent(db_session):
    ev = StripeGateway().parse_webhook_event(_stripe_event("payment_intent.succeeded", {
        "id": "pi_1", "amount": 9700, "receipt_email": "maria@test.com",
        "metadata": {"pagamento_id": "chk-123"}, "payment_method_types": ["card"],
    }))
    assert ev.event_type == "payment.approved"
    assert ev.external_id == "pi_1"
    assert ev.reference == "chk-123"
    assert ev.amount == 9700
    assert ev.occurred_at == datetime(2025, 1, 10, 12, 0, 0)


def test_stripe_parse_payment_intent_of_invoice_is_ignored(db_session):
    assert StripeGateway().parse_webhook_event(_stripe_event("payment_intent.succeeded", {
        "id": "pi_2", "amount": 100, "metadata": {}})) is None


def test_stripe_parse_invoice_events(db_session):
    gw = StripeGateway()
    ev = gw.parse_webhook_event(_stripe_event("invoice.paid", {
        "id": "in_1", "amount_paid": 19700, "customer_email": "maria@test.com",
        "parent": {"subscription_details": {"subscription": "sub_1", "metadata": {"pagamento_id": "chk-123"}}},
        "lines": {"data": [{"period": {"end": 1739188800}}]},
    }))
    assert ev.event_type == "payment.approved"
    assert ev.subscription_external_id == "sub_1"
    assert ev.reference == "chk-123"
    assert ev.next_billing_date == datetime(2025, 2, 10, 12, 0, 0)

    failed = gw.parse_webhook_event(_stripe_event("invoice.payment_failed", {
        "id": "in_2", "amount_due": 19700, "subscription": "sub_1"}))
    assert failed.event_type == "payment.rejected"
    assert failed.amount == 19700


@pytest.mark.parametrize("typ,status,expected", [
    ("customer.subscription.updated", "active", "subscription.authorized"),
    ("customer.subscription.updated", "past_due", "subscription.paused"),
    ("customer.subscription.paused", "paused", "subscription.paused"),
    ("customer.subscription.deleted", "canceled", "subscription.cancelled"),
    ("customer.subscription.created", "incomplete", None),
])
def test_stripe_parse_subscription_status(db_session, typ, status, expected):
    ev = StripeGateway().parse_webhook_event(_stripe_event(typ, {"id": "sub_1", "status": status}))
    assert (ev.event_type if ev else None) == expected
    if ev:
        assert ev.subscription_external_id == "sub_1"
        assert ev.external_id == "evt_1"


def test_stripe_subscription_status_changes_have_distinct_keys(db_session):
    gw = StripeGateway()
    keys = []
    for evt_id, status in (("evt_a", "active"), ("evt_b", "past_due"), ("evt_c", "active")):
        payload = json.dumps({"id": evt_id, "type": "customer.subscription.updated", "created": 1736510400,
                              "data": {"object": {"id": "sub_1", "status": status}}}).encode()
        ev = gw.parse_webhook_event(payload)
        keys.append((ev.external_id, ev.event_type))
    assert len(set(keys)) == 3


def test_stripe_cancel(db_session, stripe_calls):
    StripeGateway().cancel_subscription("sub_1")
    assert stripe_calls["cancel"] == ("sub_1",)


@pytest.fixture
def stripe_refunds(monkeypatch):
    state = {"refunds": [], "disputes": [], "queries": []}

    def _refunds(**k):
        state["queries"].append(k)
        return _StripeObj(data=state["refunds"])

    def _disputes(**k):
        return _StripeObj(data=state["disputes"])

    monkeypatch.setattr(stripe.Refund, "list", staticmethod(_refunds), raising=False)
    monkeypatch.setattr(stripe.Dispute, "list", staticmethod(_disputes), raising=False)
    monkeypatch.setattr(stripe.Invoice, "retrieve", staticmethod(
        lambda *a, **k: _StripeObj(id="in_1", payments={"data": [{"payment": {"payment_intent": "pi_9"}}]})),
        raising=False)
    return state


def test_stripe_is_refunded(db_session, stripe_refunds):
    gw = StripeGateway()
    assert gw.is_refunded("pi_1") is False

    stripe_refunds["refunds"].append({"id": "re_1"})
    assert gw.is_refunded("pi_1") is True
    # fatura de assinatura consulta o PaymentIntent que a pagou
    assert gw.is_refunded("in_1") is True
    assert stripe_refunds["queries"][-1]["payment_intent"] == "pi_9"


def test_stripe_dispute_counts_as_refund(db_session, stripe_refunds):
    stripe_refunds["disputes"].append({"id": "dp_1"})
    assert StripeGateway().is_refunded("pi_1") is True


# =====================================================================================
# Mercado Pago
# =====================================================================================
class _Resp:
    def __init__(self, status_code=200, json_data=None):
        self.status_code = status_code
        self._json = json_data or {}

    def json(self):
        return self._json


@pytest.fixture
def mp_http(monkeypatch):
    """Registra as chamadas e responde com a fila configurada por rota."""
    state = {"calls": [], "routes": {}}

    def _request(method, url, json=None, headers=None, timeout=None):
        state["calls"].append({"method": method, "url": url, "json": json, "headers": headers, "timeout": timeout})
        for (m, suffix), resp in state["routes"].items():
            if m == method and url.endswith(suffix):
                if isinstance(resp, Exception):
                    raise resp
                return resp
        return _Resp(404, {"message": "not found"})

    monkeypatch.setattr(requests, "request", _request)
    return state


def test_mp_create_preference(db_session, session, plan_one_time, mp_http):
    mp_http["routes"][("POST", "/checkout/preferences")] = _Resp(201, {"id": "pref_1", "init_point": "https://mp/init"})
    handle = MercadoPagoGateway().create_payment(session, plan_one_time)

    assert handle.external_id == "pref_1"
    assert handle.redirect_url == "https://mp/init"
    assert handle.public_key == "TEST-mp-public"
    call = mp_http["calls"][0]
    assert call["headers"]["Authorization"] == "Bearer TEST-mp-token"
    assert call["timeout"] == 15
    body = call["json"]
    assert body["external_reference"] == "chk-123"
    assert body["items"][0]["unit_price"] == 97.0
    assert body["notification_url"] == "https://app.example.test/webhook/mercadopago"
    assert body["payer"]["identification"] == {"type": "CPF", "number": "52998224725"}


def test_mp_process_pix_payment(db_session, session, plan_one_time, mp_http):
    mp_http["routes"][("POST", "/v1/payments")] = _Resp(201, {
        "id": 555, "status": "pending", "status_detail": "pending_waiting_transfer",
        "payment_type_id": "bank_transfer",
        "point_of_interaction": {"transaction_data": {"qr_code": "000201", "qr_code_base64": "iVBOR"}},
    })
    handle = MercadoPagoGateway().create_payment(session, plan_one_time, {"payment_method_id": "pix"})
    assert handle.external_id == "555"
    assert handle.payment_method == "pix"
    assert handle.instructions["qrCode"] == "000201"
    assert mp_http["calls"][0]["headers"]["X-Idempotency-Key"] == "chk-123-0"


def test_mp_preapproval_with_card(db_session, session, plan_recurring, mp_http):
    plan_recurring.frequencia_tipo = "years"
    mp_http["routes"][("POST", "/preapproval")] = _Resp(201, {"id": "pre_1", "status": "authorized"})
    handle = MercadoPagoGateway().create_subscription(
        session, plan_recurring, CardToken(token="card_tok", payer_email="maria@test.com"))
    assert handle.external_id == "pre_1"
    assert handle.status == "authorized"
    body = mp_http["calls"][0]["json"]
    assert body["card_token_id"] == "card_tok"
    assert body["auto_recurring"]["frequency"] == 12
    assert body["auto_recurring"]["frequency_type"] == "months"
    assert body["auto_recurring"]["transaction_amount"] == 197.0


def test_mp_existing_preapproval_is_updated(db_session, session, plan_recurring, mp_http):
    session.gateway_subscription_id = "pre_9"
    mp_http["routes"][("PUT", "/preapproval/pre_9")] = _Resp(200, {"id": "pre_9", "status": "authorized"})
    MercadoPagoGateway().create_subscription(session, plan_recurring, CardToken(token="tok", payer_email="x@y.z"))
    assert mp_http["calls"][0]["method"] == "PUT"
    assert mp_http["calls"][0]["json"] == {"card_token_id": "tok", "status": "authorized"}


def test_mp_cancel(db_session, mp_http):
    mp_http["routes"][("PUT", "/preapproval/pre_1")] = _Resp(200, {"id": "pre_1", "status": "cancelled"})
    MercadoPagoGateway().cancel_subscription("pre_1")
    assert mp_http["calls"][0]["json"] == {"status": "cancelled"}


def test_mp_rejection_and_network_errors(db_session, session, plan_one_time, mp_http):
    gw = MercadoPagoGateway()
    mp_http["routes"][("POST", "/v1/payments")] = _Resp(400, {"message": "invalid card", "error": "bad_request"})
    with pytest.raises(GatewayError) as exc:
        gw.create_payment(session, plan_one_time, {"payment_method_id": "visa", "token": "t"})
    assert exc.value.status_code == 402
    assert exc.value.code == "bad_request"

    mp_http["routes"][("POST", "/v1/payments")] = requests.ConnectionError("timeout")
    with pytest.raises(GatewayError) as exc:
        gw.create_payment(session, plan_one_time, {"payment_method_id": "visa", "token": "t"})
    assert exc.value.status_code == 502


def test_mp_missing_token(db_session, session, plan_one_time, app):
    app.config["MERCADOPAGO_ACCESS_TOKEN"] = ""
    with pytest.raises(GatewayError) as exc:
        MercadoPagoGateway().create_payment(session, plan_one_time)
    assert exc.value.status_code == 503


def _mp_signature(secret, data_id, request_id, ts):
    manifest = signature_manifest(data_id, request_id, ts)
    return hmac.new(secret.encode(), manifest.encode(), hashlib.sha256).hexdigest()


def test_mp_signature(db_session):
    gw = MercadoPagoGateway()
    payload = json.dumps({"type": "payment", "data": {"id": "ABC123"}}).encode()
    v1 = _mp_signature("mp-webhook-secret", "abc123", "req-1", "1704908010")
    headers = {"x-signature": f"ts=1704908010,v1={v1}", "x-request-id": "req-1"}

    assert gw.verify_webhook_signature(payload, headers) is True
    assert gw.verify_webhook_signature(payload, {**headers, "x-request-id": "req-2"}) is False
    assert gw.verify_webhook_signature(payload, {"x-request-id": "req-1"}) is False
    assert gw.verify_webhook_signature(b"nope", headers) is False


def test_parse_signature_header():
    assert parse_signature_header("ts=1,v1=abc") == {"ts": "1", "v1": "abc"}
    assert parse_signature_header(" ts = 2 , v1 = def ") == {"ts": "2", "v1": "def"}
    assert parse_signature_header("") == {}


@pytest.mark.parametrize("status,expected", [
    ("approved", "payment.approved"),
    ("in_process", "payment.pending"),
    ("rejected", "payment.rejected"),
    ("refunded", None),
])
def test_mp_parse_payment(db_session, mp_http, status, expected):
    mp_http["routes"][("GET", "/v1/payments/777")] = _Resp(200, {
        "id": 777, "status": status, "status_detail": "accredited", "transaction_amount": 97.0,
        "external_reference": "chk-123", "payment_type_id": "credit_card",
        "date_approved": "2025-01-10T08:00:00.000-04:00", "payer": {"email": "maria@test.com"},
    })
    payload = json.dumps({"type": "payment", "action": "payment.updated", "data": {"id": "777"}}).encode()
    ev = MercadoPagoGateway().parse_webhook_event(payload)
    assert (ev.event_type if ev else None) == expected
    if ev:
        assert ev.external_id == "777"
        assert ev.amount == 9700
        assert ev.reference == "chk-123"
        assert ev.occurred_at == datetime(2025, 1, 10, 12, 0, 0)


def test_mp_parse_preapproval(db_session, mp_http):
    mp_http["routes"][("GET", "/preapproval/pre_1")] = _Resp(200, {
        "id": "pre_1", "status": "authorized", "external_reference": "chk-123",
        "last_modified": "2025-01-10T12:00:00.000+00:00",
        "next_payment_date": "2025-02-10T12:00:00.000+00:00",
        "auto_recurring": {"transaction_amount": 197.0},
    })
    payload = json.dumps({"id": 7001, "type": "subscription_preapproval", "data": {"id": "pre_1"}}).encode()
    ev = MercadoPagoGateway().parse_webhook_event(payload)
    assert ev.event_type == "subscription.authorized"
    assert ev.external_id == "pre_1@2025-01-10T12:00:00.000+00:00"
    assert ev.subscription_external_id == "pre_1"
    assert ev.next_billing_date == datetime(2025, 2, 10, 12, 0, 0)


def test_mp_preapproval_without_last_modified_uses_notification_id(db_session, mp_http):
    mp_http["routes"][("GET", "/preapproval/pre_1")] = _Resp(200, {"id": "pre_1", "status": "paused"})
    payload = json.dumps({"id": 7002, "type": "subscription_preapproval", "data": {"id": "pre_1"}}).encode()
    ev = MercadoPagoGateway().parse_webhook_event(payload)
    assert ev.event_type == "subscription.paused"
    assert ev.external_id == "pre_1@7002"


@pytest.mark.parametrize("body,expected", [
    ({"id": 777, "status": "approved"}, False),
    ({"id": 777, "status": "refunded"}, True),
    ({"id": 777, "status": "charged_back"}, True),
    ({"id": 777, "status": "approved", "transaction_amount_refunded": 50.0}, True),
])
def test_mp_is_refunded(db_session, mp_http, body, expected):
    mp_http["routes"][("GET", "/v1/payments/777")] = _Resp(200, body)
    assert MercadoPagoGateway().is_refunded("777") is expected


def test_mp_refund_lookup_failure(db_session, mp_http):
    mp_http["routes"][("GET", "/v1/payments/777")] = _Resp(502)
    with pytest.raises(GatewayError):
        MercadoPagoGateway().is_refunded("777")


def test_mp_parse_authorized_payment(db_session, mp_http):
    mp_http["routes"][("GET", "/authorized_payments/6114")] = _Resp(200, {
        "id": 6114, "preapproval_id": "pre_1", "transaction_amount": 197.0,
        "external_reference": "chk-123", "debit_date": "2025-02-10T12:00:00.000+00:00",
        "payment": {"id": 9001, "status": "rejected", "status_detail": "cc_rejected_insufficient_amount"},
    })
    payload = json.dumps({"type": "subscription_authorized_payment", "data": {"id": "6114"}}).encode()
    ev = MercadoPagoGateway().parse_webhook_event(payload)
    assert ev.event_type == "payment.rejected"
    assert ev.external_id == "9001"
    assert ev.subscription_external_id == "pre_1"
    assert ev.status_detail == "cc_rejected_insufficient_amount"


def test_mp_parse_unknown_topic(db_session, mp_http):
    payload = json.dumps({"type": "merchant_order", "data": {"id": "1"}}).encode()
    assert MercadoPagoGateway().parse_webhook_event(payload) is None
    assert mp_http["calls"] == []
