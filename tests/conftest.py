# tests/conftest.py
# -*- coding: utf-8 -*-
import json
import os
import uuid

import pytest

from autowebinar_app.services.gateways.base import PaymentGateway, GatewayHandle, NormalizedEvent
from autowebinar_app.utils import utcnow, parse_iso


# =====================================================================================
# Ambiente de testes unitários (sem serviços externos)
# =====================================================================================
@pytest.fixture(autouse=True, scope="session")
def _testing_env():
    os.environ["APP_ENV"] = "testing"
    os.environ["DISABLE_SCHEDULER"] = "1"
    yield


# =====================================================================================
# App Flask com SQLite em memória; schema recriado a cada teste
# =====================================================================================
@pytest.fixture
def app():
    from config import TestingConfig
    from autowebinar_app import create_app
    from autowebinar_app.extensions import db

    app = create_app(TestingConfig)
    with app.app_context():
        db.create_all()

    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def db_session(app):
    from autowebinar_app.extensions import db
    with app.app_context():
        try:
            yield db.session
        finally:
            db.session.rollback()
            db.session.close()


# =====================================================================================
# Gateway fake: substitui os adaptadores reais em app.extensions["gateways"]
# =====================================================================================
class FakeGateway(PaymentGateway):
    def __init__(self, name):
        self.name = name
        self.calls = []
        self.fail = None                 # GatewayError a levantar na próxima chamada
        self.signature_ok = True
        self.payment_status = "approved"
        self.payment_status_detail = "accredited"
        self.payment_method = "credit_card"
        self.instructions = {}
        self.refunded = set()            # ids de pagamento estornados

    def _maybe_fail(self):
        if self.fail is not None:
            raise self.fail

    def create_payment(self, session, plan, payment_data=None):
        self.calls.append(("create_payment", session.id, plan.id, payment_data))
        self._maybe_fail()
        if payment_data:
            return GatewayHandle(
                external_id=f"pay_{uuid.uuid4().hex[:8]}",
                status=self.payment_status,
                status_detail=self.payment_status_detail,
                payment_method=self.payment_method,
                instructions=self.instructions,
            )
        return GatewayHandle(
            external_id=f"{self.name}_pref_{uuid.uuid4().hex[:8]}",
            client_secret="cs_test_secret" if self.name == "stripe" else None,
            redirect_url=None if self.name == "stripe" else "https://mp.example/init",
            public_key=f"{self.name}-public",
        )

    def create_subscription(self, session, plan, card=None):
        self.calls.append(("create_subscription", session.id, plan.id, card))
        self._maybe_fail()
        return GatewayHandle(
            external_id=session.gateway_subscription_id or f"sub_{uuid.uuid4().hex[:8]}",
            status="authorized" if card else "pending",
            client_secret="cs_sub_secret" if self.name == "stripe" else None,
            public_key=f"{self.name}-public",
        )

    def verify_webhook_signature(self, payload, headers):
        return self.signature_ok

    def parse_webhook_event(self, payload):
        data = json.loads(payload)
        if not data.get("event_type"):
            return None
        return NormalizedEvent(
            gateway=self.name,
            external_id=data["external_id"],
            event_type=data["event_type"],
            occurred_at=parse_iso(data.get("occurred_at")) or utcnow(),
            amount=data.get("amount"),
            payer_email=data.get("payer_email"),
            reference=data.get("reference"),
            subscription_external_id=data.get("subscription_external_id"),
            payment_method=data.get("payment_method"),
            status_detail=data.get("status_detail"),
            next_billing_date=parse_iso(data.get("next_billing_date")),
        )

    def cancel_subscription(self, external_id):
        self.calls.append(("cancel_subscription", external_id))
        self._maybe_fail()

    def is_refunded(self, payment_external_id):
        self.calls.append(("is_refunded", payment_external_id))
        self._maybe_fail()
        return payment_external_id in self.refunded


@pytest.fixture(autouse=True)
def gateways(app):
    fakes = {"stripe": FakeGateway("stripe"), "mercadopago": FakeGateway("mercadopago")}
    app.extensions["gateways"] = fakes
    yield fakes


@pytest.fixture
def post_event(client):
    """Envia um evento (já no formato normalizado do FakeGateway) para /webhook/<gateway>."""
    def _post(gateway, **fields):
        for k, v in list(fields.items()):
            if hasattr(v, "isoformat"):
                fields[k] = v.isoformat()
        r = client.post(f"/webhook/{gateway}", data=json.dumps(fields),
                        content_type="application/json")
        assert r.status_code == 200
        return r.get_json()["result"]
    return _post


# =====================================================================================
# Usuários e clientes logados
# =====================================================================================
@pytest.fixture
def admin(db_session):
    from autowebinar_app.models import Admin
    a = Admin(name="Cliente", email="cliente@test.com", telefone="11999990000", role="user")
    a.set_password("secret123")
    db_session.add(a); db_session.commit()
    return a


@pytest.fixture
def superadmin(db_session):
    from autowebinar_app.models import Admin
    a = Admin(name="Super", email="super@test.com", role="superadmin")
    a.set_password("secret123")
    db_session.add(a); db_session.commit()
    return a


def _login(client, admin):
    with client.session_transaction() as sess:
        sess["user"] = {"id": admin.id, "email": admin.email, "role": admin.role}
    return client


@pytest.fixture
def logged_client(client, admin):
    return _login(client, admin)


@pytest.fixture
def logged_superadmin(app, superadmin):
    return _login(app.test_client(), superadmin)


# =====================================================================================
# Planos
#   - plan_one_time: "Plano A", R$ 97,00, 30 dias, Mercado Pago, cobrança única
#   - plan_recurring: "Plano B", R$ 197,00/mês, Stripe, recorrente
# =====================================================================================
@pytest.fixture
def plan_one_time(db_session):
    from autowebinar_app.models import Plan
    p = Plan(nome="Plano A", preco=9700, prazo_dias=30, gateway="mercadopago", tipo_cobranca="unico",
             webinar_limit=5, upload_limit=100, storage_limit=5, whatsapp_account_limit=1, ordem=1)
    db_session.add(p); db_session.commit()
    return p


@pytest.fixture
def plan_recurring(db_session):
    from autowebinar_app.models import Plan
    p = Plan(nome="Plano B", preco=19700, prazo_dias=30, gateway="stripe", tipo_cobranca="recorrente",
             frequencia=1, frequencia_tipo="months", webinar_limit=10, upload_limit=999,
             storage_limit=20, whatsapp_account_limit=3, feature_ai=True, feature_transcricao=True, ordem=2)
    db_session.add(p); db_session.commit()
    return p


@pytest.fixture
def buyer():
    return {
        "nome": "Maria Souza",
        "email": "maria@test.com",
        "telefone": "(11) 98888-7777",
        "documento": "529.982.247-25",
        "tipoDocumento": "cpf",
    }


# =====================================================================================
# E-mail: envio ligado com a API do Resend capturada
# =====================================================================================
@pytest.fixture
def sent_emails(app, monkeypatch):
    import requests
    sent = []

    class _Ok:
        status_code = 200

    def _post(url, json=None, headers=None, timeout=None):
        sent.append(json)
        return _Ok()

    app.config["RESEND_API_KEY"] = "re_test"
    monkeypatch.setattr(requests, "post", _post)
    return sent
