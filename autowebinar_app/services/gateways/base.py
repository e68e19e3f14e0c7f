# autowebinar_app/services/gateways/base.py
# -*- coding: utf-8 -*-
"""
Contrato comum dos gateways de pagamento.

Tudo que sai de um adaptador é normalizado aqui: o restante da aplicação
(checkout, webhooks, assinaturas) nunca vê campos específicos de Stripe ou
Mercado Pago.
"""
from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, asdict
from datetime import datetime

PAYMENT_APPROVED = "payment.approved"
PAYMENT_REJECTED = "payment.rejected"
PAYMENT_PENDING = "payment.pending"
SUBSCRIPTION_AUTHORIZED = "subscription.authorized"
SUBSCRIPTION_PAUSED = "subscription.paused"
SUBSCRIPTION_CANCELLED = "subscription.cancelled"

EVENT_TYPES = (
    PAYMENT_APPROVED,
    PAYMENT_REJECTED,
    PAYMENT_PENDING,
    SUBSCRIPTION_AUTHORIZED,
    SUBSCRIPTION_PAUSED,
    SUBSCRIPTION_CANCELLED,
)


@dataclass
class GatewayHandle:
    """Resultado de uma chamada de criação (pagamento ou assinatura)."""
    external_id: str
    status: str = "pending"
    status_detail: str | None = None
    client_secret: str | None = None     # confirmado no navegador
    redirect_url: str | None = None      # checkout hospedado
    public_key: str | None = None
    payment_method: str | None = None
    instructions: dict = field(default_factory=dict)   # PIX / boleto


@dataclass
class CardToken:
    """Cartão tokenizado no navegador; o servidor nunca recebe o número do cartão."""
    token: str
    payer_email: str
    payment_method_id: str | None = None
    issuer_id: str | None = None


@dataclass
class NormalizedEvent:
    gateway: str
    external_id: str
    event_type: str
    occurred_at: datetime
    amount: int | None = None
    payer_email: str | None = None
    reference: str | None = None                  # id do checkout (CheckoutPagamento)
    subscription_external_id: str | None = None
    payment_method: str | None = None
    status_detail: str | None = None
    next_billing_date: datetime | None = None

    @property
    def is_subscription_event(self) -> bool:
        return self.event_type.startswith("subscription.")

    def to_dict(self) -> dict:
        return asdict(self)


class PaymentGateway(ABC):
    name: str = ""

    @abstractmethod
    def create_payment(self, session, plan, payment_data: dict | None = None) -> GatewayHandle:
        """Cobrança única. Sem ``payment_data`` cria o checkout; com ele processa o pagamento."""

    @abstractmethod
    def create_subscription(self, session, plan, card: CardToken | None = None) -> GatewayHandle:
        """Cobrança recorrente. ``card`` autoriza a assinatura com um cartão tokenizado."""

    @abstractmethod
    def verify_webhook_signature(self, payload: bytes, headers) -> bool:
        ...

    @abstractmethod
    def parse_webhook_event(self, payload: bytes) -> NormalizedEvent | None:
        """Retorna ``None`` para notificações que não alteram o estado de cobrança."""

    @abstractmethod
    def cancel_subscription(self, external_id: str) -> None:
        ...

    @abstractmethod
    def is_refunded(self, payment_external_id: str) -> bool:
        """Cobrança estornada ou contestada (chargeback) no gateway."""


def lower_headers(headers) -> dict:
    return {str(k).lower(): v for k, v in (headers or {}).items()}
