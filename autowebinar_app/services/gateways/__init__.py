# autowebinar_app/services/gateways/__init__.py
# -*- coding: utf-8 -*-
from __future__ import annotations
from flask import current_app

from ...errors import NotFoundError
from .base import PaymentGateway, GatewayHandle, NormalizedEvent, CardToken
from .stripe_gateway import StripeGateway
from .mercadopago import MercadoPagoGateway


def init_gateways(app):
    """Registra os adaptadores em app.extensions["gateways"] (os testes trocam por fakes)."""
    app.extensions["gateways"] = {
        StripeGateway.name: StripeGateway(),
        MercadoPagoGateway.name: MercadoPagoGateway(),
    }


def get_gateway(name: str) -> PaymentGateway:
    gateways = current_app.extensions.get("gateways")
    if gateways is None:
        init_gateways(current_app)
        gateways = current_app.extensions["gateways"]
    gw = gateways.get((name or "").lower())
    if gw is None:
        raise NotFoundError(f"Gateway desconhecido: {name}")
    return gw


__all__ = [
    "PaymentGateway",
    "GatewayHandle",
    "NormalizedEvent",
    "CardToken",
    "StripeGateway",
    "MercadoPagoGateway",
    "init_gateways",
    "get_gateway",
]
