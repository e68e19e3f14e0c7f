# autowebinar_app/models/__init__.py
# -*- coding: utf-8 -*-
from .admin import Admin
from .plan import Plan, Subscription, Invoice
from .payment import CheckoutPagamento
from .webhook_event import WebhookEvent
from .setting import Setting
from .usage import AdminUsage
from .affiliate import (
    Affiliate,
    AffiliateLink,
    AffiliateSale,
    AffiliateWithdrawal,
    AffiliateConfig,
)


__all__ = [
    "Admin",
    "Plan",
    "Subscription",
    "Invoice",
    "CheckoutPagamento",
    "WebhookEvent",
    "Setting",
    "AdminUsage",
    "Affiliate",
    "AffiliateLink",
    "AffiliateSale",
    "AffiliateWithdrawal",
    "AffiliateConfig",
]
