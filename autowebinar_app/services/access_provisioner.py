# autowebinar_app/services/access_provisioner.py
# -*- coding: utf-8 -*-
"""
Projeção Plano -> Admin.

Único ponto que escreve plano_id, access_expires_at, limites, recursos e
situação de cobrança (payment_status) do Admin. Chamado pelo processamento
de webhooks, dentro da transação do evento.
"""
from __future__ import annotations
from datetime import datetime, timedelta

from flask import current_app

from ..models import Admin, Plan
from .plan_catalog import LIMIT_FIELDS, FEATURE_FIELDS


def access_window(plan: Plan, cycle_start: datetime) -> datetime:
    return cycle_start + timedelta(days=int(plan.prazo_dias or 0))


def apply_plan_access(admin: Admin, plan: Plan, cycle_start: datetime) -> Admin:
    admin.plano_id = plan.id
    admin.access_expires_at = access_window(plan, cycle_start)
    for f in LIMIT_FIELDS + FEATURE_FIELDS:
        setattr(admin, f, getattr(plan, f))
    admin.payment_status = "ok"
    admin.payment_failed_reason = None
    current_app.logger.info("[checkout] acesso do admin %s: plano %s até %s",
                            admin.email, plan.id, admin.access_expires_at)
    return admin


def mark_payment_failed(admin: Admin, reason: str | None = None) -> Admin:
    """Sinaliza cobrança com problema sem tocar no acesso já pago."""
    admin.payment_status = "failed"
    admin.payment_failed_reason = reason or admin.payment_failed_reason
    current_app.logger.info("[checkout] cobrança do admin %s com falha: %s",
                            admin.email, admin.payment_failed_reason)
    return admin
