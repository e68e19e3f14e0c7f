# autowebinar_app/models/payment.py
# -*- coding: utf-8 -*-
from __future__ import annotations
from datetime import datetime
from ..extensions import db
from ..utils import new_id

# status do checkout
INICIADO = "checkout_iniciado"
PENDING = "pending"
IN_PROCESS = "in_process"
APPROVED = "approved"
REJECTED = "rejected"
EXPIRED = "expired"

OPEN_STATUSES = (INICIADO, PENDING, IN_PROCESS)


class CheckoutPagamento(db.Model):
    """Sessão de checkout: liga o comprador a um plano e a um handle do gateway."""
    __tablename__ = "checkout_pagamentos"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    plano_id = db.Column(db.Integer, db.ForeignKey("checkout_planos.id"), nullable=False)

    nome = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(180), nullable=False, index=True)
    documento = db.Column(db.String(20))
    tipo_documento = db.Column(db.String(4))   # cpf | cnpj
    telefone = db.Column(db.String(30))

    valor = db.Column(db.Integer, nullable=False)   # centavos
    gateway = db.Column(db.String(20), nullable=False)
    status = db.Column(db.String(30), nullable=False, default=INICIADO, index=True)
    status_detail = db.Column(db.String(255))
    metodo_pagamento = db.Column(db.String(30))
    gateway_payment_id = db.Column(db.String(120), index=True)
    gateway_subscription_id = db.Column(db.String(120), index=True)
    is_renovacao = db.Column(db.Boolean, nullable=False, default=False)

    admin_id = db.Column(db.Integer, db.ForeignKey("admins.id"), nullable=True)   # preenchido após aprovação
    affiliate_link_code = db.Column(db.String(60))

    # falhas de pagamento
    gateway_error_code = db.Column(db.String(120))
    user_friendly_error = db.Column(db.String(255))
    failure_attempts = db.Column(db.Integer, nullable=False, default=0)
    last_failure_at = db.Column(db.DateTime)

    data_aprovacao = db.Column(db.DateTime)
    criado_em = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    atualizado_em = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    plano = db.relationship("Plan")
