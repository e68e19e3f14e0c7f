# autowebinar_app/models/plan.py
from __future__ import annotations
from datetime import datetime
from ..extensions import db

ONE_TIME = "unico"
RECURRING = "recorrente"


class Plan(db.Model):
    __tablename__ = "checkout_planos"
    id = db.Column(db.Integer, primary_key=True)
    nome = db.Column(db.String(120), nullable=False)
    descricao = db.Column(db.Text, default="")

    # preço sempre em centavos para evitar float
    preco = db.Column(db.Integer, nullable=False)
    prazo_dias = db.Column(db.Integer, nullable=False, default=30)   # dias de acesso após pagamento

    # limites
    webinar_limit = db.Column(db.Integer, nullable=False, default=5)
    upload_limit = db.Column(db.Integer, nullable=False, default=999)
    storage_limit = db.Column(db.Integer, nullable=False, default=5)           # GB
    whatsapp_account_limit = db.Column(db.Integer, nullable=False, default=2)

    # recursos
    feature_ai = db.Column(db.Boolean, nullable=False, default=False)
    feature_transcricao = db.Column(db.Boolean, nullable=False, default=False)
    feature_designer_ia = db.Column(db.Boolean, nullable=False, default=False)
    feature_gerador_mensagens = db.Column(db.Boolean, nullable=False, default=False)

    # cobrança
    gateway = db.Column(db.String(20), nullable=False, default="mercadopago")   # mercadopago | stripe
    tipo_cobranca = db.Column(db.String(20), nullable=False, default=ONE_TIME)  # unico | recorrente
    frequencia = db.Column(db.Integer, default=1)
    frequencia_tipo = db.Column(db.String(10), default="months")               # days | months | years
    stripe_price_id = db.Column(db.String(120))

    # vitrine
    ativo = db.Column(db.Boolean, nullable=False, default=True, index=True)
    exibir_na_landing = db.Column(db.Boolean, nullable=False, default=True)
    destaque = db.Column(db.Boolean, nullable=False, default=False)
    disponivel_renovacao = db.Column(db.Boolean, nullable=False, default=False)
    beneficios = db.Column(db.Text, default="[]")   # JSON
    ordem = db.Column(db.Integer, nullable=False, default=0)

    criado_em = db.Column(db.DateTime, default=datetime.utcnow)
    atualizado_em = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def is_recurring(self) -> bool:
        return self.tipo_cobranca == RECURRING


class Subscription(db.Model):
    __tablename__ = "checkout_assinaturas"
    id = db.Column(db.Integer, primary_key=True)
    admin_id = db.Column(db.Integer, db.ForeignKey("admins.id"), index=True, nullable=False)
    plano_id = db.Column(db.Integer, db.ForeignKey("checkout_planos.id"), nullable=False)
    pagamento_id = db.Column(db.String(36), db.ForeignKey("checkout_pagamentos.id"), nullable=True)

    gateway = db.Column(db.String(20), nullable=False)
    external_id = db.Column(db.String(120), index=True)   # id da assinatura no gateway
    status = db.Column(db.String(20), nullable=False, default="pending")   # pending, active, paused, cancelled
    next_billing_date = db.Column(db.DateTime)
    cancelled_at = db.Column(db.DateTime)
    # cancelamento local feito, gateway ainda não confirmou (retentado pelo scheduler)
    gateway_cancel_pending = db.Column(db.Boolean, nullable=False, default=False)
    gateway_cancel_error = db.Column(db.String(255))

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    plano = db.relationship("Plan")
    admin = db.relationship("Admin", backref=db.backref("subscriptions", lazy="dynamic"))


class Invoice(db.Model):
    __tablename__ = "faturas"
    id = db.Column(db.Integer, primary_key=True)
    admin_id = db.Column(db.Integer, db.ForeignKey("admins.id"), index=True)
    subscription_id = db.Column(db.Integer, db.ForeignKey("checkout_assinaturas.id"), index=True)
    pagamento_id = db.Column(db.String(36), db.ForeignKey("checkout_pagamentos.id"), index=True)
    plano_id = db.Column(db.Integer, db.ForeignKey("checkout_planos.id"))

    amount = db.Column(db.Integer, default=0)
    status = db.Column(db.String(20), nullable=False, default="pending")   # pending, approved, rejected
    payment_method = db.Column(db.String(30))                              # pix, boleto, credit_card...
    # PSP refs
    gateway = db.Column(db.String(20), nullable=False)
    external_id = db.Column(db.String(120), nullable=False)
    approved_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    __table_args__ = (
        db.UniqueConstraint("gateway", "external_id", name="uq_faturas_gateway_external"),
    )
