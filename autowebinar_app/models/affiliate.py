# autowebinar_app/models/affiliate.py
from __future__ import annotations
from datetime import datetime
from ..extensions import db

MIN_HOLD_DAYS = 7


class Affiliate(db.Model):
    __tablename__ = "affiliates"
    id = db.Column(db.Integer, primary_key=True)
    admin_id = db.Column(db.Integer, db.ForeignKey("admins.id"), nullable=False, unique=True, index=True)
    status = db.Column(db.String(20), nullable=False, default="pending")   # pending, active, suspended, inactive
    commission_percent = db.Column(db.Integer, nullable=False, default=30)
    commission_fixed = db.Column(db.Integer)   # centavos, opcional
    pix_key = db.Column(db.String(140))
    pix_key_type = db.Column(db.String(10))    # cpf, cnpj, email, phone, random

    # saldos (centavos)
    total_earnings = db.Column(db.Integer, nullable=False, default=0)
    pending_amount = db.Column(db.Integer, nullable=False, default=0)
    available_amount = db.Column(db.Integer, nullable=False, default=0)
    paid_amount = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    admin = db.relationship("Admin", backref=db.backref("affiliate", uselist=False))


class AffiliateLink(db.Model):
    __tablename__ = "affiliate_links"
    id = db.Column(db.Integer, primary_key=True)
    affiliate_id = db.Column(db.Integer, db.ForeignKey("affiliates.id"), nullable=False, index=True)
    code = db.Column(db.String(60), unique=True, nullable=False)
    plano_id = db.Column(db.Integer, db.ForeignKey("checkout_planos.id"), nullable=True)   # null = checkout geral
    clicks = db.Column(db.Integer, nullable=False, default=0)
    conversions = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    affiliate = db.relationship("Affiliate", backref=db.backref("links", lazy="dynamic"))


class AffiliateSale(db.Model):
    __tablename__ = "affiliate_sales"
    id = db.Column(db.Integer, primary_key=True)
    affiliate_id = db.Column(db.Integer, db.ForeignKey("affiliates.id"), nullable=False, index=True)
    affiliate_link_id = db.Column(db.Integer, db.ForeignKey("affiliate_links.id"))
    # uma venda por checkout
    pagamento_id = db.Column(db.String(36), db.ForeignKey("checkout_pagamentos.id"), nullable=False, unique=True)
    sale_amount = db.Column(db.Integer, nullable=False)
    commission_amount = db.Column(db.Integer, nullable=False)
    commission_percent = db.Column(db.Integer)
    status = db.Column(db.String(20), nullable=False, default="pending", index=True)   # pending, available, refunded
    payout_scheduled_at = db.Column(db.DateTime, index=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    affiliate = db.relationship("Affiliate", backref=db.backref("sales", lazy="dynamic"))


class AffiliateWithdrawal(db.Model):
    __tablename__ = "affiliate_withdrawals"
    id = db.Column(db.Integer, primary_key=True)
    affiliate_id = db.Column(db.Integer, db.ForeignKey("affiliates.id"), nullable=False, index=True)
    amount = db.Column(db.Integer, nullable=False)
    pix_key = db.Column(db.String(140), nullable=False)
    pix_key_type = db.Column(db.String(10), nullable=False)
    status = db.Column(db.String(20), nullable=False, default="pending")   # pending, paid, rejected
    requested_at = db.Column(db.DateTime, default=datetime.utcnow)
    processed_at = db.Column(db.DateTime)
    processed_by = db.Column(db.Integer, db.ForeignKey("admins.id"))
    transaction_id = db.Column(db.String(120))
    notes = db.Column(db.Text)

    affiliate = db.relationship("Affiliate", backref=db.backref("withdrawals", lazy="dynamic"))


class AffiliateConfig(db.Model):
    __tablename__ = "affiliate_config"
    id = db.Column(db.Integer, primary_key=True)
    default_commission_percent = db.Column(db.Integer, nullable=False, default=30)
    min_withdrawal = db.Column(db.Integer, nullable=False, default=5000)   # R$ 50,00
    hold_days = db.Column(db.Integer, nullable=False, default=MIN_HOLD_DAYS)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
