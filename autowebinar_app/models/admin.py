# autowebinar_app/models/admin.py
# -*- coding: utf-8 -*-
from __future__ import annotations
from datetime import datetime
from ..extensions import db, bcrypt


class Admin(db.Model):
    """Conta do cliente (tenant). Limites e expiração são projeções do plano ativo."""
    __tablename__ = "admins"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), default="Administrador")
    email = db.Column(db.String(180), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    telefone = db.Column(db.String(30))
    role = db.Column(db.String(20), nullable=False, default="user")   # user | superadmin
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    # escritos somente pelo access_provisioner
    plano_id = db.Column(db.Integer, db.ForeignKey("checkout_planos.id"), nullable=True)
    access_expires_at = db.Column(db.DateTime, nullable=True)   # null = sem expiração
    webinar_limit = db.Column(db.Integer, nullable=False, default=0)
    upload_limit = db.Column(db.Integer, nullable=False, default=0)
    storage_limit = db.Column(db.Integer, nullable=False, default=0)           # GB
    whatsapp_account_limit = db.Column(db.Integer, nullable=False, default=0)
    feature_ai = db.Column(db.Boolean, nullable=False, default=False)
    feature_transcricao = db.Column(db.Boolean, nullable=False, default=False)
    feature_designer_ia = db.Column(db.Boolean, nullable=False, default=False)
    feature_gerador_mensagens = db.Column(db.Boolean, nullable=False, default=False)

    payment_status = db.Column(db.String(20), default="ok")   # ok | failed | pending
    payment_failed_reason = db.Column(db.String(255))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    plano = db.relationship("Plan")

    @property
    def is_superadmin(self) -> bool:
        return self.role == "superadmin"

    def has_access(self, now: datetime) -> bool:
        if not self.is_active:
            return False
        return self.access_expires_at is None or self.access_expires_at > now

    def set_password(self, raw: str) -> None:
        self.password_hash = bcrypt.generate_password_hash(raw).decode("utf-8")

    def check_password(self, raw: str) -> bool:
        return bcrypt.check_password_hash(self.password_hash, raw)
