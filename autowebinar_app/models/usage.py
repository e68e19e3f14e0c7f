# autowebinar_app/models/usage.py
from __future__ import annotations
from datetime import datetime
from ..extensions import db


class AdminUsage(db.Model):
    __tablename__ = "admin_usage"

    id = db.Column(db.Integer, primary_key=True)
    admin_id = db.Column(db.Integer, db.ForeignKey("admins.id"), nullable=False, unique=True, index=True)

    webinars_count = db.Column(db.Integer, nullable=False, default=0)
    uploads_count = db.Column(db.Integer, nullable=False, default=0)
    storage_bytes = db.Column(db.BigInteger, nullable=False, default=0)
    whatsapp_accounts_count = db.Column(db.Integer, nullable=False, default=0)

    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
