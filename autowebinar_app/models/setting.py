# autowebinar_app/models/setting.py
# -*- coding: utf-8 -*-
from __future__ import annotations
from datetime import datetime
from ..extensions import db


class Setting(db.Model):
    """Configuração editável pelo painel; credenciais de gateway ficam no grupo "checkout"."""
    __tablename__ = "settings"

    id = db.Column(db.Integer, primary_key=True)
    group = db.Column(db.String(50), index=True, nullable=False, default="checkout")
    key = db.Column(db.String(100), index=True, nullable=False)
    value = db.Column(db.Text, default="")
    # segredos nunca voltam inteiros na API do painel
    is_secret = db.Column(db.Boolean, nullable=False, default=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        db.UniqueConstraint("group", "key", name="uq_settings_group_key"),
    )
