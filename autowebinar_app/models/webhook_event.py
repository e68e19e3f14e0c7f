# autowebinar_app/models/webhook_event.py
from __future__ import annotations
from datetime import datetime
from ..extensions import db


class WebhookEvent(db.Model):
    """Chave de idempotência dos eventos já aplicados."""
    __tablename__ = "webhook_events"

    id = db.Column(db.Integer, primary_key=True)
    gateway = db.Column(db.String(20), nullable=False)
    external_id = db.Column(db.String(120), nullable=False)
    event_type = db.Column(db.String(40), nullable=False)
    received_at = db.Column(db.DateTime, default=datetime.utcnow)

    __table_args__ = (
        db.UniqueConstraint("gateway", "external_id", "event_type", name="uq_webhook_event_key"),
    )
