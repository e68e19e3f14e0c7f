# autowebinar_app/services/settings.py
# -*- coding: utf-8 -*-
from __future__ import annotations
from flask import current_app
from ..extensions import db
from ..models import Setting

CHECKOUT_GROUP = "checkout"


def get_setting(key: str, group: str = CHECKOUT_GROUP, default: str = "") -> str:
    s = Setting.query.filter_by(group=group, key=key).first()
    return s.value if s else default


def set_setting(key: str, value: str, group: str = CHECKOUT_GROUP, secret: bool | None = None) -> Setting:
    s = Setting.query.filter_by(group=group, key=key).first()
    if not s:
        s = Setting(group=group, key=key, value=value, is_secret=bool(secret))
        db.session.add(s)
    else:
        s.value = value
        if secret is not None:
            s.is_secret = secret
    db.session.commit()
    return s


def list_settings(group: str = CHECKOUT_GROUP) -> dict[str, Setting]:
    return {s.key: s for s in Setting.query.filter_by(group=group).all()}


def get_credential(key: str) -> str:
    """Credencial de gateway: o valor salvo no painel tem prioridade sobre o app.config."""
    return get_setting(key) or current_app.config.get(key, "") or ""
