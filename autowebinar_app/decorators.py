# autowebinar_app/decorators.py
# -*- coding: utf-8 -*-
from __future__ import annotations
from functools import wraps
from flask import session

from .errors import AuthError, ForbiddenError
from .extensions import db
from .models import Admin


def current_admin() -> Admin | None:
    """Admin logado (lido de session["user"])."""
    data = session.get("user") or {}
    admin = db.session.get(Admin, data["id"]) if data.get("id") else None
    if admin is not None and not admin.is_active:
        admin = None
    return admin


def login_required(view_func):
    @wraps(view_func)
    def wrapper(*args, **kwargs):
        if current_admin() is None:
            raise AuthError("Faça login para acessar.")
        return view_func(*args, **kwargs)
    return wrapper


def admin_required(view_func):
    @wraps(view_func)
    def wrapper(*args, **kwargs):
        admin = current_admin()
        if admin is None:
            raise AuthError("Faça login para acessar.")
        if not admin.is_superadmin:
            raise ForbiddenError("Acesso restrito ao administrador.")
        return view_func(*args, **kwargs)
    return wrapper
