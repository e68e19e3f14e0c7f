# autowebinar_app/blueprints/admin/__init__.py
# -*- coding: utf-8 -*-
from __future__ import annotations
from flask import Blueprint

# painel do superadmin: planos, credenciais de gateway e saques de afiliados
admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")

from . import routes  # noqa: E402,F401
