# autowebinar_app/blueprints/subscription.py
# -*- coding: utf-8 -*-
from __future__ import annotations
from flask import Blueprint, request, jsonify

from ..decorators import login_required, current_admin
from ..services import subscription_service

bp = Blueprint("subscription", __name__, url_prefix="/api/admin/subscription")


@bp.route("", methods=["GET"])
@login_required
def overview():
    return jsonify(subscription_service.subscription_overview(current_admin()))


@bp.route("/cancel", methods=["POST"])
@login_required
def cancel():
    sub = subscription_service.cancel_subscription(current_admin())
    return jsonify(ok=True, subscription=subscription_service.serialize_subscription(sub))


@bp.route("/renew", methods=["POST"])
@login_required
def renew():
    data = request.get_json(silent=True) or {}
    result = subscription_service.renew_subscription(current_admin(), data.get("planoId"), data)
    return jsonify(result), 201
