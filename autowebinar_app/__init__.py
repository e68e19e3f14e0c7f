# autowebinar_app/__init__.py
# -*- coding: utf-8 -*-
from __future__ import annotations

import os

from flask import Flask
from config import Config, TestingConfig, StagingConfig, ProductionConfig
from .blueprints.admin import admin_bp
from .extensions import db, bcrypt, migrate, scheduler, init_extensions, init_scheduler, register_cli
from .errors import register_error_handlers
from .services.gateways import init_gateways
from .blueprints.auth import bp as auth_bp
from .blueprints.checkout import bp as checkout_bp
from .blueprints.webhooks import bp as webhooks_bp
from .blueprints.subscription import bp as subscription_bp
from .blueprints.affiliates import bp as affiliates_bp
from .utils import utcnow

CONFIGS = {
    "testing": TestingConfig,
    "staging": StagingConfig,
    "production": ProductionConfig,
}


def create_app(config_object: type[Config] | None = None) -> Flask:
    app = Flask(__name__)
    if config_object is None:
        config_object = CONFIGS.get(os.getenv("APP_ENV", "").lower(), Config)
    app.config.from_object(config_object)
    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))

    # Extensões (DB/Bcrypt/Migrate)
    init_extensions(app)

    # Gateways de pagamento: app.extensions["gateways"]
    init_gateways(app)
    register_error_handlers(app)
    app.config["STARTED_AT"] = utcnow().strftime("%Y-%m-%d %H:%M:%S UTC")

    # Blueprints
    app.register_blueprint(auth_bp)
    app.register_blueprint(checkout_bp)
    app.register_blueprint(webhooks_bp)
    app.register_blueprint(subscription_bp)
    app.register_blueprint(affiliates_bp)
    app.register_blueprint(admin_bp)
    # CLI (ex.: flask init-db, flask seed-plans)
    register_cli(app)

    # Scheduler (comissões de afiliados / expiração de checkouts)
    if not app.config.get("TESTING") and os.getenv("DISABLE_SCHEDULER") != "1":
        init_scheduler(app)

    return app


__all__ = ["create_app", "db", "bcrypt", "migrate", "scheduler"]
