# autowebinar_app/extensions.py
# -*- coding: utf-8 -*-
from __future__ import annotations
import click
from flask_sqlalchemy import SQLAlchemy
from flask_bcrypt import Bcrypt
from flask_migrate import Migrate
from apscheduler.schedulers.background import BackgroundScheduler
from sqlalchemy import text


db = SQLAlchemy()
bcrypt = Bcrypt()
migrate = Migrate()
scheduler = BackgroundScheduler(daemon=True)


def init_extensions(app):
    # DB/Bcrypt/Migrate
    db.init_app(app)
    bcrypt.init_app(app)
    migrate.init_app(app, db)


def init_scheduler(app):
    """Registra os jobs periódicos do checkout."""
    from .services.jobs import run_expire_checkouts, run_release_affiliate_sales, run_retry_gateway_cancellations

    scheduler.add_job(run_release_affiliate_sales, "interval", hours=1, args=[app],
                      id="release_affiliate_sales", replace_existing=True)
    scheduler.add_job(run_expire_checkouts, "interval", minutes=5, args=[app],
                      id="expire_checkouts", replace_existing=True)
    scheduler.add_job(run_retry_gateway_cancellations, "interval", minutes=30, args=[app],
                      id="retry_gateway_cancellations", replace_existing=True)
    if not scheduler.running:
        scheduler.start()


def register_cli(app):
    @app.cli.command("init-db")
    def init_db_cmd():
        """Cria as tabelas iniciais (DEV/MVP). Para produção: use flask db upgrade."""
        with app.app_context():
            # sanity check
            db.session.execute(text("SELECT 1"))
            db.create_all()
            click.echo("Tabelas criadas.")

    @app.cli.command("seed-plans")
    def seed_plans_cmd():
        """Cria os planos padrão caso o catálogo esteja vazio."""
        from .services.plan_catalog import seed_default_plans
        with app.app_context():
            created = seed_default_plans()
            click.echo(f"{created} plano(s) criado(s).")

    @app.cli.command("release-affiliate-sales")
    def release_affiliate_sales_cmd():
        """Libera para saque as comissões que passaram do período de retenção."""
        from .services.affiliate_service import release_matured_sales
        with app.app_context():
            released = release_matured_sales()
            click.echo(f"{released} venda(s) liberada(s).")

    @app.cli.command("expire-checkouts")
    def expire_checkouts_cmd():
        """Marca como expirados os checkouts não confirmados."""
        from .services.checkout_service import expire_stale_checkouts
        with app.app_context():
            expired = expire_stale_checkouts()
            click.echo(f"{expired} checkout(s) expirado(s).")

    @app.cli.command("retry-gateway-cancellations")
    def retry_gateway_cancellations_cmd():
        """Reenvia ao gateway os cancelamentos de assinaturas substituídas que falharam."""
        from .services.subscription_service import retry_pending_cancellations
        with app.app_context():
            done = retry_pending_cancellations()
            click.echo(f"{done} cancelamento(s) confirmado(s).")
