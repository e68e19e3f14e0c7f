# autowebinar_app/services/jobs.py
# -*- coding: utf-8 -*-
"""Jobs do APScheduler. Rodam fora de request: cada um abre seu app_context."""
from __future__ import annotations


def run_release_affiliate_sales(app):
    from .affiliate_service import release_matured_sales
    with app.app_context():
        try:
            n = release_matured_sales()
            app.logger.info("[scheduler] release_affiliate_sales: %s venda(s)", n)
        except Exception:
            app.logger.exception("[scheduler] release_affiliate_sales falhou")
            raise


def run_expire_checkouts(app):
    from .checkout_service import expire_stale_checkouts
    with app.app_context():
        try:
            n = expire_stale_checkouts()
            app.logger.info("[scheduler] expire_checkouts: %s sessão(ões)", n)
        except Exception:
            app.logger.exception("[scheduler] expire_checkouts falhou")
            raise


def run_retry_gateway_cancellations(app):
    from .subscription_service import retry_pending_cancellations
    with app.app_context():
        try:
            n = retry_pending_cancellations()
            app.logger.info("[scheduler] retry_gateway_cancellations: %s confirmado(s)", n)
        except Exception:
            app.logger.exception("[scheduler] retry_gateway_cancellations falhou")
            raise
