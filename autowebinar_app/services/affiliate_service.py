# autowebinar_app/services/affiliate_service.py
# -*- coding: utf-8 -*-
"""
Afiliados: atribuição (link/cookie), comissão por venda aprovada e saques PIX.

A comissão é observadora do faturamento: registrada na mesma transação do
webhook aprovado, mas só fica disponível depois do período de retenção.
"""
from __future__ import annotations
from datetime import datetime, timedelta

from flask import current_app

from ..errors import ConflictError, GatewayError, NotFoundError, ValidationError
from ..extensions import db
from ..models import (
    Affiliate, AffiliateLink, AffiliateSale, AffiliateWithdrawal, AffiliateConfig, CheckoutPagamento,
)
from ..models.affiliate import MIN_HOLD_DAYS
from ..utils import utcnow, isoformat
from .gateways import get_gateway

PIX_KEY_TYPES = ("cpf", "cnpj", "email", "phone", "random")


def get_config() -> AffiliateConfig:
    cfg = AffiliateConfig.query.order_by(AffiliateConfig.id.asc()).first()
    if cfg is None:
        cfg = AffiliateConfig()
        db.session.add(cfg)
        db.session.flush()
    return cfg


def resolve_link(code: str | None) -> AffiliateLink | None:
    if not code:
        return None
    link = AffiliateLink.query.filter_by(code=code.strip(), is_active=True).first()
    if link is None or link.affiliate is None or link.affiliate.status != "active":
        return None
    return link


def track_click(code: str) -> AffiliateLink | None:
    link = resolve_link(code)
    if link is None:
        return None
    link.clicks = (link.clicks or 0) + 1
    db.session.commit()
    return link


def commission_for(affiliate: Affiliate, amount: int, cfg: AffiliateConfig | None = None) -> tuple[int, int | None]:
    """(comissão em centavos, percentual aplicado). Valor fixo tem prioridade."""
    if affiliate.commission_fixed:
        return min(int(affiliate.commission_fixed), int(amount)), None
    percent = affiliate.commission_percent
    if percent is None:
        percent = (cfg or get_config()).default_commission_percent
    return int(amount) * int(percent) // 100, int(percent)


def record_sale(pagamento, amount: int, now: datetime | None = None) -> AffiliateSale | None:
    """Sem commit: roda dentro da transação do evento aprovado."""
    now = now or utcnow()
    if not pagamento.affiliate_link_code:
        return None
    link = AffiliateLink.query.filter_by(code=pagamento.affiliate_link_code).first()
    if link is None or link.affiliate is None:
        return None
    affiliate = link.affiliate

    if AffiliateSale.query.filter_by(pagamento_id=pagamento.id).first():
        return None
    if pagamento.admin_id and pagamento.admin_id == affiliate.admin_id:
        current_app.logger.info("[affiliate] autoindicação ignorada: pagamento %s", pagamento.id)
        return None

    cfg = get_config()
    commission, percent = commission_for(affiliate, amount, cfg)
    hold = max(int(cfg.hold_days or MIN_HOLD_DAYS), MIN_HOLD_DAYS)
    sale = AffiliateSale(
        affiliate_id=affiliate.id,
        affiliate_link_id=link.id,
        pagamento_id=pagamento.id,
        sale_amount=int(amount),
        commission_amount=commission,
        commission_percent=percent,
        status="pending",
        payout_scheduled_at=now + timedelta(days=hold),
    )
    db.session.add(sale)
    affiliate.pending_amount = (affiliate.pending_amount or 0) + commission
    affiliate.total_earnings = (affiliate.total_earnings or 0) + commission
    link.conversions = (link.conversions or 0) + 1
    current_app.logger.info("[affiliate] venda registrada: afiliado=%s pagamento=%s comissão=%s",
                            affiliate.id, pagamento.id, commission)
    return sale


def release_matured_sales(now: datetime | None = None) -> int:
    """Libera comissões vencidas. Antes confere no gateway se a venda foi estornada.

    Afiliado inativo fica com a venda retida; falha na consulta ao gateway
    deixa a venda pendente para a próxima rodada.
    """
    now = now or utcnow()
    sales = AffiliateSale.query.filter(
        AffiliateSale.status == "pending",
        AffiliateSale.payout_scheduled_at <= now,
    ).all()
    released = refunded = 0
    for sale in sales:
        aff = sale.affiliate
        if aff.status != "active":
            continue
        try:
            was_refunded = _sale_refunded(sale)
        except GatewayError:
            current_app.logger.warning("[affiliate] venda %s: consulta de estorno falhou; fica pendente", sale.id)
            continue

        aff.pending_amount = max((aff.pending_amount or 0) - sale.commission_amount, 0)
        if was_refunded:
            sale.status = "refunded"
            aff.total_earnings = max((aff.total_earnings or 0) - sale.commission_amount, 0)
            refunded += 1
            current_app.logger.info("[affiliate] venda %s estornada; comissão %s descontada",
                                    sale.id, sale.commission_amount)
        else:
            sale.status = "available"
            aff.available_amount = (aff.available_amount or 0) + sale.commission_amount
            released += 1
    db.session.commit()
    if released or refunded:
        current_app.logger.info("[affiliate] %s comissão(ões) liberada(s), %s estornada(s)", released, refunded)
    return released


def _sale_refunded(sale: AffiliateSale) -> bool:
    pagamento = db.session.get(CheckoutPagamento, sale.pagamento_id)
    if pagamento is None or not pagamento.gateway_payment_id:
        return False
    return get_gateway(pagamento.gateway).is_refunded(pagamento.gateway_payment_id)


# -------- saques --------
def request_withdrawal(affiliate: Affiliate, amount, pix_key: str | None = None,
                       pix_key_type: str | None = None) -> AffiliateWithdrawal:
    try:
        amount = int(amount)
    except (TypeError, ValueError):
        raise ValidationError("Valor inválido.", {"amount": "Informe o valor em centavos."})
    cfg = get_config()
    pix_key = pix_key or affiliate.pix_key
    pix_key_type = (pix_key_type or affiliate.pix_key_type or "").lower()

    if not pix_key or pix_key_type not in PIX_KEY_TYPES:
        raise ValidationError("Cadastre uma chave PIX válida.", {"pixKey": "Chave PIX obrigatória."})
    if amount < cfg.min_withdrawal:
        raise ValidationError("Valor abaixo do mínimo para saque.",
                              {"amount": f"Mínimo de {cfg.min_withdrawal} centavos."})
    if amount > (affiliate.available_amount or 0):
        raise ValidationError("Saldo disponível insuficiente.", {"amount": "Saldo insuficiente."})

    w = AffiliateWithdrawal(affiliate_id=affiliate.id, amount=amount, pix_key=pix_key,
                            pix_key_type=pix_key_type, status="pending", requested_at=utcnow())
    affiliate.available_amount -= amount
    db.session.add(w)
    db.session.commit()
    current_app.logger.info("[affiliate] saque solicitado: afiliado=%s valor=%s", affiliate.id, amount)
    return w


def _get_pending_withdrawal(withdrawal_id) -> AffiliateWithdrawal:
    w = db.session.get(AffiliateWithdrawal, int(withdrawal_id))
    if w is None:
        raise NotFoundError("Saque não encontrado.")
    if w.status != "pending":
        raise ConflictError(f"Saque já processado ({w.status}).")
    return w


def mark_withdrawal_paid(withdrawal_id, processed_by, transaction_id: str | None = None) -> AffiliateWithdrawal:
    w = _get_pending_withdrawal(withdrawal_id)
    w.status = "paid"
    w.processed_at = utcnow()
    w.processed_by = processed_by.id
    w.transaction_id = transaction_id
    w.affiliate.paid_amount = (w.affiliate.paid_amount or 0) + w.amount
    db.session.commit()
    return w


def reject_withdrawal(withdrawal_id, processed_by, notes: str | None = None) -> AffiliateWithdrawal:
    w = _get_pending_withdrawal(withdrawal_id)
    w.status = "rejected"
    w.processed_at = utcnow()
    w.processed_by = processed_by.id
    w.notes = notes
    # devolve ao saldo disponível
    w.affiliate.available_amount = (w.affiliate.available_amount or 0) + w.amount
    db.session.commit()
    return w


def affiliate_dashboard(affiliate: Affiliate) -> dict:
    links = affiliate.links.order_by(AffiliateLink.id.asc()).all()
    sales = affiliate.sales.order_by(AffiliateSale.created_at.desc()).limit(50).all()
    withdrawals = affiliate.withdrawals.order_by(AffiliateWithdrawal.requested_at.desc()).limit(50).all()
    return {
        "status": affiliate.status,
        "balances": {
            "total": affiliate.total_earnings,
            "pending": affiliate.pending_amount,
            "available": affiliate.available_amount,
            "paid": affiliate.paid_amount,
        },
        "links": [{"code": l.code, "planoId": l.plano_id, "clicks": l.clicks,
                   "conversions": l.conversions, "isActive": l.is_active} for l in links],
        "sales": [{"id": s.id, "saleAmount": s.sale_amount, "commission": s.commission_amount,
                   "status": s.status, "payoutScheduledAt": isoformat(s.payout_scheduled_at)} for s in sales],
        "withdrawals": [{"id": w.id, "amount": w.amount, "status": w.status,
                         "requestedAt": isoformat(w.requested_at),
                         "processedAt": isoformat(w.processed_at)} for w in withdrawals],
    }
