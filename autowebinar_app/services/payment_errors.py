# autowebinar_app/services/payment_errors.py
# -*- coding: utf-8 -*-
"""Mensagens amigáveis para recusas de pagamento (status_detail do MP / decline_code do Stripe)."""
from __future__ import annotations
from typing import NamedTuple


class FriendlyError(NamedTuple):
    message: str
    action: str
    retryable: bool

    def to_dict(self) -> dict:
        return {"message": self.message, "action": self.action, "retryable": self.retryable}


DEFAULT = FriendlyError(
    "Não foi possível processar o pagamento.",
    "Por favor, tente novamente ou use outro método de pagamento.",
    True,
)

MERCADOPAGO_ERRORS = {
    "cc_rejected_bad_filled_card_number": FriendlyError(
        "O número do cartão está incorreto.",
        "Verifique o número do cartão e tente novamente.", True),
    "cc_rejected_bad_filled_date": FriendlyError(
        "A data de validade está incorreta.",
        "Verifique a data de validade do cartão e tente novamente.", True),
    "cc_rejected_bad_filled_other": FriendlyError(
        "Alguns dados do cartão estão incorretos.",
        "Revise os dados do cartão e tente novamente.", True),
    "cc_rejected_bad_filled_security_code": FriendlyError(
        "O código de segurança (CVV) está incorreto.",
        "Verifique o código de segurança no verso do cartão.", True),
    "cc_rejected_blacklist": FriendlyError(
        "O cartão não pode ser processado por motivos de segurança.",
        "Utilize outro cartão ou método de pagamento.", False),
    "cc_rejected_call_for_authorize": FriendlyError(
        "Seu cartão requer autorização prévia para esta compra.",
        "Ligue para o banco, autorize o pagamento e tente novamente.", True),
    "cc_rejected_card_disabled": FriendlyError(
        "Seu cartão está desabilitado para compras online.",
        "Habilite compras online com o banco ou use outro cartão.", True),
    "cc_rejected_duplicated_payment": FriendlyError(
        "Pagamento duplicado detectado.",
        "Aguarde alguns minutos antes de tentar novamente.", False),
    "cc_rejected_high_risk": FriendlyError(
        "O pagamento foi recusado por medidas de segurança.",
        "Utilize outro cartão ou pague com PIX.", False),
    "cc_rejected_insufficient_amount": FriendlyError(
        "Seu cartão não possui limite suficiente.",
        "Verifique o limite disponível ou use outro cartão.", True),
    "cc_rejected_invalid_installments": FriendlyError(
        "O número de parcelas selecionado não é permitido.",
        "Escolha um número diferente de parcelas.", True),
    "cc_rejected_max_attempts": FriendlyError(
        "Número máximo de tentativas excedido.",
        "Aguarde alguns minutos ou use outro cartão.", True),
    "cc_rejected_other_reason": FriendlyError(
        "O pagamento foi recusado pelo banco emissor.",
        "Entre em contato com o banco ou tente outro cartão.", True),
    "pending_contingency": FriendlyError(
        "O pagamento está sendo processado.",
        "Aguarde a confirmação por e-mail.", False),
    "pending_review_manual": FriendlyError(
        "O pagamento está em análise.",
        "Aguarde a análise; você receberá o resultado por e-mail.", False),
    "rejected_by_bank": FriendlyError(
        "O pagamento foi recusado pelo banco.",
        "Entre em contato com o banco ou use outro método de pagamento.", True),
    "rejected_insufficient_data": FriendlyError(
        "Dados insuficientes para processar o pagamento.",
        "Verifique todos os dados e tente novamente.", True),
}

STRIPE_ERRORS = {
    "authentication_required": FriendlyError(
        "Autenticação adicional necessária.",
        "Conclua a autenticação 3D Secure solicitada pelo banco.", True),
    "card_declined": FriendlyError(
        "O cartão foi recusado.",
        "Entre em contato com o banco ou use outro cartão.", True),
    "do_not_honor": FriendlyError(
        "O cartão foi recusado.",
        "Entre em contato com o banco ou use outro cartão.", True),
    "expired_card": FriendlyError(
        "O cartão está vencido.",
        "Use um cartão dentro da validade.", True),
    "fraudulent": FriendlyError(
        "O pagamento foi recusado por medidas de segurança.",
        "Use outro cartão ou método de pagamento.", False),
    "incorrect_cvc": FriendlyError(
        "O código de segurança (CVC) está incorreto.",
        "Verifique o código de segurança e tente novamente.", True),
    "insufficient_funds": FriendlyError(
        "Saldo ou limite insuficiente.",
        "Verifique o limite disponível ou use outro cartão.", True),
    "lost_card": FriendlyError(
        "O cartão não pode ser utilizado.",
        "Use outro cartão.", False),
    "stolen_card": FriendlyError(
        "O cartão não pode ser utilizado.",
        "Use outro cartão.", False),
    "processing_error": FriendlyError(
        "Houve um erro ao processar o cartão.",
        "Tente novamente em alguns instantes.", True),
}


def mercadopago_error(status_detail: str | None) -> FriendlyError:
    return MERCADOPAGO_ERRORS.get(status_detail or "", DEFAULT)


def stripe_error(decline_code: str | None) -> FriendlyError:
    return STRIPE_ERRORS.get(decline_code or "", DEFAULT)


def friendly_error(gateway: str, code: str | None) -> FriendlyError:
    if gateway == "stripe":
        return stripe_error(code)
    return mercadopago_error(code)
