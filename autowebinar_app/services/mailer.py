# autowebinar_app/services/mailer.py
# -*- coding: utf-8 -*-
"""E-mail transacional via API HTTP do Resend."""
from __future__ import annotations

import requests
from flask import current_app


def send_email(to: str, subject: str, text: str) -> bool:
    """Envia e retorna True/False. Falha de entrega é logada e não interrompe quem chamou."""
    api_key = current_app.config.get("RESEND_API_KEY")
    if not api_key:
        current_app.logger.warning("[mail] RESEND_API_KEY não configurado; '%s' para %s não enviado",
                                   subject, to)
        return False

    body = {"from": current_app.config.get("MAIL_FROM"), "to": [to], "subject": subject, "text": text}
    try:
        resp = requests.post(current_app.config.get("RESEND_API_URL", "https://api.resend.com/emails"),
                             json=body, headers={"Authorization": f"Bearer {api_key}"},
                             timeout=current_app.config.get("GATEWAY_TIMEOUT", 15))
    except requests.RequestException:
        current_app.logger.exception("[mail] envio de '%s' para %s falhou", subject, to)
        return False

    if resp.status_code >= 400:
        current_app.logger.error("[mail] resend -> %s ao enviar '%s' para %s", resp.status_code, subject, to)
        return False
    current_app.logger.info("[mail] '%s' enviado para %s", subject, to)
    return True
