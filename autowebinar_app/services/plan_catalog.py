# autowebinar_app/services/plan_catalog.py
# -*- coding: utf-8 -*-
from __future__ import annotations
import json
from decimal import Decimal, InvalidOperation

from flask import current_app

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import Plan
from ..models.plan import ONE_TIME, RECURRING
from ..utils import isoformat

RENEW = "renew"
UPGRADE = "upgrade"
NEW = "new"

PURCHASE_LABELS = {
    RENEW: "Renovar",
    UPGRADE: "Fazer Upgrade",
    NEW: "Assinar",
}

GATEWAYS = ("mercadopago", "stripe")
FREQUENCY_TYPES = ("days", "months", "years")

LIMIT_FIELDS = ("webinar_limit", "upload_limit", "storage_limit", "whatsapp_account_limit")
FEATURE_FIELDS = ("feature_ai", "feature_transcricao", "feature_designer_ia", "feature_gerador_mensagens")


def list_active_plans(landing_only: bool = False) -> list[Plan]:
    q = Plan.query.filter(Plan.ativo.is_(True))
    if landing_only:
        q = q.filter(Plan.exibir_na_landing.is_(True))
    return q.order_by(Plan.ordem.asc(), Plan.id.asc()).all()


def get_plan(plan_id, active_only: bool = False) -> Plan:
    plan = db.session.get(Plan, int(plan_id)) if str(plan_id).isdigit() else None
    if plan is None or (active_only and not plan.ativo):
        raise NotFoundError("Plano não encontrado.")
    return plan


def classify_purchase(admin, plan: Plan) -> str:
    """renew = mesmo plano; upgrade = preço maior que o atual; o resto é compra nova."""
    if admin is None or not admin.plano_id:
        return NEW
    if admin.plano_id == plan.id:
        return RENEW
    current = db.session.get(Plan, admin.plano_id)
    if current is not None and plan.preco > current.preco:
        return UPGRADE
    return NEW


def _beneficios(plan: Plan) -> list:
    try:
        data = json.loads(plan.beneficios or "[]")
    except ValueError:
        return []
    return data if isinstance(data, list) else []


def serialize_plan(plan: Plan, admin=None) -> dict:
    data = {
        "id": plan.id,
        "nome": plan.nome,
        "descricao": plan.descricao or "",
        "preco": plan.preco,
        "prazoDias": plan.prazo_dias,
        "gateway": plan.gateway,
        "tipoCobranca": plan.tipo_cobranca,
        "frequencia": plan.frequencia,
        "frequenciaTipo": plan.frequencia_tipo,
        "isRecurring": plan.is_recurring,
        "destaque": bool(plan.destaque),
        "exibirNaLanding": bool(plan.exibir_na_landing),
        "disponivelRenovacao": bool(plan.disponivel_renovacao),
        "ativo": bool(plan.ativo),
        "ordem": plan.ordem,
        "beneficios": _beneficios(plan),
        "limites": {f: getattr(plan, f) for f in LIMIT_FIELDS},
        "recursos": {f: bool(getattr(plan, f)) for f in FEATURE_FIELDS},
        "atualizadoEm": isoformat(plan.atualizado_em),
    }
    if admin is not None:
        acao = classify_purchase(admin, plan)
        data["acao"] = acao
        data["acaoLabel"] = PURCHASE_LABELS[acao]
    return data


# -------- administração (superadmin) --------
def to_cents(v) -> int:
    """Aceita centavos (int) ou texto em reais: '97,00', '1.297,90'."""
    if v is None or v == "":
        return 0
    if isinstance(v, int):
        return v
    s = str(v).strip().replace("R$", "").strip()
    if "," in s:
        s = s.replace(".", "").replace(",", ".")
    try:
        return int(Decimal(s) * 100)
    except InvalidOperation:
        raise ValidationError("Preço inválido.", {"preco": "Informe um valor como 97,00"})


def _bool(v) -> bool:
    if isinstance(v, str):
        return v.strip().lower() in ("1", "true", "on", "sim", "yes")
    return bool(v)


def _apply(plan: Plan, data: dict) -> None:
    if "nome" in data:
        plan.nome = (data.get("nome") or "").strip()
    if "descricao" in data:
        plan.descricao = data.get("descricao") or ""
    if "preco" in data:
        plan.preco = to_cents(data.get("preco"))
    if "prazo_dias" in data:
        plan.prazo_dias = int(data.get("prazo_dias") or 30)
    for f in LIMIT_FIELDS + ("frequencia", "ordem"):
        if f in data:
            setattr(plan, f, int(data.get(f) or 0))
    for f in FEATURE_FIELDS + ("ativo", "exibir_na_landing", "destaque", "disponivel_renovacao"):
        if f in data:
            setattr(plan, f, _bool(data.get(f)))
    if "gateway" in data:
        plan.gateway = data.get("gateway")
    if "tipo_cobranca" in data:
        plan.tipo_cobranca = data.get("tipo_cobranca")
    if "frequencia_tipo" in data:
        plan.frequencia_tipo = data.get("frequencia_tipo")
    if "stripe_price_id" in data:
        plan.stripe_price_id = data.get("stripe_price_id") or None
    if "beneficios" in data:
        b = data.get("beneficios")
        plan.beneficios = json.dumps(b if isinstance(b, list) else [], ensure_ascii=False)


def _validate(plan: Plan) -> None:
    errors = {}
    if not plan.nome:
        errors["nome"] = "Nome é obrigatório."
    if plan.preco is None or plan.preco <= 0:
        errors["preco"] = "Preço deve ser maior que zero."
    if not plan.prazo_dias or plan.prazo_dias <= 0:
        errors["prazo_dias"] = "Prazo deve ser maior que zero."
    if plan.gateway not in GATEWAYS:
        errors["gateway"] = "Gateway inválido."
    if plan.tipo_cobranca not in (ONE_TIME, RECURRING):
        errors["tipo_cobranca"] = "Tipo de cobrança inválido."
    if plan.frequencia_tipo not in FREQUENCY_TYPES:
        errors["frequencia_tipo"] = "Frequência inválida."
    if errors:
        raise ValidationError("Dados do plano inválidos.", errors)


def create_plan(data: dict) -> Plan:
    plan = Plan(gateway="mercadopago", tipo_cobranca=ONE_TIME, frequencia=1, frequencia_tipo="months",
                prazo_dias=30, preco=0, nome="")
    _apply(plan, data)
    _validate(plan)
    db.session.add(plan)
    db.session.commit()
    current_app.logger.info("[checkout] plano criado: %s (%s)", plan.nome, plan.id)
    return plan


def update_plan(plan: Plan, data: dict) -> Plan:
    """Alterar preço não mexe em assinaturas existentes (o valor delas foi fixado no gateway)."""
    _apply(plan, data)
    _validate(plan)
    db.session.commit()
    return plan


DEFAULT_PLANS = [
    {"nome": "Básico", "preco": 9700, "prazo_dias": 30, "webinar_limit": 3, "storage_limit": 5,
     "whatsapp_account_limit": 1, "ordem": 1, "beneficios": ["3 webinars", "5 GB de armazenamento"]},
    {"nome": "Pro", "preco": 19700, "prazo_dias": 30, "webinar_limit": 10, "storage_limit": 20,
     "whatsapp_account_limit": 3, "feature_ai": True, "feature_transcricao": True, "destaque": True,
     "ordem": 2, "beneficios": ["10 webinars", "IA e transcrição"]},
    {"nome": "Pro Mensal", "preco": 17700, "prazo_dias": 30, "webinar_limit": 10, "storage_limit": 20,
     "whatsapp_account_limit": 3, "feature_ai": True, "feature_transcricao": True,
     "tipo_cobranca": RECURRING, "frequencia": 1, "frequencia_tipo": "months", "ordem": 3,
     "disponivel_renovacao": True, "beneficios": ["Cobrança mensal automática"]},
]


def seed_default_plans() -> int:
    if Plan.query.count():
        return 0
    for data in DEFAULT_PLANS:
        plan = Plan(gateway="mercadopago", tipo_cobranca=ONE_TIME, frequencia=1, frequencia_tipo="months")
        _apply(plan, data)
        db.session.add(plan)
    db.session.commit()
    return len(DEFAULT_PLANS)
