"""Typebot lead intake: pull the phone and prefilled answers out of a form webhook."""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional

from sdr.runtime import clean_lead_phone, iso_now

PHONE_KEYS = ("phone", "phoneNumber", "telefone")

FIELD_CANDIDATES: Dict[str, List[str]] = {
    "name": ["name", "nome", "customerName"],
    "email": ["email", "emailAddress"],
    "phone": ["phone", "phoneNumber", "telefone"],
    "tipoTransacao": ["tipoTransacao", "tipo_transacao", "transacao", "procurando", "objetivo"],
    "tipoImovel": ["tipoImovel", "tipo_imovel", "tipo", "propertyType", "imovel"],
    "budgetCompra": ["budgetCompra", "budget_compra", "valorCompra", "faixaValorCompra", "orcamentoCompra"],
    "budgetLocacao": ["budgetLocacao", "budget_locacao", "valorLocacao", "faixaValorLocacao", "orcamentoLocacao", "aluguel"],
    "localizacao": ["localizacao", "location", "bairro", "regiao", "cidade"],
    "prazo": ["prazo", "prazoMudanca", "prazo_mudanca", "quando", "urgencia"],
    "financiamento": ["financiamento", "situacaoFinanceira", "situacao_financeira", "pagamento"],
    "message": ["message", "mensagem", "observacoes", "comentario"],
}

PROMPT_LABELS = [
    ("name", "Nome"),
    ("email", "Email"),
    ("phone", "Telefone"),
    ("tipoTransacao", "Procura imóvel para"),
    ("tipoImovel", "Tipo de imóvel"),
    ("budgetCompra", "Faixa de valor para compra"),
    ("budgetLocacao", "Faixa de valor para locação/aluguel"),
    ("localizacao", "Localização/bairro preferido"),
    ("prazo", "Prazo para mudança/fechamento"),
    ("financiamento", "Situação financeira"),
    ("message", "Mensagem adicional"),
]

MAPPED_ANSWER_KEYS = {
    "phone", "telefone", "email", "name", "nome", "tipotransacao", "tipoimovel",
    "budgetcompra", "budgetlocacao", "localizacao", "prazo", "financiamento",
}


def _list(data: Dict[str, Any], key: str) -> List[Dict[str, Any]]:
    value = data.get(key)
    return [v for v in value if isinstance(v, dict)] if isinstance(value, list) else []


def extract_phone(data: Dict[str, Any]) -> Optional[str]:
    """Direct fields, then answers by blockId/variableId, then variables by name."""
    for key in PHONE_KEYS:
        if data.get(key):
            return clean_lead_phone(str(data[key]))
    for answer in _list(data, "answers"):
        ids = f"{answer.get('blockId') or ''} {answer.get('variableId') or ''}".lower()
        if "phone" in ids or "telefone" in ids:
            return clean_lead_phone(str(answer.get("value") or ""))
    for variable in _list(data, "variables"):
        name = str(variable.get("name") or "").lower()
        if "phone" in name or "telefone" in name:
            return clean_lead_phone(str(variable.get("value") or ""))
    return None


def extract_field(data: Dict[str, Any], candidates: Iterable[str]) -> Any:
    candidates = list(candidates)
    for name in candidates:
        if data.get(name):
            return data[name]
    lowered = [c.lower() for c in candidates]
    for answer in _list(data, "answers"):
        block = str(answer.get("blockId") or "").lower()
        variable = str(answer.get("variableId") or "").lower()
        if any(c in block or c in variable for c in lowered):
            return answer.get("value")
    for variable in _list(data, "variables"):
        name = str(variable.get("name") or "").lower()
        if any(c in name for c in lowered):
            return variable.get("value")
    return None


def extract_lead_info(data: Dict[str, Any]) -> Dict[str, Any]:
    info: Dict[str, Any] = {"source": "typebot", "timestamp": iso_now(), "answers": {}, "variables": {}}
    for idx, answer in enumerate(_list(data, "answers")):
        key = answer.get("blockId") or answer.get("variableId") or f"answer_{idx}"
        info["answers"][key] = answer.get("value")
    for variable in _list(data, "variables"):
        if variable.get("name"):
            info["variables"][variable["name"]] = variable.get("value")
    for key, candidates in FIELD_CANDIDATES.items():
        info[key] = extract_field(data, candidates)
    return info


def format_lead_for_ai(lead_info: Optional[Dict[str, Any]]) -> str:
    if not lead_info:
        return ""
    parts = ["INFORMAÇÕES DO LEAD (via Typebot):"]
    for key, label in PROMPT_LABELS:
        if lead_info.get(key):
            parts.append(f"- {label}: {lead_info[key]}")
    extra = [
        (k, v)
        for k, v in (lead_info.get("answers") or {}).items()
        if v and not any(m in str(k).lower() for m in MAPPED_ANSWER_KEYS)
    ]
    if extra:
        parts.append("")
        parts.append("OUTRAS RESPOSTAS:")
        parts.extend(f"- {k}: {v}" for k, v in extra)
    return "\n".join(parts)
