# sdr/calendly_client.py
"""
🗓️ Calendly client + WhatsApp message formatting for property visits.

The public booking page is prefilled through query params:
  name, email, a1=phone, a2="Imóvel ID: <id> - <title>", a3=address, a4=property url
Booked events come back through the webhook; the answers above are parsed
back out of ``questions_and_answers``.
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode
from zoneinfo import ZoneInfo

import httpx

from sdr.config import settings
from sdr.runtime import get_logger, only_digits, parse_iso

logger = get_logger("calendly")

CALENDLY_API_URL = "https://api.calendly.com"
LOCAL_TZ = ZoneInfo("America/Sao_Paulo")

WEEKDAYS_PT = ["segunda-feira", "terça-feira", "quarta-feira", "quinta-feira", "sexta-feira", "sábado", "domingo"]
MONTHS_PT = [
    "janeiro", "fevereiro", "março", "abril", "maio", "junho",
    "julho", "agosto", "setembro", "outubro", "novembro", "dezembro",
]

_PROPERTY_ANSWER = re.compile(r"Imóvel ID:\s*(\d+)\s*-\s*(.+)")

DOCUMENTS_CHECKLIST = "• Documento com foto (RG ou CNH)\n• Comprovante de renda (se for solicitar financiamento)"


# ───────────────────────────────────────────────────────────
# API access (log + return None/[] on failure)
# ───────────────────────────────────────────────────────────
def _headers() -> Optional[Dict[str, str]]:
    key = settings().calendly_api_key
    if not key:
        return None
    return {"Authorization": f"Bearer {key}", "Content-Type": "application/json"}


async def _get(url: str, params: Optional[Dict[str, Any]] = None) -> Optional[Dict[str, Any]]:
    headers = _headers()
    if headers is None:
        logger.warning("Calendly API not configured (CALENDLY_API_KEY missing)")
        return None
    try:
        async with httpx.AsyncClient(timeout=settings().http_timeout) as client:
            resp = await client.get(url, headers=headers, params=params)
            resp.raise_for_status()
            return resp.json()
    except (httpx.HTTPError, ValueError) as exc:
        logger.error("Calendly request %s failed: %s", url, exc)
        return None


async def get_event_details(event_uri: str) -> Optional[Dict[str, Any]]:
    data = await _get(event_uri)
    return (data or {}).get("resource")


async def get_event_invitees(event_uri: str) -> List[Dict[str, Any]]:
    data = await _get(f"{event_uri.rstrip('/')}/invitees")
    return list((data or {}).get("collection") or [])


async def get_upcoming_events() -> List[Dict[str, Any]]:
    user = settings().calendly_user_uri
    if not user:
        logger.warning("Calendly API not fully configured (CALENDLY_USER_URI missing)")
        return []
    data = await _get(f"{CALENDLY_API_URL}/scheduled_events", params={"user": user, "status": "active"})
    return list((data or {}).get("collection") or [])


# ───────────────────────────────────────────────────────────
# Links + answer parsing
# ───────────────────────────────────────────────────────────
def build_scheduling_link(
    customer_name: str,
    customer_email: Optional[str],
    customer_phone: str,
    property_id: Any = None,
    property_title: str = "",
    property_address: str = "",
    property_link: str = "",
) -> str:
    params = {
        "name": customer_name or "",
        "email": customer_email or f"{only_digits(customer_phone)}@cliente.temp",
        "a1": customer_phone,
        "a2": f"Imóvel ID: {property_id} - {property_title}" if property_id else "Consulta Geral",
        "a3": property_address or "",
        "a4": property_link or "",
    }
    return f"{settings().calendly_public_url}?{urlencode(params)}"


def parse_property_info_from_answers(answers: Optional[List[Dict[str, Any]]]) -> Dict[str, Optional[str]]:
    info: Dict[str, Optional[str]] = {"id": None, "title": None, "address": None, "link": None, "phone": None}
    for qa in answers or []:
        if not isinstance(qa, dict):
            continue
        question = str(qa.get("question") or "")
        answer = str(qa.get("answer") or "")
        if "Phone" in question or "Telefone" in question:
            info["phone"] = answer
        m = _PROPERTY_ANSWER.search(answer)
        if m:
            info["id"], info["title"] = m.group(1), m.group(2).strip()
        if "Endereço" in question or "Address" in question:
            info["address"] = answer
        if answer.startswith("http"):
            info["link"] = answer
    return info


# ───────────────────────────────────────────────────────────
# pt-BR date formatting
# ───────────────────────────────────────────────────────────
def _local(event_time: Any) -> Optional[datetime]:
    when = event_time if isinstance(event_time, datetime) else parse_iso(str(event_time or ""))
    return when.astimezone(LOCAL_TZ) if when else None


def format_date_pt(event_time: Any) -> str:
    """'sexta-feira, 14 de março de 2025'"""
    when = _local(event_time)
    if when is None:
        return "A definir"
    return f"{WEEKDAYS_PT[when.weekday()]}, {when.day} de {MONTHS_PT[when.month - 1]} de {when.year}"


def format_time_pt(event_time: Any) -> str:
    when = _local(event_time)
    return when.strftime("%H:%M") if when else "A definir"


# ───────────────────────────────────────────────────────────
# Messages
# ───────────────────────────────────────────────────────────
def format_scheduling_message(customer_name: str, property_title: str, link: str) -> str:
    return (
        f"Ótimo, {customer_name}! 🎉\n\n"
        f"Para agendar sua visita ao *{property_title}*, por favor acesse o link abaixo e escolha o melhor horário:\n\n"
        f"🗓️ {link}\n\n"
        "Você receberá uma confirmação por e-mail com todos os detalhes da visita.\n\n"
        "Caso tenha alguma dúvida, estou aqui para ajudar! 😊"
    )


def format_customer_confirmation(customer_name: str, property_title: str, property_address: str, event_time: Any) -> str:
    return (
        "✅ *VISITA CONFIRMADA!*\n\n"
        f"Olá {customer_name}! Sua visita foi agendada com sucesso! 🎉\n\n"
        f"📍 *Imóvel:* {property_title}\n"
        f"📌 *Endereço:* {property_address}\n"
        f"📅 *Data:* {format_date_pt(event_time)}\n"
        f"⏰ *Horário:* {format_time_pt(event_time)}\n\n"
        f"*O que levar:*\n{DOCUMENTS_CHECKLIST}\n\n"
        "Você receberá um lembrete 1 hora antes da visita.\n\n"
        "Qualquer dúvida, estou à disposição! 😊"
    )


def format_realtor_notification(
    customer_name: str,
    customer_phone: str,
    property_title: str,
    property_address: str,
    property_link: str,
    event_time: Any,
) -> str:
    link_line = f"🔗 *Link:* {property_link}\n" if property_link else ""
    return (
        "🔔 *NOVA VISITA AGENDADA*\n\n"
        f"*Cliente:* {customer_name}\n"
        f"*Telefone:* {customer_phone}\n\n"
        f"📍 *Imóvel:* {property_title}\n"
        f"📌 *Endereço:* {property_address}\n"
        f"{link_line}\n"
        f"📅 *Data:* {format_date_pt(event_time)}\n"
        f"⏰ *Horário:* {format_time_pt(event_time)}\n\n"
        "⚠️ Você receberá um lembrete 1 hora antes da visita."
    )


def format_reminder_message(customer_name: str, property_title: str, property_address: str, event_time: Any) -> str:
    return (
        "⏰ *LEMBRETE DE VISITA*\n\n"
        f"Olá {customer_name}! Sua visita está chegando!\n\n"
        f"📍 *Imóvel:* {property_title}\n"
        f"📌 *Endereço:* {property_address}\n"
        f"⏰ *Horário:* {format_time_pt(event_time)} (daqui a 1 hora)\n\n"
        f"Não se esqueça de levar:\n{DOCUMENTS_CHECKLIST}\n\n"
        "Nos vemos em breve! 🏡"
    )


def format_realtor_reminder(
    customer_name: str, customer_phone: str, property_title: str, property_address: str, event_time: Any
) -> str:
    return (
        "⏰ *LEMBRETE - VISITA EM 1 HORA*\n\n"
        f"*Cliente:* {customer_name}\n"
        f"*Telefone:* {customer_phone}\n\n"
        f"📍 *Imóvel:* {property_title}\n"
        f"📌 *Endereço:* {property_address}\n"
        f"⏰ *Horário:* {format_time_pt(event_time)}\n\n"
        "Prepare-se para a visita! 🏡"
    )


def format_customer_cancellation(property_title: Optional[str]) -> str:
    return (
        f"Sua visita ao *{property_title or 'imóvel'}* foi cancelada com sucesso.\n\n"
        "Se mudou de ideia ou quer remarcar, é só me avisar! Estou aqui para ajudar. 😊"
    )


def format_realtor_cancellation(customer_name: str, customer_phone: str, property_title: Optional[str]) -> str:
    return (
        "❌ *VISITA CANCELADA*\n\n"
        f"*Cliente:* {customer_name}\n"
        f"*Telefone:* {customer_phone}\n"
        f"*Imóvel:* {property_title or 'N/A'}\n\n"
        "O cliente cancelou a visita agendada."
    )
