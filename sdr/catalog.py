"""Property catalog helpers: field aliases, AI projection, WhatsApp detail text."""

from __future__ import annotations

import re
from typing import Any, Dict, Iterable, List, Optional

from sdr.config import MAX_PROPERTY_IMAGES, settings
from sdr.intent import normalize_text

# Accepted spellings per logical field; first non-empty wins.
FIELD_ALIASES: Dict[str, tuple] = {
    "title": ("Title", "Título", "title", "Nome", "nome"),
    "price": ("Price", "Preço", "price", "Valor", "valor"),
    "type": ("Type", "Tipo", "type"),
    "category": ("Category", "Categoria", "category"),
    "location": ("location", "Localização", "Location"),
    "city": ("city", "Cidade", "City"),
    "neighborhood": ("neighborhood", "Bairro", "bairro", "Neighborhood"),
    "bedrooms": ("bedrooms", "Quartos", "Bedrooms"),
    "bathrooms": ("bathrooms", "Banheiros", "Bathrooms"),
    "area": ("Area", "Área", "area"),
    "description": ("description", "Descrição", "Description"),
    "parking": ("parkingSpaces", "Vagas", "parking"),
    "images": ("images", "Imagens", "Images"),
    "active": ("Active", "Ativo", "active"),
}

CALL_TO_ACTION = (
    "Gostou? 😊 Se quiser, posso agendar uma visita pra você conhecer pessoalmente. "
    "É só me dizer o melhor dia e horário!"
)


def _unwrap(value: Any) -> Any:
    # single select fields come back as {"id": .., "value": ..}
    if isinstance(value, dict) and "value" in value:
        return value.get("value")
    return value


def field(prop: Dict[str, Any], name: str, default: Any = None) -> Any:
    for alias in FIELD_ALIASES[name]:
        value = _unwrap(prop.get(alias))
        if value not in (None, ""):
            return value
    return default


def title(prop: Dict[str, Any]) -> str:
    return str(field(prop, "title", "") or "")


def is_active(prop: Dict[str, Any]) -> bool:
    return all(prop.get(alias) is not False for alias in FIELD_ALIASES["active"])


def property_id(prop: Dict[str, Any]) -> Optional[int]:
    try:
        return int(prop.get("id"))
    except (TypeError, ValueError):
        return None


def find_by_id(props: Iterable[Dict[str, Any]], prop_id: Any) -> Optional[Dict[str, Any]]:
    try:
        wanted = int(prop_id)
    except (TypeError, ValueError):
        return None
    for prop in props:
        if property_id(prop) == wanted:
            return prop
    return None


def format_properties_for_ai(props: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    out = []
    for prop in props:
        item = {
            "id": prop.get("id"),
            "titulo": field(prop, "title"),
            "preco": field(prop, "price"),
            "tipo": field(prop, "type"),
            "categoria": field(prop, "category"),
            "localizacao": field(prop, "location"),
            "cidade": field(prop, "city"),
            "bairro": field(prop, "neighborhood"),
            "quartos": field(prop, "bedrooms"),
            "banheiros": field(prop, "bathrooms"),
            "area": field(prop, "area"),
            "descricao": field(prop, "description"),
        }
        if item["titulo"]:
            out.append(item)
    return out


def address(prop: Dict[str, Any]) -> str:
    parts = [str(field(prop, "neighborhood", "") or ""), str(field(prop, "city", "") or "")]
    return ", ".join(p for p in parts if p).strip()


def property_link(prop: Dict[str, Any]) -> str:
    return f"{settings().site_base_url}/imovel/{prop.get('id')}"


def absolute_url(url: str) -> str:
    url = (url or "").strip()
    if not url or re.match(r"^https?://", url, re.I):
        return url
    return f"{settings().site_base_url}/{url.lstrip('/')}"


def image_urls(prop: Dict[str, Any], limit: int = MAX_PROPERTY_IMAGES) -> List[str]:
    raw = field(prop, "images")
    items: List[Any]
    if isinstance(raw, str):
        items = [s for s in re.split(r"[,\n]", raw)]
    elif isinstance(raw, list):
        items = raw
    else:
        items = []
    urls: List[str] = []
    for item in items:
        url = item.get("url") if isinstance(item, dict) else item
        url = absolute_url(str(url or ""))
        if url:
            urls.append(url)
        if len(urls) >= limit:
            break
    return urls


def details_message(prop: Dict[str, Any]) -> str:
    description = str(field(prop, "description", "") or "").strip()
    lines = [
        f"📍 *{title(prop)}*",
        "",
        f"💰 *Valor:* {field(prop, 'price', '-')}",
        f"📐 *Área:* {field(prop, 'area', '-')}",
        f"🛏️ *Quartos:* {field(prop, 'bedrooms', '-')}",
        f"🚿 *Banheiros:* {field(prop, 'bathrooms', '-')}",
        f"🚗 *Vagas:* {field(prop, 'parking', 1)}",
        "",
        "📍 *Localização:*",
        address(prop) or "-",
    ]
    if description:
        lines += ["", description]
    lines += ["", "✅ *Programa Minha Casa Minha Vida aceito*", "✅ *Financiamento disponível*"]
    return "\n".join(lines)


# -----------------------------
# Matching against free text
# -----------------------------
def mentioned_in(text: str, props: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Properties whose title appears in the text, in order of appearance."""
    norm = normalize_text(text)
    hits = []
    for prop in props:
        name = normalize_text(title(prop))
        if not name:
            continue
        pos = norm.find(name)
        if pos >= 0:
            hits.append((pos, prop))
    hits.sort(key=lambda item: item[0])
    return [prop for _, prop in hits]


def match_type_and_neighborhood(text: str, props: Iterable[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    norm = normalize_text(text)
    if not norm:
        return None
    for prop in props:
        kind = normalize_text(str(field(prop, "type", "") or ""))
        hood = normalize_text(str(field(prop, "neighborhood", "") or ""))
        if kind and hood and kind in norm and hood in norm:
            return prop
    return None


def weak_title_match(text: str, props: Iterable[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """First property sharing one word longer than 3 chars (title or neighborhood) with the text."""
    norm = normalize_text(text)
    if not norm:
        return None
    for prop in props:
        words = normalize_text(title(prop)).split() + normalize_text(str(field(prop, "neighborhood", "") or "")).split()
        if any(len(w) > 3 and w in norm for w in words):
            return prop
    return None
