from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

# -----------------------------
# .env Loader
# -----------------------------
try:
    from dotenv import load_dotenv

    BASE_DIR = os.path.dirname(os.path.abspath(__file__))
    ENV_PATH = os.path.join(BASE_DIR, "..", ".env")
    load_dotenv(dotenv_path=ENV_PATH, override=True)
except Exception:
    pass


# -----------------------------
# Env helpers
# -----------------------------
def env_bool(key: str, default: bool = False) -> bool:
    v = os.getenv(key)
    if v is None:
        return default
    return str(v).strip().lower() in ("1", "true", "yes", "on")


def env_int(key: str, default: int) -> int:
    try:
        return int(os.getenv(key, default))
    except Exception:
        return default


def env_float(key: str, default: float) -> float:
    try:
        return float(os.getenv(key, default))
    except Exception:
        return default


def env_str(key: str, default: Optional[str] = None) -> Optional[str]:
    v = os.getenv(key)
    return v if (v and str(v).strip() != "") else default


# -----------------------------
# Key-value layout + TTLs
# -----------------------------
CUSTOMER_PREFIX = "customer:"
CONVERSATION_PREFIX = "conversation:"
REMINDER_PREFIX = "reminder:"
TYPEBOT_LEAD_PREFIX = "typebot:lead:"

CONVERSATION_TTL = 6 * 60 * 60
REMINDER_TTL = 48 * 60 * 60
TYPEBOT_TTL = 30 * 24 * 60 * 60
TYPEBOT_PROCESSED_TTL = 90 * 24 * 60 * 60
MEMORY_CONTEXT_MAX_AGE = 24 * 60 * 60

HISTORY_WINDOW = 20

# -----------------------------
# Broadcast pacing
# -----------------------------
MESSAGE_DELAY_MS = 3000
BATCH_SIZE = 20
BATCH_DELAY_MS = 60000
MAX_CONSECUTIVE_FAILURES = 5
LARGE_BROADCAST_WARNING = 50
STOPPED_REASON = "Envio interrompido: muitas falhas consecutivas"

# -----------------------------
# Property details sequence
# -----------------------------
MAX_PROPERTY_IMAGES = 3
IMAGE_DELAY_SEC = 1.0
REMINDER_LEAD_MINUTES = 60

# -----------------------------
# Lead scoring
# -----------------------------
HOT_THRESHOLD = 80
WARM_THRESHOLD = 50

# Baserow user field names of the leads table
LEAD_FIELD_MAP = {
    "NAME": "Nome",
    "PHONE": "Telefone",
    "EMAIL": "Email",
    "SCORE": "Score",
    "QUALITY": "Qualidade",
    "SOURCE": "Fonte",
    "TOTAL_MESSAGES": "TotalMensagens",
    "PROPERTY_INTEREST": "ImovelInteresse",
    "TAGS": "Tags",
    "NOTES": "Observacoes",
    "INDICATORS": "Indicadores",
    "LAST_EVALUATION": "UltimaAvaliacao",
    "CREATED_AT": "DataCadastro",
    "TRANSACTION_TYPE": "TipoTransacao",
    "PROPERTY_TYPE": "TipoImovel",
    "BUDGET_PURCHASE": "BudgetCompra",
    "BUDGET_RENT": "BudgetLocacao",
    "LOCATION": "Localizacao",
    "TIMEFRAME": "Prazo",
    "FINANCING": "Financiamento",
}

# Typebot leadInfo key -> lead field key
TYPEBOT_LEAD_FIELDS = {
    "tipoTransacao": "TRANSACTION_TYPE",
    "tipoImovel": "PROPERTY_TYPE",
    "budgetCompra": "BUDGET_PURCHASE",
    "budgetLocacao": "BUDGET_RENT",
    "localizacao": "LOCATION",
    "prazo": "TIMEFRAME",
    "financiamento": "FINANCING",
}

COMPANY_PHONE_DISPLAY = "(11) 98159-8027"


@dataclass(frozen=True)
class Settings:
    evolution_api_url: Optional[str]
    evolution_api_key: Optional[str]
    evolution_instance: Optional[str]
    evolution_dry_run: bool

    openai_api_key: Optional[str]
    openai_model: str
    openai_temperature: float
    openai_max_tokens: int
    openai_timeout: float
    openai_max_retries: int

    upstash_rest_url: Optional[str]
    upstash_rest_token: Optional[str]
    redis_url: Optional[str]
    redis_tls: bool
    force_in_memory: bool

    baserow_api_url: Optional[str]
    baserow_token: Optional[str]
    baserow_table_id: Optional[str]
    baserow_leads_table_id: Optional[str]

    calendly_api_key: Optional[str]
    calendly_event_type_uuid: Optional[str]
    calendly_user_uri: Optional[str]
    calendly_public_url: str

    realtor_phone: str
    human_contact_link: str
    site_base_url: str

    http_timeout: float
    reminder_sweep_seconds: int

    @property
    def evolution_configured(self) -> bool:
        return bool(self.evolution_api_url and self.evolution_api_key and self.evolution_instance)

    @property
    def baserow_configured(self) -> bool:
        return bool(self.baserow_api_url and self.baserow_token and self.baserow_table_id)


@lru_cache(maxsize=1)
def settings() -> Settings:
    return Settings(
        evolution_api_url=(env_str("EVOLUTION_API_URL") or "").rstrip("/") or None,
        evolution_api_key=env_str("EVOLUTION_API_KEY"),
        evolution_instance=env_str("EVOLUTION_INSTANCE"),
        evolution_dry_run=env_bool("EVOLUTION_DRY_RUN", False),
        openai_api_key=env_str("OPENAI_API_KEY"),
        openai_model=env_str("OPENAI_MODEL", "gpt-4o-mini"),
        openai_temperature=env_float("OPENAI_TEMPERATURE", 0.7),
        openai_max_tokens=env_int("OPENAI_MAX_TOKENS", 150),
        openai_timeout=env_float("OPENAI_TIMEOUT", 20.0),
        openai_max_retries=env_int("OPENAI_MAX_RETRIES", 2),
        upstash_rest_url=(env_str("UPSTASH_REDIS_REST_URL") or "").rstrip("/") or None,
        upstash_rest_token=env_str("UPSTASH_REDIS_REST_TOKEN"),
        redis_url=env_str("REDIS_URL"),
        redis_tls=env_bool("REDIS_TLS", False),
        force_in_memory=env_bool("SDR_FORCE_IN_MEMORY", False),
        baserow_api_url=(env_str("BASEROW_API_URL") or "").rstrip("/") or None,
        baserow_token=env_str("BASEROW_TOKEN"),
        baserow_table_id=env_str("BASEROW_TABLE_ID"),
        baserow_leads_table_id=env_str("BASEROW_LEADS_TABLE_ID"),
        calendly_api_key=env_str("CALENDLY_API_KEY"),
        calendly_event_type_uuid=env_str("CALENDLY_EVENT_TYPE_UUID"),
        calendly_user_uri=env_str("CALENDLY_USER_URI"),
        calendly_public_url=env_str("CALENDLY_PUBLIC_URL", "https://calendly.com/bs-consultoria"),
        realtor_phone=env_str("REALTOR_PHONE", "5511981598027"),
        human_contact_link=env_str("HUMAN_CONTACT_LINK", "https://wa.me/5511981598027"),
        site_base_url=(env_str("SITE_BASE_URL", "https://bs-consultoria.vercel.app") or "").rstrip("/"),
        http_timeout=env_float("HTTP_TIMEOUT_SEC", 15.0),
        reminder_sweep_seconds=env_int("REMINDER_SWEEP_SECONDS", 60),
    )
