"""Baserow datastore (properties + leads) with deterministic in-memory fallbacks."""

from __future__ import annotations

import itertools
import json
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx

from sdr.config import LEAD_FIELD_MAP, settings
from sdr.runtime import clean_lead_phone, get_logger, iso_now

logger = get_logger(__name__)

LEAD_FIELDS = LEAD_FIELD_MAP
LIST_PAGE_SIZE = 200


class BaserowError(RuntimeError):
    """Non-2xx Baserow response."""

    def __init__(self, message: str, *, status_code: Optional[int] = None, body: Any = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


# ============================================================
# TABLES
# ============================================================


class InMemoryTable:
    """Minimal Baserow drop-in replacement used for local runs and tests."""

    def __init__(self, name: str):
        self.name = name
        self._rows: Dict[int, Dict[str, Any]] = {}
        self._sequence = itertools.count(1)

    async def list_rows(self, filters: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        rows = [dict(r) for r in self._rows.values()]
        for field_name, expected in (filters or {}).items():
            rows = [r for r in rows if str(r.get(field_name)) == str(expected)]
        return rows

    async def get_row(self, row_id: int) -> Dict[str, Any]:
        row = self._rows.get(int(row_id))
        if row is None:
            raise BaserowError(f"Row {row_id} not found in {self.name}", status_code=404)
        return dict(row)

    async def create_row(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        row_id = next(self._sequence)
        row = {"id": row_id, **{k: v for k, v in fields.items() if k != "id"}}
        self._rows[row_id] = row
        return dict(row)

    async def update_row(self, row_id: int, fields: Dict[str, Any]) -> Dict[str, Any]:
        row = self._rows.get(int(row_id))
        if row is None:
            raise BaserowError(f"Row {row_id} not found in {self.name}", status_code=404)
        row.update({k: v for k, v in fields.items() if k != "id"})
        return dict(row)

    async def delete_row(self, row_id: int) -> None:
        if self._rows.pop(int(row_id), None) is None:
            raise BaserowError(f"Row {row_id} not found in {self.name}", status_code=404)


class BaserowTable:
    """Rows endpoint of one Baserow table, addressed with user field names."""

    def __init__(self, api_url: str, token: str, table_id: str, name: str, timeout: float = 15.0):
        self.name = name
        self.base = f"{api_url.rstrip('/')}/api/database/rows/table/{table_id}/"
        self.headers = {"Authorization": f"Token {token}", "Content-Type": "application/json"}
        self.timeout = timeout

    async def _request(self, method: str, url: str, **kwargs) -> Any:
        params = dict(kwargs.pop("params", {}) or {})
        params["user_field_names"] = "true"
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.request(method, url, params=params, headers=self.headers, **kwargs)
        except httpx.HTTPError as exc:
            raise BaserowError(f"Baserow request failed: {exc}") from exc
        if resp.is_error:
            try:
                body = resp.json()
            except ValueError:
                body = resp.text
            raise BaserowError(f"Baserow API error: {resp.status_code}", status_code=resp.status_code, body=body)
        if resp.status_code == 204 or not resp.content:
            return None
        return resp.json()

    async def list_rows(self, filters: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        params: Dict[str, Any] = {"size": LIST_PAGE_SIZE}
        for field_name, expected in (filters or {}).items():
            params[f"filter__{field_name}__equal"] = expected
        rows: List[Dict[str, Any]] = []
        page = 1
        while True:
            params["page"] = page
            data = await self._request("GET", self.base, params=params) or {}
            rows.extend(data.get("results") or [])
            if not data.get("next"):
                return rows
            page += 1

    async def get_row(self, row_id: int) -> Dict[str, Any]:
        return await self._request("GET", f"{self.base}{int(row_id)}/")

    async def create_row(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("POST", self.base, json=fields)

    async def update_row(self, row_id: int, fields: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("PATCH", f"{self.base}{int(row_id)}/", json=fields)

    async def delete_row(self, row_id: int) -> None:
        await self._request("DELETE", f"{self.base}{int(row_id)}/")


@dataclass
class TableHandle:
    table: Any
    in_memory: bool
    table_id: Optional[str]
    table_name: str
    last_error: Optional[Dict[str, Any]] = None


# ============================================================
# CONNECTOR
# ============================================================


class DataConnector:
    """Lazy Baserow connector with in-memory fallback."""

    def __init__(self) -> None:
        self._tables: Dict[str, TableHandle] = {}

    def _table(self, table_id: Optional[str], table_name: str) -> TableHandle:
        if table_name in self._tables:
            return self._tables[table_name]

        cfg = settings()
        if cfg.force_in_memory or not (cfg.baserow_api_url and cfg.baserow_token and table_id):
            if not cfg.force_in_memory:
                logger.warning("Baserow not configured for %s; using in-memory table", table_name)
            handle = TableHandle(InMemoryTable(table_name), True, table_id, table_name)
        else:
            table = BaserowTable(cfg.baserow_api_url, cfg.baserow_token, table_id, table_name, timeout=cfg.http_timeout)
            handle = TableHandle(table, False, table_id, table_name)
        self._tables[table_name] = handle
        return handle

    def properties(self) -> TableHandle:
        return self._table(settings().baserow_table_id, "Properties")

    def leads(self) -> TableHandle:
        return self._table(settings().baserow_leads_table_id, "Leads")


CONNECTOR = DataConnector()


# ============================================================
# SAFE WRAPPERS
# ============================================================


def _log_baserow_exception(handle: TableHandle, exc: Exception, action: str) -> None:
    payload = {"action": action, "error": str(exc), "timestamp": iso_now()}
    status = getattr(exc, "status_code", None)
    if status is not None:
        payload.update({"status": status, "body": getattr(exc, "body", None)})
    logger.error("Baserow %s failed [%s]: %s", action, handle.table_name, exc)
    handle.last_error = payload


async def _safe_list(handle: TableHandle, filters: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
    try:
        return await handle.table.list_rows(filters)
    except Exception as exc:
        _log_baserow_exception(handle, exc, "list")
        return []


async def _safe_get(handle: TableHandle, row_id: Any) -> Optional[Dict[str, Any]]:
    try:
        return await handle.table.get_row(int(row_id))
    except (TypeError, ValueError):
        return None
    except Exception as exc:
        _log_baserow_exception(handle, exc, "get")
        return None


def _compact(payload: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in (payload or {}).items() if v not in (None, "", [], {}, ())}


async def _safe_create(handle: TableHandle, fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    body = _compact(fields)
    if not body:
        return None
    try:
        return await handle.table.create_row(body)
    except Exception as exc:
        _log_baserow_exception(handle, exc, "create")
        return None


async def _safe_update(handle: TableHandle, row_id: Any, fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    if row_id in (None, ""):
        return None
    body = _compact(fields)
    if not body:
        return None
    try:
        return await handle.table.update_row(int(row_id), body)
    except Exception as exc:
        _log_baserow_exception(handle, exc, "update")
        return None


# ============================================================
# LEAD STORE
# ============================================================


def _is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _join_tags(*groups: Any) -> str:
    tags: List[str] = []
    for group in groups:
        if not group:
            continue
        items = group.split(",") if isinstance(group, str) else list(group)
        for item in items:
            tag = str(item).strip()
            if tag and tag not in tags:
                tags.append(tag)
    return ",".join(tags)


class LeadStore:
    """One Baserow row per phone number; upsert resolves by phone lookup."""

    def __init__(self) -> None:
        self._phone_index: Dict[str, int] = {}

    @property
    def handle(self) -> TableHandle:
        return CONNECTOR.leads()

    async def find_by_phone(self, phone: str) -> Optional[Dict[str, Any]]:
        digits = clean_lead_phone(phone)
        if not digits:
            return None
        row_id = self._phone_index.get(digits)
        if row_id is not None:
            row = await _safe_get(self.handle, row_id)
            if row and clean_lead_phone(row.get(LEAD_FIELDS["PHONE"])) == digits:
                return row
            self._phone_index.pop(digits, None)
        rows = await _safe_list(self.handle, {LEAD_FIELDS["PHONE"]: digits})
        for row in rows:
            if clean_lead_phone(row.get(LEAD_FIELDS["PHONE"])) == digits:
                self._phone_index[digits] = row["id"]
                return row
        return None

    async def list_leads(self) -> List[Dict[str, Any]]:
        return await _safe_list(self.handle)

    async def upsert(self, phone: str, fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Create the lead row or patch it.

        Name and email only replace empty values; tags are merged as a set.
        """
        digits = clean_lead_phone(phone)
        if not digits:
            return None
        payload = dict(fields)
        payload[LEAD_FIELDS["PHONE"]] = digits
        if isinstance(payload.get(LEAD_FIELDS["INDICATORS"]), (list, dict)):
            payload[LEAD_FIELDS["INDICATORS"]] = json.dumps(payload[LEAD_FIELDS["INDICATORS"]], ensure_ascii=False)

        existing = await self.find_by_phone(digits)
        if existing is None:
            payload.setdefault(LEAD_FIELDS["CREATED_AT"], iso_now())
            if LEAD_FIELDS["TAGS"] in payload:
                payload[LEAD_FIELDS["TAGS"]] = _join_tags(payload[LEAD_FIELDS["TAGS"]])
            row = await _safe_create(self.handle, payload)
            if row:
                self._phone_index[digits] = row["id"]
                logger.info("✅ Lead created for %s (row %s)", digits, row["id"])
            return row

        for key in (LEAD_FIELDS["NAME"], LEAD_FIELDS["EMAIL"]):
            if key in payload and not _is_empty(existing.get(key)):
                payload.pop(key)
        if LEAD_FIELDS["TAGS"] in payload:
            payload[LEAD_FIELDS["TAGS"]] = _join_tags(existing.get(LEAD_FIELDS["TAGS"]), payload[LEAD_FIELDS["TAGS"]])
        payload.pop(LEAD_FIELDS["CREATED_AT"], None)
        updated = await _safe_update(self.handle, existing["id"], payload)
        return updated or existing


LEADS = LeadStore()


# ============================================================
# PUBLIC HELPERS
# ============================================================


async def list_properties() -> List[Dict[str, Any]]:
    return await _safe_list(CONNECTOR.properties())


async def get_property(row_id: Any) -> Optional[Dict[str, Any]]:
    return await _safe_get(CONNECTOR.properties(), row_id)


def reset_state() -> None:
    CONNECTOR._tables.clear()
    LEADS._phone_index.clear()
    logger.info("🧹 Datastore state and caches cleared.")
