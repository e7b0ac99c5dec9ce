# sdr/routes/baserow.py
"""Property + lead CRUD over the Baserow tables."""

from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Body, HTTPException

from sdr.config import LEAD_FIELD_MAP, settings
from sdr.datastore import CONNECTOR, LEADS, BaserowError, TableHandle
from sdr.runtime import clean_lead_phone, get_logger

logger = get_logger("baserow_routes")

router = APIRouter(prefix="/api", tags=["baserow"])


def _require(handle: TableHandle) -> TableHandle:
    if handle.in_memory and not settings().force_in_memory:
        raise HTTPException(status_code=500, detail="Baserow configuration missing")
    return handle


def _properties() -> TableHandle:
    return _require(CONNECTOR.properties())


def _leads() -> TableHandle:
    return _require(CONNECTOR.leads())


def _raise_for(exc: BaserowError, what: str):
    if exc.status_code == 404:
        raise HTTPException(status_code=404, detail=f"{what} not found")
    logger.error("Baserow %s error: %s", what, exc)
    raise HTTPException(status_code=500, detail=str(exc))


# ───────────────────────────── Properties ─────────────────────────────
@router.get("/baserow/properties")
async def list_property_rows():
    handle = _properties()
    try:
        rows = await handle.table.list_rows()
    except BaserowError as e:
        _raise_for(e, "Properties")
    return {"success": True, "count": len(rows), "results": rows}


@router.get("/baserow/properties/{row_id}")
async def get_property_row(row_id: int):
    handle = _properties()
    try:
        return await handle.table.get_row(row_id)
    except BaserowError as e:
        _raise_for(e, "Property")


@router.post("/baserow/properties")
async def create_property_row(fields: Dict[str, Any] = Body(...)):
    if not fields:
        raise HTTPException(status_code=400, detail="Property fields are required")
    handle = _properties()
    try:
        row = await handle.table.create_row(fields)
    except BaserowError as e:
        _raise_for(e, "Property")
    logger.info("🏠 Property created (row %s)", row.get("id"))
    return row


@router.patch("/baserow/properties/{row_id}")
async def update_property_row(row_id: int, fields: Dict[str, Any] = Body(...)):
    if not fields:
        raise HTTPException(status_code=400, detail="Property fields are required")
    handle = _properties()
    try:
        return await handle.table.update_row(row_id, fields)
    except BaserowError as e:
        _raise_for(e, "Property")


@router.delete("/baserow/properties/{row_id}")
async def delete_property_row(row_id: int):
    handle = _properties()
    try:
        await handle.table.delete_row(row_id)
    except BaserowError as e:
        _raise_for(e, "Property")
    logger.info("🗑️ Property %s deleted", row_id)
    return {"success": True, "id": row_id}


# ───────────────────────────── Leads ─────────────────────────────
@router.get("/leads")
async def list_lead_rows():
    handle = _leads()
    try:
        rows = await handle.table.list_rows()
    except BaserowError as e:
        _raise_for(e, "Leads")
    return {"success": True, "count": len(rows), "results": rows}


@router.get("/leads/{phone}")
async def get_lead_by_phone(phone: str):
    _leads()
    row = await LEADS.find_by_phone(phone)
    if row is None:
        raise HTTPException(status_code=404, detail="Lead not found")
    return row


@router.post("/leads")
async def upsert_lead(payload: Dict[str, Any] = Body(...)):
    phone = clean_lead_phone(payload.get("phoneNumber") or payload.get(LEAD_FIELD_MAP["PHONE"]))
    if not phone:
        raise HTTPException(status_code=400, detail="phoneNumber is required")
    _leads()
    fields = {k: v for k, v in payload.items() if k not in ("phoneNumber", "id")}
    row = await LEADS.upsert(phone, fields)
    if row is None:
        raise HTTPException(status_code=500, detail="Failed to save lead")
    return {"success": True, "lead": row}


@router.patch("/leads/{row_id}")
async def update_lead_row(row_id: int, fields: Dict[str, Any] = Body(...)):
    if not fields:
        raise HTTPException(status_code=400, detail="Lead fields are required")
    handle = _leads()
    try:
        return await handle.table.update_row(row_id, fields)
    except BaserowError as e:
        _raise_for(e, "Lead")
