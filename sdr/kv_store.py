"""
Two-tier key-value store.

Primary: Upstash REST (JSON command arrays) or a Redis TCP connection.
Secondary: a process-local map, used only when the primary is missing
or reports an error. Every caller goes through ``STORE``.
"""

from __future__ import annotations

import fnmatch
import json
import time
from typing import Any, Dict, List, Optional, Tuple

import httpx

from sdr.config import settings
from sdr.runtime import get_logger

import redis.asyncio as aioredis

logger = get_logger("kv_store")


class KVUnavailable(RuntimeError):
    """Raised by a primary backend when the remote store cannot serve a command."""


# ============================================================
# BACKENDS
# ============================================================


class UpstashRestBackend:
    name = "upstash"

    def __init__(self, url: str, token: str, timeout: float = 5.0) -> None:
        self.url = url.rstrip("/")
        self.token = token
        self.timeout = timeout

    async def command(self, *args: Any) -> Any:
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(
                    self.url,
                    headers={"Authorization": f"Bearer {self.token}"},
                    json=[str(a) for a in args],
                )
        except httpx.HTTPError as exc:
            raise KVUnavailable(f"Upstash request failed: {exc}") from exc
        if resp.is_error:
            raise KVUnavailable(f"Upstash HTTP {resp.status_code}: {resp.text[:200]}")
        data = resp.json()
        if isinstance(data, dict) and data.get("error"):
            raise KVUnavailable(f"Upstash error: {data['error']}")
        return data.get("result") if isinstance(data, dict) else None

    async def get(self, key: str) -> Optional[str]:
        return await self.command("GET", key)

    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        if ttl:
            await self.command("SET", key, value, "EX", int(ttl))
        else:
            await self.command("SET", key, value)

    async def delete(self, key: str) -> None:
        await self.command("DEL", key)

    async def keys(self, pattern: str) -> List[str]:
        return list(await self.command("KEYS", pattern) or [])

    async def ping(self) -> bool:
        return (await self.command("PING")) == "PONG"


class RedisBackend:
    name = "redis"

    def __init__(self, url: str, tls: bool = False) -> None:
        if tls and url.startswith("redis://"):
            url = "rediss://" + url[len("redis://"):]
        self.client = aioredis.from_url(url, decode_responses=True)

    async def _call(self, method: str, *args: Any, **kwargs: Any) -> Any:
        try:
            return await getattr(self.client, method)(*args, **kwargs)
        except Exception as exc:
            raise KVUnavailable(f"Redis {method} failed: {exc}") from exc

    async def get(self, key: str) -> Optional[str]:
        return await self._call("get", key)

    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        await self._call("set", key, value, ex=int(ttl) if ttl else None)

    async def delete(self, key: str) -> None:
        await self._call("delete", key)

    async def keys(self, pattern: str) -> List[str]:
        return list(await self._call("keys", pattern) or [])

    async def ping(self) -> bool:
        return bool(await self._call("ping"))


class MemoryBackend:
    """Process-local map with per-key expiry. Not shared across processes."""

    name = "memory"

    def __init__(self) -> None:
        self._data: Dict[str, Tuple[str, Optional[float]]] = {}

    def _alive(self, key: str) -> bool:
        item = self._data.get(key)
        if item is None:
            return False
        expires_at = item[1]
        if expires_at is not None and expires_at <= time.time():
            self._data.pop(key, None)
            return False
        return True

    async def get(self, key: str) -> Optional[str]:
        return self._data[key][0] if self._alive(key) else None

    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        self._data[key] = (value, time.time() + ttl if ttl else None)

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def keys(self, pattern: str) -> List[str]:
        return [k for k in list(self._data) if fnmatch.fnmatchcase(k, pattern) and self._alive(k)]

    async def ping(self) -> bool:
        return True

    def clear(self) -> None:
        self._data.clear()


# ============================================================
# ADAPTER
# ============================================================


def _build_primary():
    cfg = settings()
    if cfg.force_in_memory:
        return None
    if cfg.upstash_rest_url and cfg.upstash_rest_token:
        return UpstashRestBackend(cfg.upstash_rest_url, cfg.upstash_rest_token)
    if cfg.redis_url:
        try:
            return RedisBackend(cfg.redis_url, tls=cfg.redis_tls)
        except Exception:
            logger.warning("Redis client init failed; using in-memory store", exc_info=True)
    return None


class KeyValueStore:
    """JSON get/set/delete/list-by-prefix with in-memory degradation."""

    def __init__(self) -> None:
        self._primary: Any = None
        self._primary_resolved = False
        self.memory = MemoryBackend()
        self.degraded_ops = 0

    @property
    def primary(self):
        if not self._primary_resolved:
            self._primary = _build_primary()
            self._primary_resolved = True
            if self._primary is None:
                logger.info("🧠 Key-value store running in-memory only")
            else:
                logger.info("✅ Key-value store primary: %s", self._primary.name)
        return self._primary

    def _degrade(self, action: str, key: str, exc: Exception) -> None:
        self.degraded_ops += 1
        logger.warning("⚠️ KV %s degraded to memory for %s: %s", action, key, exc)

    async def get_json(self, key: str) -> Optional[Any]:
        raw: Optional[str] = None
        primary = self.primary
        if primary is not None:
            try:
                raw = await primary.get(key)
            except KVUnavailable as exc:
                self._degrade("get", key, exc)
        if raw is None:
            raw = await self.memory.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (TypeError, ValueError):
            logger.warning("Discarding non-JSON value at %s", key)
            return None

    async def set_json(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        """Store a JSON value. Returns False when the write only reached memory."""
        raw = json.dumps(value, ensure_ascii=False, default=str)
        primary = self.primary
        if primary is not None:
            try:
                await primary.set(key, raw, ttl)
                await self.memory.delete(key)
                return True
            except KVUnavailable as exc:
                self._degrade("set", key, exc)
        await self.memory.set(key, raw, ttl)
        return False

    async def delete(self, key: str) -> None:
        primary = self.primary
        if primary is not None:
            try:
                await primary.delete(key)
            except KVUnavailable as exc:
                self._degrade("delete", key, exc)
        await self.memory.delete(key)

    async def keys(self, prefix: str) -> List[str]:
        pattern = f"{prefix}*"
        found: List[str] = []
        primary = self.primary
        if primary is not None:
            try:
                found = await primary.keys(pattern)
            except KVUnavailable as exc:
                self._degrade("keys", pattern, exc)
        for key in await self.memory.keys(pattern):
            if key not in found:
                found.append(key)
        return sorted(found)

    async def ping(self) -> bool:
        primary = self.primary
        if primary is None:
            return False
        try:
            return await primary.ping()
        except KVUnavailable:
            return False

    def backend_name(self) -> str:
        return self.primary.name if self.primary is not None else self.memory.name

    def reset(self) -> None:
        self._primary = None
        self._primary_resolved = False
        self.memory.clear()
        self.degraded_ops = 0


STORE = KeyValueStore()


def reset_state() -> None:
    STORE.reset()
    logger.info("🧹 Key-value store state cleared.")
