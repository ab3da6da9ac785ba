"""
RxNorm (RxNav REST) drug name resolution.

Lookups:
- /rxcui.json?name=...&search=2  exact or normalized match
- /approximateTerm.json          fuzzy fallback
- /rxcui/{rxcui}/related.json?tty=BN  brand names
"""

from typing import Protocol

import httpx

from ddi_miner.cache import CacheStats, TTLCache
from ddi_miner.config import settings
from ddi_miner.console import debug
from ddi_miner.httpclient import fetch, make_client


class DrugResolver(Protocol):
    """Best-effort drug name -> identifier lookup. Implementations never raise."""

    async def resolve(self, name: str) -> str | None: ...

    async def brand_names(self, name: str) -> list[str]: ...


class NullResolver:
    """Resolver used when identifier lookup is disabled."""

    async def resolve(self, name: str) -> str | None:
        return None

    async def brand_names(self, name: str) -> list[str]:
        return []


class RxNormResolver:
    """Resolve drug names to RXCUIs via RxNav, caching answers per instance."""

    base_url = "https://rxnav.nlm.nih.gov/REST"

    def __init__(self, client: httpx.AsyncClient | None = None, cache_ttl: float | None = None):
        self._client = client
        self._owns_client = client is None
        self.cache = TTLCache(
            default_ttl=cache_ttl if cache_ttl is not None else settings.cache_ttl_seconds,
            max_size=settings.cache_max_size,
        )

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = make_client()
        return self._client

    async def _get(self, path: str, params: dict | None = None) -> dict:
        response = await fetch(self.client, f"{self.base_url}{path}", params)
        return response.json() if response is not None else {}

    async def resolve(self, name: str) -> str | None:
        key = name.strip().lower()
        if not key:
            return None
        cached = self.cache.get(f"rxcui|{key}")
        if cached is not None:
            return cached or None  # "" marks a known miss
        try:
            rxcui = await self._lookup(key)
        except (httpx.HTTPError, ValueError) as e:
            debug(f"RxNorm lookup failed for {name!r}: {e}")
            return None
        self.cache.set(f"rxcui|{key}", rxcui or "")
        return rxcui

    async def _lookup(self, name: str) -> str | None:
        data = await self._get("/rxcui.json", {"name": name, "search": 2})
        ids = (data.get("idGroup") or {}).get("rxnormId") or []
        if ids:
            return str(ids[0])

        data = await self._get("/approximateTerm.json", {"term": name, "maxEntries": 1})
        candidates = (data.get("approximateGroup") or {}).get("candidate") or []
        if candidates and candidates[0].get("rxcui"):
            return str(candidates[0]["rxcui"])
        return None

    async def brand_names(self, name: str) -> list[str]:
        """Brand names (RxNorm term type BN) for a generic drug name."""
        rxcui = await self.resolve(name)
        if not rxcui:
            return []
        cache_key = f"brands|{rxcui}"
        cached = self.cache.get(cache_key)
        if cached is not None:
            return list(cached)
        try:
            data = await self._get(f"/rxcui/{rxcui}/related.json", {"tty": "BN"})
        except (httpx.HTTPError, ValueError) as e:
            debug(f"RxNorm brand lookup failed for {name!r}: {e}")
            return []
        groups = (data.get("relatedGroup") or {}).get("conceptGroup") or []
        brands = [
            concept["name"]
            for group in groups
            for concept in group.get("conceptProperties") or []
            if concept.get("name")
        ]
        self.cache.set(cache_key, brands)
        return brands

    def clear_cache(self) -> None:
        self.cache.clear()

    def cache_stats(self) -> CacheStats:
        return self.cache.stats()

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None
