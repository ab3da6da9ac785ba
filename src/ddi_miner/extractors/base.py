"""
Base class for DDI source extractors.

All extractors share one contract: `extract_ddi_for_drug(drug_name, options)`
returns a list of valid DrugInteractionEvidence records and never raises for
recoverable failures (network errors, empty results, malformed documents).
"""

import asyncio
import re
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any
from xml.etree import ElementTree

import httpx

from ddi_miner.cache import CacheStats, TTLCache
from ddi_miner.config import settings
from ddi_miner.console import debug, warn
from ddi_miner.evidence.model import DrugInteractionEvidence, SourceType
from ddi_miner.httpclient import fetch, make_client
from ddi_miner.resolve import DrugResolver, NullResolver

# Errors treated as malformed-document failures; the document is skipped.
PARSE_ERRORS = (KeyError, TypeError, ValueError, AttributeError, IndexError, ElementTree.ParseError)


@dataclass
class ExtractionOptions:
    """Per-call options: a result cap plus source-specific flags."""

    max_results: int = 50
    flags: dict[str, Any] = field(default_factory=dict)

    def flag(self, name: str, default: Any = None) -> Any:
        return self.flags.get(name, default)


class BaseExtractor(ABC):
    """Base class for source extractors."""

    source_type: SourceType
    name: str
    extraction_method: str
    gate: re.Pattern[str]
    default_max_results: int = 50
    request_delay_default: float = 0.0

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        resolver: DrugResolver | None = None,
        request_delay: float | None = None,
        cache_ttl: float | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self._client = client
        self._owns_client = client is None
        self.resolver = resolver or NullResolver()
        self.request_delay = self.request_delay_default if request_delay is None else request_delay
        self.cache = TTLCache(
            default_ttl=cache_ttl if cache_ttl is not None else settings.cache_ttl_seconds,
            max_size=settings.cache_max_size,
        )
        self._sleep = sleep

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = make_client()
        return self._client

    async def extract_ddi_for_drug(
        self,
        drug_name: str,
        options: ExtractionOptions | None = None,
    ) -> list[DrugInteractionEvidence]:
        """
        Extract DDI evidence for one drug from this source.

        Args:
            drug_name: Generic (or brand) drug name to search for
            options: Result cap and source-specific flags

        Returns:
            Valid evidence records; empty on recoverable failures
        """
        drug_name = drug_name.strip()
        if not drug_name:
            return []
        options = options or ExtractionOptions(max_results=self.default_max_results)
        records = await self._extract(drug_name, options)
        valid = [record for record in records if record.is_valid()]
        debug(f"{self.name}: {len(valid)} records for {drug_name}")
        return valid

    @abstractmethod
    async def _extract(
        self,
        drug_name: str,
        options: ExtractionOptions,
    ) -> list[DrugInteractionEvidence]:
        """Fetch documents and turn them into candidate records."""
        pass

    # -- fetching ---------------------------------------------------------

    async def _get_json(self, url: str, params: dict | None = None, cache_key: str | None = None) -> dict | None:
        """
        GET a JSON object with caching and retries.

        Returns None (after a warning) on 404, HTTP or decode failures, and
        when the body is valid JSON but not an object.
        """
        if cache_key:
            cached = self.cache.get(cache_key)
            if cached is not None:
                return cached
        try:
            response = await fetch(self.client, url, params)
            data = response.json() if response is not None else None
        except (httpx.HTTPError, ValueError) as e:
            warn(f"{self.name}: request to {url} failed: {e}")
            return None
        if data is not None and not isinstance(data, dict):
            warn(f"{self.name}: expected a JSON object from {url}, got {type(data).__name__}")
            return None
        if data is not None and cache_key:
            self.cache.set(cache_key, data)
        return data

    async def _get_text(self, url: str, params: dict | None = None, cache_key: str | None = None) -> str | None:
        if cache_key:
            cached = self.cache.get(cache_key)
            if cached is not None:
                return cached
        try:
            response = await fetch(self.client, url, params)
        except httpx.HTTPError as e:
            warn(f"{self.name}: request to {url} failed: {e}")
            return None
        if response is None:
            return None
        if cache_key:
            self.cache.set(cache_key, response.text)
        return response.text

    async def _pause(self) -> None:
        """Fixed delay between sequential document fetches."""
        if self.request_delay > 0:
            await self._sleep(self.request_delay)

    async def _resolve(self, name: str) -> str | None:
        return await self.resolver.resolve(name)

    # -- housekeeping -----------------------------------------------------

    def clear_cache(self) -> None:
        self.cache.clear()

    def cache_stats(self) -> CacheStats:
        return self.cache.stats()

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None
