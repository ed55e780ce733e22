"""Cached access to the model listing.

``ModelInfoService`` sits in front of ``GeminiClient.list_models`` and
``GeminiClient.get_model`` with a cachetools ``TTLCache``. Listing pages,
the full paginated listing and single models are cached under separate
keys; ``force_refresh`` bypasses (and refreshes) the cache.

Key Features:
    - TTL expiration (default one hour, ``ClientConfig.model_cache_ttl``)
    - Thread-safe: cache access is protected by a lock
    - Hit/miss statistics for monitoring
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Any

from cachetools import TTLCache

from gemini_kit.domain.exceptions import ResourceNotFoundError
from gemini_kit.domain.models import Model, ModelList
from gemini_kit.domain.requests import model_path

if TYPE_CHECKING:
    from gemini_kit.client.sync import GeminiClient

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 50
_ALL_MODELS_KEY = "all_models_list"


class ModelInfoService:
    """Model metadata lookups with a TTL cache.

    Attributes:
        client: Client used for the underlying API calls.
        ttl_seconds: Lifetime of a cached entry.
    """

    __slots__ = ("client", "ttl_seconds", "_cache", "_lock", "_hits", "_misses")

    def __init__(
        self,
        client: GeminiClient,
        ttl_seconds: float | None = None,
        max_size: int | None = None,
    ) -> None:
        """Create the service.

        Args:
            client: Client for API calls.
            ttl_seconds: Cache TTL. None uses ``client_config.model_cache_ttl``.
            max_size: Cache capacity. None uses ``client_config.model_cache_size``.
        """
        self.client = client
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else client.client_config.model_cache_ttl
        capacity = max_size if max_size is not None else client.client_config.model_cache_size
        self._cache: TTLCache[str, Model | ModelList] = TTLCache(maxsize=capacity, ttl=self.ttl_seconds)
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    def _cached(self, key: str) -> Any | None:
        with self._lock:
            entry = self._cache.get(key)
            if entry is not None:
                self._hits += 1
                return entry
            self._misses += 1
            return None

    def _store(self, key: str, value: Model | ModelList) -> None:
        if self.ttl_seconds <= 0:
            return
        with self._lock:
            self._cache[key] = value

    def list_models(
        self,
        page_size: int | None = None,
        page_token: str | None = None,
        *,
        force_refresh: bool = False,
    ) -> ModelList:
        """Return one page of the model listing.

        Args:
            page_size: Models per page. None lets the API decide.
            page_token: Token from a previous page's ``next_page_token``.
            force_refresh: Skip the cache and refetch.
        """
        key = f"models_list_{page_size}_{page_token}"
        if not force_refresh and (cached := self._cached(key)) is not None:
            return cached

        model_list = self.client.list_models(page_size, page_token)
        self._store(key, model_list)
        return model_list

    def list_all_models(self, *, force_refresh: bool = False) -> ModelList:
        """Return every model, following pagination to the last page."""
        if not force_refresh and (cached := self._cached(_ALL_MODELS_KEY)) is not None:
            return cached

        models: list[Model] = []
        page = self.list_models(DEFAULT_PAGE_SIZE, None, force_refresh=force_refresh)
        models.extend(page)
        while page.has_more_pages:
            page = self.list_models(DEFAULT_PAGE_SIZE, page.next_page_token, force_refresh=force_refresh)
            models.extend(page)

        result = ModelList(models)
        logger.debug("Fetched %d models", len(result))
        self._store(_ALL_MODELS_KEY, result)
        return result

    def get_model(self, name: str, *, force_refresh: bool = False) -> Model:
        """Return metadata for one model.

        Args:
            name: Model name, with or without the ``models/`` prefix.
            force_refresh: Skip the cache and refetch.

        Raises:
            ResourceNotFoundError: If the API does not know the model.
        """
        path = model_path(name)
        key = f"model_{path}"
        if not force_refresh and (cached := self._cached(key)) is not None:
            return cached

        try:
            model = self.client.get_model(path)
        except ResourceNotFoundError as exc:
            raise ResourceNotFoundError(f"Model '{path}' not found", exc.code, exc.http_status) from exc
        self._store(key, model)
        return model

    def get_models_by_method(self, method: str, *, force_refresh: bool = False) -> ModelList:
        """Models supporting a generation method, e.g. ``generateContent``."""
        return self.list_all_models(force_refresh=force_refresh).filter_by_method(method)

    def get_models_by_base_id(self, base_model_id: str, *, force_refresh: bool = False) -> ModelList:
        return self.list_all_models(force_refresh=force_refresh).filter_by_base_model_id(base_model_id)

    def clear_cache(self) -> None:
        """Clear all cache entries."""
        with self._lock:
            self._cache.clear()
            self._hits = 0
            self._misses = 0

    def get_stats(self) -> dict[str, Any]:
        """Cache statistics: hits, misses, hit rate and size."""
        with self._lock:
            total = self._hits + self._misses
            return {
                "hits": self._hits,
                "misses": self._misses,
                "hit_rate": self._hits / total if total > 0 else 0.0,
                "size": len(self._cache),
                "max_size": self._cache.maxsize,
            }


__all__ = ["DEFAULT_PAGE_SIZE", "ModelInfoService"]
