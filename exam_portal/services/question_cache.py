from __future__ import annotations

import json
import logging
import time
from collections import OrderedDict
from threading import Lock
from typing import Callable, Protocol

import redis

from exam_portal.core.config import settings
from exam_portal.services.rate_limit import redis_client

_LOG = logging.getLogger("exam_portal.question_cache")


class QuestionCache(Protocol):
    def get(self, form_id: str) -> list[dict] | None:
        ...

    def set(self, form_id: str, questions: list[dict]) -> None:
        ...

    def clear(self) -> None:
        ...


class InMemoryQuestionCache:
    """Process-local cache with per-entry TTL and insertion-order eviction."""

    def __init__(
        self,
        *,
        max_entries: int = 100,
        ttl_seconds: float = 3600.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_entries = max(int(max_entries), 1)
        self.ttl_seconds = float(ttl_seconds)
        self._clock = clock
        self._entries: OrderedDict[str, tuple[float, list[dict]]] = OrderedDict()
        self._lock = Lock()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, form_id: str) -> bool:
        return form_id in self._entries

    def get(self, form_id: str) -> list[dict] | None:
        with self._lock:
            entry = self._entries.get(form_id)
            if entry is None:
                return None
            stored_at, questions = entry
            if self._clock() - stored_at >= self.ttl_seconds:
                del self._entries[form_id]
                return None
            return questions

    def set(self, form_id: str, questions: list[dict]) -> None:
        with self._lock:
            # Re-storing a key refreshes its insertion position.
            self._entries.pop(form_id, None)
            self._entries[form_id] = (self._clock(), questions)
            while len(self._entries) > self.max_entries:
                evicted, _ = self._entries.popitem(last=False)
                _LOG.debug("question cache evicted form_id=%s", evicted)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


class RedisQuestionCache:
    """Shared cache for multi-process deployments; Redis enforces the TTL."""

    def __init__(self, client: redis.Redis, *, ttl_seconds: int = 3600, prefix: str = "exam:questions:"):
        self.client = client
        self.ttl_seconds = max(int(ttl_seconds), 1)
        self.prefix = prefix

    def get(self, form_id: str) -> list[dict] | None:
        raw = self.client.get(self.prefix + form_id)
        if raw is None:
            return None
        return json.loads(raw)

    def set(self, form_id: str, questions: list[dict]) -> None:
        self.client.setex(self.prefix + form_id, self.ttl_seconds, json.dumps(questions))

    def clear(self) -> None:
        for key in self.client.scan_iter(match=self.prefix + "*"):
            self.client.delete(key)


_cached_cache: QuestionCache | None = None


def _build_cache() -> QuestionCache:
    backend = str(settings.QUESTION_CACHE_BACKEND or "memory").strip().lower()
    if backend == "redis":
        try:
            client = redis_client()
            client.ping()
            return RedisQuestionCache(client, ttl_seconds=settings.QUESTION_CACHE_TTL_SECONDS)
        except redis.RedisError:
            _LOG.warning("Redis question cache unavailable; fallback to in-memory cache")
    return InMemoryQuestionCache(
        max_entries=settings.QUESTION_CACHE_MAX_ENTRIES,
        ttl_seconds=settings.QUESTION_CACHE_TTL_SECONDS,
    )


def get_question_cache() -> QuestionCache:
    global _cached_cache
    if _cached_cache is None:
        _cached_cache = _build_cache()
    return _cached_cache
