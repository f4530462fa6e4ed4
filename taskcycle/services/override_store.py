"""
Per-occurrence override storage.

The store owns a process-local cache that is hydrated once through
``load_all`` and afterwards only changes through ``put`` and ``delete``.
Reads are served from the cache: the backing document store may be
eventually consistent, so a write is never verified by fetching it back.

A failed backend write still advances the cache.  The key is remembered as
pending and ``retry_pending`` re-sends the cached record.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Mapping
from datetime import date, datetime, timezone
from types import MappingProxyType
from typing import Any, Optional, Protocol

from taskcycle.domain.entities import InstanceOverride, override_key, sanitize_override_fields
from taskcycle.domain.errors import OverridePersistenceError, TaskcycleError
from taskcycle.domain.window import parse_date

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OverrideDocuments(Protocol):
    def get(self, key: str) -> Optional[dict[str, Any]]: ...

    def set(self, key: str, document: dict[str, Any]) -> None: ...

    def delete(self, key: str) -> None: ...

    def query_by_task(self, task_id: str) -> list[dict[str, Any]]: ...

    def list_all(self) -> list[dict[str, Any]]: ...


class InstanceOverrideStore:
    def __init__(
        self,
        documents: OverrideDocuments,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._documents = documents
        self._clock = clock
        self._cache: dict[str, InstanceOverride] = {}
        self._pending: set[str] = set()
        self._lock = threading.Lock()
        self._hydrated = False

    @property
    def cache(self) -> Mapping[str, InstanceOverride]:
        return MappingProxyType(self._cache)

    def load_all(self) -> list[InstanceOverride]:
        loaded: dict[str, InstanceOverride] = {}
        for document in self._documents.list_all():
            override = _from_document(document)
            if override is not None:
                loaded[override.key] = override

        with self._lock:
            # unsent local writes are newer than anything the backend returned
            for key in self._pending:
                if key in self._cache:
                    loaded[key] = self._cache[key]
            self._cache.clear()
            self._cache.update(loaded)
            self._hydrated = True
            overrides = list(self._cache.values())

        logger.info("Loaded %d instance overrides", len(overrides))
        return overrides

    def get(self, template_id: str, occurrence_date: date | str) -> InstanceOverride | None:
        return self._cache.get(override_key(template_id, parse_date(occurrence_date)))

    def get_all_for_template(self, template_id: str) -> list[InstanceOverride]:
        overrides = [o for o in list(self._cache.values()) if o.template_id == template_id]
        return sorted(overrides, key=lambda o: o.occurrence_date)

    def put(
        self, template_id: str, occurrence_date: date | str, fields: Mapping[str, Any]
    ) -> InstanceOverride | None:
        """Merge ``fields`` into the occurrence's override and persist it.

        Returns the existing override, unwritten, when ``fields`` holds only
        identity keys.

        Raises InvalidOverrideError before anything changes when ``fields``
        holds keys outside the mutable set.  Raises OverridePersistenceError
        after the cache has been updated when the backend write fails.
        """
        clean = sanitize_override_fields(fields)
        occurrence_date = parse_date(occurrence_date)
        key = override_key(template_id, occurrence_date)
        remote = None
        if not self._hydrated and key not in self._cache:
            remote = _from_document(self._documents.get(key))
        if not clean:
            return self._cache.get(key) or remote

        now = self._clock()
        with self._lock:
            existing = self._cache.get(key) or remote
            if existing is not None:
                override = existing.merged(clean, now)
            else:
                override = InstanceOverride(
                    template_id=template_id,
                    occurrence_date=occurrence_date,
                    fields=clean,
                    created_at=now,
                    updated_at=now,
                )
            self._cache[key] = override

        logger.debug("Override %s set fields %s", key, sorted(clean))
        self._write(override)
        return override

    def delete(self, template_id: str, occurrence_date: date | str) -> bool:
        key = override_key(template_id, parse_date(occurrence_date))
        with self._lock:
            existing = self._cache.get(key)
        try:
            self._documents.delete(key)
        except Exception as exc:  # noqa: BLE001
            raise OverridePersistenceError(
                f"Failed to delete override {key}: {exc}", existing, exc
            ) from exc
        with self._lock:
            self._cache.pop(key, None)
            self._pending.discard(key)
        return existing is not None

    def pending(self) -> list[str]:
        with self._lock:
            return sorted(self._pending)

    def retry_pending(self) -> list[str]:
        """Re-send cached records whose last write failed; return keys still failing."""
        failed = []
        for key in self.pending():
            override = self._cache.get(key)
            if override is None:
                continue
            try:
                self._write(override)
            except OverridePersistenceError:
                failed.append(key)
        return failed

    def _write(self, override: InstanceOverride) -> None:
        key = override.key
        try:
            self._documents.set(key, override.to_document())
        except Exception as exc:  # noqa: BLE001
            with self._lock:
                self._pending.add(key)
            logger.warning("Override %s kept locally, write failed: %s", key, exc)
            raise OverridePersistenceError(
                f"Failed to persist override {key}: {exc}", override, exc
            ) from exc
        with self._lock:
            self._pending.discard(key)


def _from_document(document: Mapping[str, Any] | None) -> InstanceOverride | None:
    if not document:
        return None
    try:
        return InstanceOverride.from_document(document)
    except (KeyError, TypeError, ValueError, TaskcycleError) as exc:
        logger.warning("Skipping malformed override record %s: %s", document.get("id"), exc)
        return None
