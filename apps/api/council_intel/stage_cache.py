from __future__ import annotations

import abc
import json
import logging
import threading
import weakref
from contextlib import contextmanager
from typing import Any, Iterator

from .db import Database
from .models import AnalysisCache, Bounds, StageResult
from .time_utils import _utc_now

logger = logging.getLogger(__name__)

CACHE_TABLE = "council_analysis_cache"


class StageCache(abc.ABC):
    """
    One record per region holding the result of every completed stage.

    Writes are per stage: upserting stage N never disturbs any other stage's entry.
    """

    def __init__(self) -> None:
        # Entries disappear once no writer holds the region's lock.
        self._locks: weakref.WeakValueDictionary[str, Any] = weakref.WeakValueDictionary()
        self._locks_guard = threading.Lock()

    @contextmanager
    def _region_lock(self, region_id: str) -> Iterator[None]:
        with self._locks_guard:
            lock = self._locks.get(region_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[region_id] = lock
        with lock:
            yield

    @abc.abstractmethod
    def load(self, region_id: str) -> AnalysisCache | None:
        pass

    def get_stage(self, region_id: str, stage_num: int) -> StageResult | None:
        cached = self.load(region_id)
        if cached is None:
            return None
        return cached.stage_results.get(stage_num)

    def upsert_stage(self, region_id: str, council: str, bounds: Bounds, result: StageResult) -> None:
        with self._region_lock(region_id):
            self._upsert_stage(region_id, council, bounds, result)

    @abc.abstractmethod
    def _upsert_stage(self, region_id: str, council: str, bounds: Bounds, result: StageResult) -> None:
        pass

    @abc.abstractmethod
    def clear(self, region_id: str | None = None) -> int:
        """Deletes one region's record, or all records when `region_id` is None. Returns the count."""
        pass

    def ensure_schema(self) -> None:
        return None


def _stage_map_from_json(raw: Any) -> dict[int, StageResult]:
    if isinstance(raw, str):
        raw = json.loads(raw)
    if not isinstance(raw, dict):
        return {}
    out: dict[int, StageResult] = {}
    for key, value in raw.items():
        try:
            result = StageResult.model_validate(value)
        except Exception:  # noqa: BLE001
            logger.warning("Dropping unreadable cached stage %r.", key)
            continue
        out[result.stage_num] = result
    return out


class PostgresStageCache(StageCache):
    def __init__(self, db: Database, *, table: str = CACHE_TABLE) -> None:
        super().__init__()
        self.db = db
        self.table = table

    def ensure_schema(self) -> None:
        self.db.execute(
            f"""
            CREATE TABLE IF NOT EXISTS {self.table} (
              region_id text PRIMARY KEY,
              council text NOT NULL,
              bounds jsonb NOT NULL,
              stage_results jsonb NOT NULL DEFAULT '{{}}'::jsonb,
              updated_at timestamptz NOT NULL
            )
            """
        )

    def load(self, region_id: str) -> AnalysisCache | None:
        row = self.db.fetch_one(
            f"SELECT region_id, council, bounds, stage_results, updated_at FROM {self.table} WHERE region_id = %s",
            (region_id,),
        )
        if not row:
            return None
        bounds = row["bounds"]
        if isinstance(bounds, str):
            bounds = json.loads(bounds)
        return AnalysisCache(
            region_id=row["region_id"],
            council=row["council"],
            bounds=tuple(bounds),
            stage_results=_stage_map_from_json(row["stage_results"]),
            updated_at=row["updated_at"],
        )

    def _upsert_stage(self, region_id: str, council: str, bounds: Bounds, result: StageResult) -> None:
        entry = json.dumps({str(result.stage_num): result.to_wire()}, ensure_ascii=False)
        # jsonb `||` replaces the key for this stage only, in a single statement.
        self.db.execute(
            f"""
            INSERT INTO {self.table} (region_id, council, bounds, stage_results, updated_at)
            VALUES (%s, %s, %s::jsonb, %s::jsonb, %s)
            ON CONFLICT (region_id) DO UPDATE
            SET stage_results = {self.table}.stage_results || EXCLUDED.stage_results,
                updated_at = EXCLUDED.updated_at
            """,
            (region_id, council, json.dumps(list(bounds)), entry, _utc_now()),
        )

    def clear(self, region_id: str | None = None) -> int:
        if region_id:
            return self.db.execute(f"DELETE FROM {self.table} WHERE region_id = %s", (region_id,))
        return self.db.execute(f"DELETE FROM {self.table}")


class InMemoryStageCache(StageCache):
    def __init__(self) -> None:
        super().__init__()
        self._records: dict[str, dict[str, Any]] = {}

    def load(self, region_id: str) -> AnalysisCache | None:
        record = self._records.get(region_id)
        if record is None:
            return None
        return AnalysisCache.model_validate(record)

    def _upsert_stage(self, region_id: str, council: str, bounds: Bounds, result: StageResult) -> None:
        record = self._records.get(region_id) or {
            "regionId": region_id,
            "council": council,
            "bounds": list(bounds),
            "stageResults": {},
        }
        stage_results = dict(record["stageResults"])
        stage_results[result.stage_num] = result.to_wire()
        self._records[region_id] = {**record, "stageResults": stage_results, "updatedAt": _utc_now()}

    def clear(self, region_id: str | None = None) -> int:
        if region_id:
            return 1 if self._records.pop(region_id, None) is not None else 0
        count = len(self._records)
        self._records.clear()
        return count
