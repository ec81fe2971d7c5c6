"""
Job, idea and build-plan persistence.

Each namespace is a ``TieredStore``: an in-memory dict is always tried first,
then JSON files under ``DATA_DIR/<namespace>/``. Writes go to both layers so a
record survives a process restart or a cleared memory layer.
"""

from __future__ import annotations

import asyncio
import itertools
import json
import re
import threading
from pathlib import Path
from typing import Dict, Generic, Optional, Protocol, Type, TypeVar

import structlog

from bouchenator.core.config import get_settings
from bouchenator.core.exceptions import NotFoundError
from bouchenator.core.models import BuildPlan, Idea, Job, WireModel

logger = structlog.get_logger("store")

M = TypeVar("M", bound=WireModel)

_UNSAFE_KEY = re.compile(r"[^A-Za-z0-9._-]+")


class Store(Protocol[M]):
    """Minimal key-value contract shared by every layer."""

    def get(self, key: str) -> Optional[M]:
        ...

    def put(self, key: str, value: M) -> None:
        ...

    def has(self, key: str) -> bool:
        ...


class MemoryStore(Generic[M]):
    def __init__(self):
        self._data: Dict[str, M] = {}

    def get(self, key: str) -> Optional[M]:
        return self._data.get(key)

    def put(self, key: str, value: M) -> None:
        self._data[key] = value

    def has(self, key: str) -> bool:
        return key in self._data

    def clear(self) -> None:
        self._data.clear()

    def __len__(self) -> int:
        return len(self._data)


class DiskStore(Generic[M]):
    """
    One camelCase JSON file per key.

    Records are serialized when the write is issued and stamped with a
    sequence number; a write older than the last one on disk for its key is
    dropped, so writes finishing out of order never restore a stale record.
    """

    def __init__(self, root: Path, namespace: str, model: Type[M]):
        self.directory = Path(root) / namespace
        self.model = model
        self._lock = threading.Lock()
        self._sequence = itertools.count()
        self._written: Dict[str, int] = {}

    def _path(self, key: str) -> Path:
        return self.directory / f"{_UNSAFE_KEY.sub('_', key)}.json"

    def get(self, key: str) -> Optional[M]:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            return self.model.model_validate(json.loads(path.read_text(encoding="utf-8")))
        except (OSError, ValueError) as e:
            logger.warning("store_read_failed", path=str(path), error=str(e))
            return None

    def _write(self, key: str, payload: str, seq: int) -> None:
        path = self._path(key)
        with self._lock:
            if seq < self._written.get(key, -1):
                return
            try:
                self.directory.mkdir(parents=True, exist_ok=True)
                path.write_text(payload, encoding="utf-8")
            except OSError as e:
                # Memory still holds the record; disk is best effort.
                logger.warning("store_write_failed", path=str(path), error=str(e))
                return
            self._written[key] = seq

    def put(self, key: str, value: M) -> None:
        self._write(key, json.dumps(value.to_wire(), indent=2), next(self._sequence))

    async def put_async(self, key: str, value: M) -> None:
        """Same as ``put`` with the file write run in a worker thread."""
        payload, seq = json.dumps(value.to_wire(), indent=2), next(self._sequence)
        await asyncio.to_thread(self._write, key, payload, seq)

    def has(self, key: str) -> bool:
        return self._path(key).exists()


class TieredStore(Generic[M]):
    """Memory first, disk on a miss; writes go through to both."""

    def __init__(self, memory: MemoryStore[M], disk: Optional[DiskStore[M]] = None):
        self.memory = memory
        self.disk = disk

    def get(self, key: str) -> Optional[M]:
        value = self.memory.get(key)
        if value is not None or self.disk is None:
            return value
        value = self.disk.get(key)
        if value is not None:
            logger.debug("store_disk_hit", key=key)
            self.memory.put(key, value)
        return value

    def put(self, key: str, value: M) -> None:
        self.memory.put(key, value)
        if self.disk is not None:
            self.disk.put(key, value)

    async def put_async(self, key: str, value: M) -> None:
        self.memory.put(key, value)
        if self.disk is not None:
            await self.disk.put_async(key, value)

    def has(self, key: str) -> bool:
        return self.memory.has(key) or (self.disk is not None and self.disk.has(key))


class JobStore:
    """Jobs, ideas and build plans, each in its own namespace."""

    def __init__(self, data_dir: Optional[Path] = None, persist: bool = True):
        root = Path(data_dir) if data_dir is not None else get_settings().resolved_data_dir()
        self.data_dir = root if persist else None

        def tier(namespace: str, model: Type[M]) -> TieredStore[M]:
            disk = DiskStore(root, namespace, model) if persist else None
            return TieredStore(MemoryStore(), disk)

        self.jobs: TieredStore[Job] = tier("jobs", Job)
        self.ideas: TieredStore[Idea] = tier("ideas", Idea)
        self.plans: TieredStore[BuildPlan] = tier("plans", BuildPlan)

    # Jobs

    def create_job(self, job: Job) -> None:
        self.jobs.put(job.id, job)

    def save_job(self, job: Job) -> None:
        self.jobs.put(job.id, job)

    async def save_job_async(self, job: Job) -> None:
        await self.jobs.put_async(job.id, job)

    def get_job(self, job_id: str) -> Optional[Job]:
        return self.jobs.get(job_id)

    def require_job(self, job_id: str) -> Job:
        job = self.get_job(job_id)
        if job is None:
            raise NotFoundError("Job", job_id)
        return job

    # Ideas

    def store_idea(self, idea: Idea) -> None:
        self.ideas.put(idea.id, idea)

    async def store_idea_async(self, idea: Idea) -> None:
        await self.ideas.put_async(idea.id, idea)

    def get_idea(self, idea_id: str) -> Optional[Idea]:
        return self.ideas.get(idea_id)

    def require_idea(self, idea_id: str) -> Idea:
        idea = self.get_idea(idea_id)
        if idea is None:
            raise NotFoundError("Idea", idea_id)
        return idea

    # Build plans, keyed by idea id

    def store_build_plan(self, plan: BuildPlan) -> None:
        self.plans.put(plan.idea_id, plan)

    def get_build_plan(self, idea_id: str) -> Optional[BuildPlan]:
        return self.plans.get(idea_id)

    def clear_memory(self) -> None:
        """Drop the in-memory layer, as a restart would."""
        for tier in (self.jobs, self.ideas, self.plans):
            tier.memory.clear()
