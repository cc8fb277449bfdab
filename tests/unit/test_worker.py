# tests/unit/test_worker.py

import pytest

from clypse.jobs.worker import WorkerSettings, sweep_expired_files
from clypse.services.file_service import FileShareService
from clypse.storage.memory import MemoryStore


class FakeRedis:
    def __init__(self):
        self.counters = {}

    async def incr(self, key):
        self.counters[key] = self.counters.get(key, 0) + 1


@pytest.mark.asyncio
async def test_sweep_job_removes_expired_files():
    from datetime import datetime, timezone

    store = MemoryStore()
    files = FileShareService(store, file_ttl_seconds=1)
    await files.upload("stale.txt", b"s", now=datetime(2020, 1, 1, tzinfo=timezone.utc))
    redis = FakeRedis()

    result = await sweep_expired_files({"redis": redis, "files": files})

    assert result == {"removed": 1}
    assert len(store) == 0
    assert redis.counters == {"jobs:sweep:started": 1, "jobs:sweep:finished": 1}


@pytest.mark.asyncio
async def test_sweep_job_counts_failures():
    class BrokenFiles:
        async def sweep_expired(self):
            raise RuntimeError("store down")

    redis = FakeRedis()
    with pytest.raises(RuntimeError):
        await sweep_expired_files({"redis": redis, "files": BrokenFiles()})
    assert redis.counters == {"jobs:sweep:started": 1, "jobs:sweep:failed": 1}


def test_sweep_is_scheduled():
    assert sweep_expired_files in WorkerSettings.functions
    assert len(WorkerSettings.cron_jobs) == 1
