"""Tests for the tiered job/idea/plan store."""

import asyncio
import json

import pytest

from bouchenator.core.exceptions import NotFoundError
from bouchenator.core.models import BuildPlan, BuildStep, CompanyContext, Idea, Job
from bouchenator.services.job_store import JobStore


def _job(job_id: str = "job-1", text: str = "Acme") -> Job:
    return Job(id=job_id, input=text, company_context=CompanyContext(name="Acme"))


class TestJobStore:
    def test_job_round_trips_through_disk(self, store):
        store.create_job(_job())
        store.clear_memory()

        job = store.get_job("job-1")

        assert job is not None
        assert job.company_context.name == "Acme"
        assert store.jobs.memory.has("job-1")

    def test_files_use_camel_case_keys(self, store):
        store.create_job(_job())

        text = (store.data_dir / "jobs" / "job-1.json").read_text(encoding="utf-8")

        assert '"companyContext"' in text
        assert "company_context" not in text

    def test_unknown_ids(self, store):
        assert store.get_job("missing") is None
        assert store.get_idea("missing") is None
        assert store.get_build_plan("missing") is None

        with pytest.raises(NotFoundError) as exc_info:
            store.require_job("missing")
        assert exc_info.value.code == "JOB_NOT_FOUND"

    def test_unsafe_keys_stay_inside_namespace(self, store):
        idea = Idea(id="../../etc/passwd", job_id="job-1", title="Sneaky")
        store.store_idea(idea)

        assert list((store.data_dir / "ideas").iterdir())[0].name == ".._.._etc_passwd.json"
        store.clear_memory()
        assert store.get_idea("../../etc/passwd").title == "Sneaky"

    def test_plans_are_keyed_by_idea(self, store):
        plan = BuildPlan(idea_id="job-1-0", terminal_setup="cd ~/Desktop", folder_name="v01-acme",
                         steps=[BuildStep(title="Start", role="PM+UX", cursor_prompt="BMAD ROLE: PM+UX")])
        store.store_build_plan(plan)
        store.clear_memory()

        assert store.get_build_plan("job-1-0").steps[0].role == "PM+UX"

    def test_corrupt_file_reads_as_missing(self, store):
        store.create_job(_job())
        (store.data_dir / "jobs" / "job-1.json").write_text("{not json", encoding="utf-8")
        store.clear_memory()

        assert store.get_job("job-1") is None

    def test_memory_only_store(self, tmp_path):
        memory_only = JobStore(tmp_path / "unused", persist=False)
        memory_only.create_job(_job())
        memory_only.clear_memory()

        assert memory_only.get_job("job-1") is None
        assert not (tmp_path / "unused").exists()

    def test_default_location_comes_from_settings(self, tmp_path):
        JobStore().create_job(_job())

        assert (tmp_path / "data" / "jobs" / "job-1.json").exists()


class TestAsyncWrites:
    def test_async_save_reaches_disk(self, store):
        job = _job()
        job.input = "Acme Robotics"

        asyncio.run(store.save_job_async(job))
        asyncio.run(store.store_idea_async(Idea(id="job-1-0", job_id="job-1", title="Dock planner")))
        store.clear_memory()

        assert store.get_job("job-1").input == "Acme Robotics"
        assert store.get_idea("job-1-0").title == "Dock planner"

    def test_late_stale_write_does_not_replace_newer_record(self, store):
        disk = store.jobs.disk
        stale = json.dumps(_job(text="stale").to_wire())
        fresh = json.dumps(_job(text="fresh").to_wire())

        disk._write("job-1", fresh, 5)
        disk._write("job-1", stale, 3)

        assert disk.get("job-1").input == "fresh"

    def test_sync_write_after_pending_async_write_wins(self, store):
        async def overlapping():
            pending = asyncio.ensure_future(store.save_job_async(_job(text="running")))
            await asyncio.sleep(0)
            store.save_job(_job(text="cancelled"))
            await pending

        asyncio.run(overlapping())
        store.clear_memory()

        assert store.get_job("job-1").input == "cancelled"
