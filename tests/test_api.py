"""HTTP surface tests using FastAPI's TestClient with all upstreams offline."""

import time

import pytest
from fastapi.testclient import TestClient

from conftest import mock_client, unreachable
from bouchenator.api import build_app
from bouchenator.core.config import get_settings
from bouchenator.generation.cascade import GenerationCascade

DESCRIPTION = "A dock scheduler for warehouse leads that books inbound trucks into free door slots."


@pytest.fixture
def api(store):
    app = build_app(settings=get_settings(), store=store, client=mock_client(unreachable),
                    cascade=GenerationCascade([]))
    with TestClient(app) as client:
        yield client


def _wait_for_done(api, job_id, timeout=10.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        snapshot = api.get(f"/api/jobs/{job_id}").json()
        if snapshot["status"] in ("done", "failed"):
            return snapshot
        time.sleep(0.05)
    raise AssertionError(f"job {job_id} did not finish")


def _analyzed_job(api):
    response = api.post("/api/analyze", json={"input": "https://acme.com"})
    assert response.status_code == 200
    return _wait_for_done(api, response.json()["jobId"])


def test_health(api, store):
    body = api.get("/health").json()

    assert body["status"] == "ok"
    assert body["dataDir"] == str(store.data_dir)


def test_empty_input_is_rejected(api):
    response = api.post("/api/analyze", json={"input": "   "})

    assert response.status_code == 400
    assert response.json() == {"error": "Input is required"}


def test_unknown_job_is_404(api):
    response = api.get("/api/jobs/does-not-exist")

    assert response.status_code == 404
    assert response.json() == {"error": "Job not found", "code": "JOB_NOT_FOUND"}


def test_ambiguous_input_returns_options(api):
    body = api.post("/api/analyze", json={"input": "apple"}).json()

    assert body["needsDisambiguation"] is True
    assert body["options"][0]["label"] == "Apple Inc."


def test_analyze_then_poll_until_done(api):
    snapshot = _analyzed_job(api)

    assert snapshot["status"] == "done"
    assert len(snapshot["ideas"]) == 15
    assert [s["id"] for s in snapshot["steps"]][0] == "resolve"
    assert snapshot["companyContext"]["name"] == "Acme"
    assert snapshot["evidence"]["providerUsed"] == "mock"


def test_idea_detail_and_build_plan(api):
    snapshot = _analyzed_job(api)
    idea_id = snapshot["ideas"][0]["id"]

    detail = api.get(f"/api/idea/{idea_id}").json()
    assert detail["id"] == idea_id
    assert detail["theme"]["primary"].startswith("#")

    first = api.post("/api/steps/generate", json={"ideaId": idea_id}).json()
    second = api.post("/api/steps/generate", json={"ideaId": idea_id}).json()
    assert first["used"] == "fallback"
    assert second["used"] == "cache"
    assert first["folderName"].startswith("v01-acme-")


def test_steps_for_unknown_idea(api):
    response = api.post("/api/steps/generate", json={"ideaId": "gone"})

    assert response.status_code == 404
    assert response.json()["code"] == "IDEA_NOT_FOUND"
    assert "session may have expired" in response.json()["error"]


def test_custom_idea_lifecycle(api):
    job_id = _analyzed_job(api)["id"]

    created = api.post("/api/ideas/custom", json={"jobId": job_id, "description": DESCRIPTION})
    assert created.status_code == 200
    idea_id = created.json()["ideaId"]

    snapshot = api.get(f"/api/jobs/{job_id}").json()
    assert snapshot["ideas"][-1]["id"] == idea_id
    assert snapshot["ideas"][-1]["source"] == "custom"

    regenerated = api.post("/api/ideas/custom/regenerate", json={
        "ideaId": idea_id,
        "description": "A returns portal where shoppers print labels and track refunds without calling support.",
    })
    assert regenerated.json() == {"ok": True}
    assert api.get(f"/api/idea/{idea_id}").json()["title"] == "A returns portal where shoppers"


def test_custom_idea_validation(api):
    short = api.post("/api/ideas/custom", json={"jobId": "x", "description": "too short"})
    missing = api.post("/api/ideas/custom", json={"description": DESCRIPTION})

    assert short.status_code == 400
    assert short.json()["error"].startswith("Description must be at least 40 characters")
    assert missing.json() == {"error": "jobId and description are required"}


def test_cancel_finished_job(api):
    job_id = _analyzed_job(api)["id"]

    assert api.delete(f"/api/jobs/{job_id}").json() == {"ok": True, "cancelled": False}
    assert api.delete("/api/jobs/nope").status_code == 404


def test_trending_without_token_is_empty(api):
    assert api.get("/api/inspiration/producthunt").json() == {"posts": []}
