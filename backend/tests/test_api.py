"""Tests for the FastAPI routes.

The checkpoint store and both external services are replaced through
dependency overrides. TestClient runs background tasks before returning,
so a POST that starts generation has finished by the time it returns.
"""

import asyncio
import uuid

import pytest
from fastapi.testclient import TestClient

from fakes import RecordingStore, ScriptedDecomposer, ScriptedGenerator, make_job
from storypipe.api.app import app
from storypipe.api import routes
from storypipe.api.routes import get_decomposer, get_generator, get_store
from storypipe.config import settings
from storypipe.orchestrator import Orchestrator
from storypipe.pipeline.scene_task import TerminalGenerationError
from storypipe.pipeline.storyboard import LLMDecompositionService


@pytest.fixture
def api(store, decomposer, generator):
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_decomposer] = lambda: decomposer
    app.dependency_overrides[get_generator] = lambda: generator
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health(api):
    response = api.get("/api/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_create_storyboard_runs_to_completion(api, decomposer, generator):
    response = api.post(
        "/api/storyboards",
        json={"prompt": "a fox in the snow", "provider": "ollama/test", "scene_count": 3},
    )

    assert response.status_code == 202
    body = response.json()
    assert body["name"] == "Test Movie"
    assert body["total_scenes"] == 3
    assert body["status_url"] == f"/api/storyboards/{body['storyboard_id']}/status"
    assert decomposer.calls == [("a fox in the snow", "ollama/test", 3)]
    assert sorted(generator.calls) == [0, 1, 2]

    status = api.get(body["status_url"]).json()
    assert status["in_progress"] is False
    assert status["completed_scenes"] == 3
    assert status["resume_decision"] == "none"

    job = api.get(f"/api/storyboards/{body['storyboard_id']}").json()
    assert [clip["order"] for clip in job["clips"]] == [0, 1, 2]
    assert len(job["plan"]["scenes"]) == 3


def test_create_storyboard_records_failed_scene(api):
    generator = ScriptedGenerator(failures={1: [TerminalGenerationError("bad svg")]})
    api.app.dependency_overrides[get_generator] = lambda: generator

    body = api.post(
        "/api/storyboards",
        json={"prompt": "a fox", "provider": "ollama/test", "scene_count": 3},
    ).json()
    status = api.get(body["status_url"]).json()

    assert generator.calls.count(1) == 1
    assert status["in_progress"] is False
    assert status["completed_scenes"] == 2
    assert status["error"] == "1 of 3 scenes failed: [1] bad svg"


def test_create_storyboard_rejects_blank_prompt(api, decomposer):
    response = api.post("/api/storyboards", json={"prompt": "   ", "provider": "ollama/test"})

    assert response.status_code == 422
    assert decomposer.calls == []


def test_create_storyboard_decomposition_failure(api, store):
    api.app.dependency_overrides[get_decomposer] = lambda: ScriptedDecomposer(fail=True)

    response = api.post("/api/storyboards", json={"prompt": "a fox", "provider": "ollama/test"})

    assert response.status_code == 502
    assert "Storyboard generation failed" in response.json()["detail"]
    assert store.proposed == []


def test_create_storyboard_adapter_failure_is_502(api, store):
    def factory(provider):
        raise RuntimeError("no client for provider")

    api.app.dependency_overrides[get_decomposer] = lambda: LLMDecompositionService(adapter_factory=factory)

    response = api.post("/api/storyboards", json={"prompt": "a fox", "provider": "ollama/test"})

    assert response.status_code == 502
    assert "no client for provider" in response.json()["detail"]
    assert store.proposed == []


def test_create_storyboard_unconfigured_provider(api, decomposer, monkeypatch):
    monkeypatch.setattr(settings.google_cloud, "project_id", None)

    response = api.post("/api/storyboards", json={"prompt": "a fox", "provider": "gemini-2.5-flash"})

    assert response.status_code == 503
    assert "Google Cloud project" in response.json()["detail"]
    assert decomposer.calls == []


def test_list_storyboards(api, store):
    asyncio.run(store.write(make_job(total=3, clips=1)))

    response = api.get("/api/storyboards")

    assert response.status_code == 200
    items = response.json()
    assert len(items) == 1
    assert items[0]["completed_scenes"] == 1
    assert items[0]["in_progress"] is True


def test_unknown_storyboard_is_404(api):
    missing = uuid.uuid4()
    response = api.get(f"/api/storyboards/{missing}")
    assert response.status_code == 404
    assert response.json()["detail"] == f"Storyboard {missing} not found"
    assert api.get(f"/api/storyboards/{missing}/status").status_code == 404
    assert api.post(f"/api/storyboards/{missing}/resume").status_code == 404
    assert api.delete(f"/api/storyboards/{missing}").status_code == 404
    assert api.post(f"/api/storyboards/{missing}/abort").status_code == 404


def test_invalid_storyboard_id_is_422(api):
    assert api.get("/api/storyboards/not-a-uuid").status_code == 422


def test_resume_interrupted_storyboard(api, store, decomposer, generator):
    job = make_job(total=5, clips=2)
    asyncio.run(store.write(job))

    response = api.post(f"/api/storyboards/{job.id}/resume")

    assert response.status_code == 202
    body = response.json()
    assert body["decision"] == "resume_generation"
    assert body["resumed_from"] == 2
    assert sorted(generator.calls) == [2, 3, 4]
    assert decomposer.calls == []

    status = api.get(f"/api/storyboards/{job.id}/status").json()
    assert status["in_progress"] is False
    assert status["completed_scenes"] == 5


def test_resume_finished_storyboard_conflicts(api, store, generator):
    job = make_job(total=2, clips=2, in_progress=False)
    asyncio.run(store.write(job))

    response = api.post(f"/api/storyboards/{job.id}/resume")

    assert response.status_code == 409
    assert generator.calls == []


def test_resume_of_running_storyboard_conflicts(api, store, decomposer, generator, monkeypatch):
    job = make_job(total=5, clips=2)
    asyncio.run(store.write(job))
    monkeypatch.setitem(routes._active_runs, job.id, Orchestrator(store, decomposer, generator))

    response = api.post(f"/api/storyboards/{job.id}/resume")

    assert response.status_code == 409
    assert generator.calls == []


def test_abort_running_storyboard(api, store, decomposer, generator, monkeypatch):
    job = make_job(total=5, clips=2)
    asyncio.run(store.write(job))
    orchestrator = Orchestrator(store, decomposer, generator)
    monkeypatch.setitem(routes._active_runs, job.id, orchestrator)

    response = api.post(f"/api/storyboards/{job.id}/abort")

    assert response.status_code == 202
    assert response.json()["status_url"] == f"/api/storyboards/{job.id}/status"
    assert orchestrator.aborted is True


def test_abort_idle_storyboard_conflicts(api, store):
    job = make_job(total=3, clips=1)
    asyncio.run(store.write(job))

    response = api.post(f"/api/storyboards/{job.id}/abort")

    assert response.status_code == 409


def test_run_is_registered_until_generation_finishes(api):
    class ObservingGenerator(ScriptedGenerator):
        def __init__(self):
            super().__init__()
            self.running: list[bool] = []

        async def generate(self, scene_description, provider):
            self.running.append(bool(routes._active_runs))
            return await super().generate(scene_description, provider)

    generator = ObservingGenerator()
    api.app.dependency_overrides[get_generator] = lambda: generator

    body = api.post(
        "/api/storyboards",
        json={"prompt": "a fox", "provider": "ollama/test", "scene_count": 2},
    ).json()

    assert sorted(generator.calls) == [0, 1]
    assert generator.running == [True, True]
    assert uuid.UUID(body["storyboard_id"]) not in routes._active_runs


def test_delete_storyboard(api, store):
    job = make_job(total=1)
    asyncio.run(store.write(job))

    response = api.delete(f"/api/storyboards/{job.id}")

    assert response.status_code == 204
    assert api.get(f"/api/storyboards/{job.id}").status_code == 404


def test_unhandled_error_returns_json_500():
    class BrokenStore(RecordingStore):
        async def list_jobs(self):
            raise RuntimeError("disk on fire")

    app.dependency_overrides[get_store] = lambda: BrokenStore()
    try:
        response = TestClient(app, raise_server_exceptions=False).get("/api/storyboards")
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 500
    assert response.json() == {"error": "Internal server error", "detail": "disk on fire"}
