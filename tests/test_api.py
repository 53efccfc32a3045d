"""
API tests for the task endpoints.

The Postgres store and the background job are replaced through FastAPI
dependency overrides, so these tests need no database.
"""

import asyncio
import json

import pytest

from fakes import InMemoryTaskStore
from prompt_improver.jobs import improvement
from prompt_improver.main import app
from prompt_improver.models import TaskStatus
from prompt_improver.routers import tasks as tasks_router

PROMPT = "Write a blog post about AI"


@pytest.fixture
def task_store():
    store = InMemoryTaskStore()
    app.dependency_overrides[tasks_router.get_store] = lambda: store
    return store


@pytest.fixture
def submitted():
    requests = []

    async def fake_runner(request):
        requests.append(request)

    app.dependency_overrides[tasks_router.get_job_runner] = lambda: fake_runner
    return requests


def parse_sse(text: str):
    return [json.loads(line[len("data: "):]) for line in text.splitlines() if line.startswith("data: ")]


class TestCreateTask:
    """Test POST /tasks."""

    @pytest.mark.asyncio
    async def test_create_task_queues_run(self, api_client, task_store, submitted):
        response = await api_client.post(
            "/tasks",
            json={
                "prompt": PROMPT,
                "context": "Company engineering blog",
                "target_audience": "Developers",
                "provider": "mock",
                "max_rounds": 3,
            },
        )
        assert response.status_code == 201
        payload = response.json()
        assert payload["status"] == TaskStatus.queued.value
        assert payload["provider"] == "mock"
        assert payload["model"] == "simulation"
        assert payload["max_rounds"] == 3

        assert len(submitted) == 1
        request = submitted[0]
        assert request.task_id == payload["id"]
        assert request.original_prompt == PROMPT
        assert request.context_hint == "Company engineering blog"
        assert request.audience_hint == "Developers"
        assert request.max_rounds == 3

    @pytest.mark.asyncio
    async def test_api_key_travels_with_request_only(self, api_client, task_store, submitted):
        response = await api_client.post(
            "/tasks",
            json={"prompt": PROMPT, "provider": "openai", "api_key": "sk-per-task-secret"},
        )
        assert response.status_code == 201
        assert "sk-per-task-secret" not in response.text
        assert submitted[0].provider.api_key == "sk-per-task-secret"

    @pytest.mark.parametrize("body", [
        {"prompt": "too short"},
        {"prompt": " " * 20},
        {"prompt": PROMPT, "max_rounds": 0},
        {"prompt": PROMPT, "max_rounds": 21},
        {"prompt": PROMPT, "context": "c" * 1001},
        {"prompt": PROMPT, "target_audience": "a" * 501},
    ])
    @pytest.mark.asyncio
    async def test_invalid_input_rejected(self, api_client, task_store, submitted, body):
        response = await api_client.post("/tasks", json=body)
        assert response.status_code == 422
        assert response.json()["error_kind"] == "validation_error"
        assert submitted == []
        assert task_store.tasks == {}

    @pytest.mark.asyncio
    async def test_validation_error_hides_api_key(self, api_client, task_store, submitted):
        response = await api_client.post("/tasks", json={"api_key": "sk-leak-me", "max_rounds": 2})
        assert response.status_code == 422
        assert "sk-leak-me" not in response.text


class TestGetTask:
    """Test GET /tasks/{id}."""

    @pytest.mark.asyncio
    async def test_get_task(self, api_client, task_store, submitted):
        created = (await api_client.post("/tasks", json={"prompt": PROMPT, "provider": "mock"})).json()

        response = await api_client.get(f"/tasks/{created['id']}")
        assert response.status_code == 200
        assert response.json()["original_prompt"] == PROMPT

    @pytest.mark.asyncio
    async def test_unknown_task_404(self, api_client, task_store):
        response = await api_client.get("/tasks/does-not-exist")
        assert response.status_code == 404


class TestListTasks:
    """Test GET /tasks and GET /tasks/recent."""

    @pytest.mark.asyncio
    async def test_list_newest_first_with_filters(self, api_client, task_store, submitted):
        ids = []
        for provider in ("mock", "openai", "mock"):
            created = await api_client.post("/tasks", json={"prompt": PROMPT, "provider": provider})
            ids.append(created.json()["id"])
        task_store.set_status(ids[0], TaskStatus.cancelled)

        response = await api_client.get("/tasks")
        assert response.status_code == 200
        payload = response.json()
        assert [t["id"] for t in payload["tasks"]] == list(reversed(ids))
        assert payload["total"] == 3

        by_status = (await api_client.get("/tasks", params={"status": "cancelled"})).json()
        assert [t["id"] for t in by_status["tasks"]] == [ids[0]]

        by_provider = (await api_client.get("/tasks", params={"provider": "openai"})).json()
        assert [t["id"] for t in by_provider["tasks"]] == [ids[1]]

        limited = (await api_client.get("/tasks", params={"limit": 1})).json()
        assert [t["id"] for t in limited["tasks"]] == [ids[2]]
        assert limited["total"] == 1

    @pytest.mark.parametrize("params", [{"limit": 0}, {"limit": 101}, {"status": "sleeping"}])
    @pytest.mark.asyncio
    async def test_invalid_query_rejected(self, api_client, task_store, params):
        response = await api_client.get("/tasks", params=params)
        assert response.status_code == 422
        assert response.json()["error_kind"] == "validation_error"

    @pytest.mark.asyncio
    async def test_recent_tasks(self, api_client, task_store, submitted):
        for _ in range(12):
            await api_client.post("/tasks", json={"prompt": PROMPT, "provider": "mock"})
        done = next(iter(task_store.tasks))
        task_store.set_status(done, TaskStatus.completed, improvement={"improved_prompt": "Better", "quality_score": 88})

        response = await api_client.get("/tasks/recent")
        assert response.status_code == 200
        recent = response.json()
        assert len(recent) == 10
        assert recent[0]["id"] == "task-12"
        assert all(entry["has_result"] is False for entry in recent)

        task_store.tasks.pop("task-12")
        task_store.tasks.pop("task-11")
        recent = (await api_client.get("/tasks/recent")).json()
        assert recent[-1]["id"] == done
        assert recent[-1]["has_result"] is True
        assert recent[-1]["quality_score"] == 88


class TestTaskResult:
    """Test GET /tasks/{id}/result."""

    @pytest.mark.asyncio
    async def test_conflict_until_completed(self, api_client, task_store, submitted):
        created = (await api_client.post("/tasks", json={"prompt": PROMPT, "provider": "mock"})).json()

        response = await api_client.get(f"/tasks/{created['id']}/result")
        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_completed_task_result(self, api_client, task_store, submitted):
        created = (await api_client.post("/tasks", json={"prompt": PROMPT, "provider": "mock"})).json()
        task_store.set_status(
            created["id"],
            TaskStatus.completed,
            improvement={"improved_prompt": "Better prompt", "quality_score": 91},
            session={"rounds_completed": 2, "final_decision": "approve"},
        )

        response = await api_client.get(f"/tasks/{created['id']}/result")
        assert response.status_code == 200
        payload = response.json()
        assert payload["task"]["id"] == created["id"]
        assert payload["improvement"]["improved_prompt"] == "Better prompt"
        assert payload["session"]["final_decision"] == "approve"

    @pytest.mark.asyncio
    async def test_completed_without_improvement_404(self, api_client, task_store, submitted):
        created = (await api_client.post("/tasks", json={"prompt": PROMPT, "provider": "mock"})).json()
        task_store.set_status(created["id"], TaskStatus.completed)

        response = await api_client.get(f"/tasks/{created['id']}/result")
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_unknown_task_404(self, api_client, task_store):
        response = await api_client.get("/tasks/does-not-exist/result")
        assert response.status_code == 404


class TestCancelTask:
    """Test POST /tasks/{id}/cancel."""

    @pytest.mark.asyncio
    async def test_cancel_queued_task(self, api_client, task_store, submitted):
        created = (await api_client.post("/tasks", json={"prompt": PROMPT, "provider": "mock"})).json()

        response = await api_client.post(f"/tasks/{created['id']}/cancel", json={"reason": "changed my mind"})
        assert response.status_code == 202
        assert response.json()["status"] == "cancelled"
        assert task_store.tasks[created["id"]].status == TaskStatus.cancelled

        again = await api_client.post(f"/tasks/{created['id']}/cancel")
        assert again.status_code == 409

    @pytest.mark.asyncio
    async def test_cancel_running_task_signals_run(self, api_client, task_store, submitted):
        created = (await api_client.post("/tasks", json={"prompt": PROMPT, "provider": "mock"})).json()
        task_id = created["id"]
        task_store.set_status(task_id, TaskStatus.running)
        event = asyncio.Event()
        improvement.active_runs[task_id] = event
        try:
            response = await api_client.post(f"/tasks/{task_id}/cancel")
        finally:
            improvement.active_runs.pop(task_id, None)

        assert response.status_code == 202
        assert response.json()["status"] == "accepted"
        assert event.is_set()

    @pytest.mark.asyncio
    async def test_cancel_unknown_task_404(self, api_client, task_store):
        response = await api_client.post("/tasks/does-not-exist/cancel")
        assert response.status_code == 404


class TestTaskEvents:
    """Test the SSE stream."""

    @pytest.mark.asyncio
    async def test_stream_ends_for_finished_task(self, monkeypatch, api_client, task_store, submitted):
        monkeypatch.setattr(tasks_router, "SSE_POLL_SECONDS", 0)
        created = (await api_client.post("/tasks", json={"prompt": PROMPT, "provider": "mock"})).json()
        task_store.set_status(created["id"], TaskStatus.running)
        task_store.set_status(created["id"], TaskStatus.completed)

        response = await api_client.get(f"/tasks/{created['id']}/events")
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        assert "event: end" in response.text
        statuses = [m.get("status") for m in parse_sse(response.text) if isinstance(m, dict)]
        assert statuses == ["queued", "running", "completed"]

    @pytest.mark.asyncio
    async def test_stream_for_unknown_task(self, api_client, task_store):
        response = await api_client.get("/tasks/does-not-exist/events")
        assert "event: error" in response.text


class TestServiceEndpoints:
    @pytest.mark.asyncio
    async def test_health(self, api_client):
        response = await api_client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    @pytest.mark.asyncio
    async def test_providers(self, api_client):
        response = await api_client.get("/providers")
        assert response.status_code == 200
        providers = response.json()["providers"]
        assert providers["mock"]["configured"] is True
        assert providers["mock"]["default_model"] == "simulation"
        assert set(providers) >= {"openai", "anthropic", "google", "openrouter", "vertex", "bedrock", "azure"}
