import os
from pathlib import Path

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

TEST_DB_URL = os.getenv("TEST_DATABASE_URL")
if TEST_DB_URL:
    os.environ.setdefault("DATABASE_URL", TEST_DB_URL)

from fakes import MOCK_PROVIDER, ScriptedGateway  # noqa: E402
from prompt_improver.main import app  # noqa: E402
from prompt_improver.workflows.orchestrator import CollaborationOrchestrator, ImprovementRequest  # noqa: E402


@pytest.fixture
def scripted_gateway():
    return ScriptedGateway


@pytest.fixture
def make_request():
    def _make(prompt: str = "Write a blog post about AI", max_rounds: int = 5, **kwargs) -> ImprovementRequest:
        return ImprovementRequest(
            task_id=kwargs.pop("task_id", "task-1"),
            original_prompt=prompt,
            provider=MOCK_PROVIDER,
            max_rounds=max_rounds,
            **kwargs,
        )
    return _make


@pytest.fixture
def make_orchestrator():
    def _make(gateway) -> CollaborationOrchestrator:
        return CollaborationOrchestrator(gateway=gateway, timeout=5, max_retries=1, backoff=0)
    return _make


@pytest_asyncio.fixture
async def api_client():
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture(scope="session")
def apply_migrations():
    from alembic import command
    from alembic.config import Config

    cfg = Config(str(Path(__file__).resolve().parents[1] / "alembic.ini"))
    cfg.set_main_option("script_location", str(Path(__file__).resolve().parents[1] / "alembic"))
    cfg.set_main_option("sqlalchemy.url", os.environ["DATABASE_URL"])
    command.upgrade(cfg, "head")
    yield
    if "test" in os.environ["DATABASE_URL"]:
        command.downgrade(cfg, "base")


@pytest_asyncio.fixture
async def db_cleanup(apply_migrations):
    from sqlalchemy import text

    from prompt_improver.db.session import AsyncSessionLocal, engine

    await engine.dispose()
    async with AsyncSessionLocal() as session:
        await session.execute(text(
            "TRUNCATE TABLE task_events, prompt_improvements, multi_agent_sessions, prompt_tasks RESTART IDENTITY CASCADE"
        ))
        await session.commit()
    yield
    await engine.dispose()
