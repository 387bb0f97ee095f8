import pytest
from conftest import (
    TWO_ACT_OUTLINE,
    FakePlanner,
    FakeReviser,
    FakeWriter,
    ScriptedCompletionClient,
    numbered_plan,
)
from fastapi.testclient import TestClient

from arcweaver.config import ControllerConfig, LeakageConfig
from arcweaver.errors import BatchAlreadyRunningError
from arcweaver.orchestration import BatchGenerationController, BatchRegistry
from arcweaver.web import routes
from arcweaver.web.main import app

SECOND_ACT_PLAN = "\n".join(f"第{n}章: 第二幕的第{n}章。" for n in range(6, 11))
LEAKY_TEXT = "林舟在码头捡到星图碎片，远处黑潮教团的船影浮现，他想起古老誓约。"


@pytest.fixture
def llm_client():
    return ScriptedCompletionClient([SECOND_ACT_PLAN])


@pytest.fixture
def controller(repository, llm_client):
    return BatchGenerationController(
        repository,
        llm_client,
        planner=FakePlanner(),
        writer=FakeWriter(["第一章正文", "第二章正文"]),
        reviser=FakeReviser(),
        settings=ControllerConfig(success_reset_delay=0, error_reset_delay=0),
        leakage=LeakageConfig(),
        registry=BatchRegistry(),
    )


@pytest.fixture
def http(repository, llm_client, controller):
    app.dependency_overrides[routes.get_repository] = lambda: repository
    app.dependency_overrides[routes.get_completion_client] = lambda: llm_client
    app.dependency_overrides[routes.get_controller] = lambda: controller
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health(http):
    assert http.get("/health").json() == {"status": "healthy"}


def test_plan_next_act(http, repository):
    novel_id = repository.add_novel(outline=TWO_ACT_OUTLINE)
    repository.add_chapters(novel_id, 3)

    response = http.post(f"/novels/{novel_id}/plan-next-act")

    assert response.status_code == 200
    body = response.json()
    assert body["kind"] == "planned"
    assert body["chapter_range"] == {"start": 6, "end": 10}
    assert "第10章: 第二幕的第10章。" in body["new_outline_text"]


def test_plan_next_act_for_missing_novel(http):
    assert http.post("/novels/7/plan-next-act").status_code == 404


def test_generate_chapters(http, repository):
    novel_id = repository.add_novel(outline=numbered_plan(1, 10))

    response = http.post(f"/novels/{novel_id}/generate-chapters", json={"count": 2})

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "completed"
    assert body["saved_chapters"] == [1, 2]
    assert [o["kind"] for o in body["planning_outcomes"]] == ["skipped", "skipped"]
    assert repository.novels[novel_id]["expansion_count"] == 1


def test_generate_chapters_validation(http, repository):
    novel_id = repository.add_novel()

    assert http.post(f"/novels/{novel_id}/generate-chapters", json={"count": 0}).status_code == 422
    assert http.post("/novels/99/generate-chapters", json={"count": 1}).status_code == 404


def test_generate_chapters_conflict(http):
    class BusyController:
        async def generate_batch(self, novel_id, count, user_prompt=None):
            raise BatchAlreadyRunningError(novel_id)

    app.dependency_overrides[routes.get_controller] = lambda: BusyController()

    response = http.post("/novels/1/generate-chapters", json={"count": 1})

    assert response.status_code == 409
    assert "already running" in response.json()["detail"]


def test_status_and_cancel_when_idle(http):
    status = http.get("/novels/1/generation-status").json()

    assert status["status"] == "idle"
    assert status["progress"] == 0
    assert http.post("/novels/1/generation/cancel").json() == {"novel_id": 1, "cancelled": False}


def test_record_expansion(http, repository):
    novel_id = repository.add_novel()

    assert http.post(f"/novels/{novel_id}/record-expansion").json()["recorded"] is True
    assert repository.novels[novel_id]["expansion_count"] == 1
    assert http.post("/novels/99/record-expansion").status_code == 404


def test_compliance_report(http, repository):
    novel_id = repository.add_novel(outline=TWO_ACT_OUTLINE)
    repository.add_chapters(novel_id, 1)
    repository.chapters[novel_id][2] = repository.chapters[novel_id][1].model_copy(
        update={"chapter_number": 2, "content": LEAKY_TEXT}
    )

    body = http.get(f"/novels/{novel_id}/compliance").json()

    assert body["checked"] == 2
    assert body["non_compliant_chapters"] == [2]
    assert http.get("/novels/99/compliance").status_code == 404


def test_events_for_novel(http, repository):
    novel_id = repository.add_novel(outline=numbered_plan(1, 10))
    http.post(f"/novels/{novel_id}/generate-chapters", json={"count": 1})

    events = http.get(f"/novels/{novel_id}/events").json()

    types = [event["event_type"] for event in events]
    assert types[0] == "batch_start"
    assert "chapter_saved" in types
    assert types[-1] == "batch_complete"
    assert all(event["novel_id"] == novel_id for event in events)
    assert http.get(f"/novels/{novel_id}/events", params={"limit": 1}).json()[0]["event_type"] == "batch_complete"
    assert http.get("/novels/99/events").json() == []
