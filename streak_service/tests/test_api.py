from __future__ import annotations

from collections.abc import Iterator

import pytest
from fastapi.testclient import TestClient

from streak_service.app.config import CronConfig, load_cron_config
from streak_service.app.main import create_app
from streak_service.app.models.experience import ExperienceConfig
from streak_service.app.models.job import ExperienceJobResult, JobStatus, JobSummary
from streak_service.app.models.streak import Streak
from streak_service.app.services.daily_prompt_service import get_daily_prompt_service
from streak_service.app.services.experience_config_service import (
    ExperienceConfigService,
    get_experience_config_service,
)
from streak_service.app.services.leaderboard_service import (
    LeaderboardService,
    get_leaderboard_service,
)
from streak_service.app.services.rollover_service import get_rollover_service
from streak_service.app.services.weekly_summary_service import get_weekly_summary_service
from streak_service.tests.fakes import (
    EPOCH,
    FakeExperienceConfigRepository,
    FakeExperienceRepository,
    FakeStreakRepository,
    FakeUserRepository,
    build_experience,
)


SECRET = "s3cret"


class StubJobService:
    def __init__(self, summary: JobSummary | None = None, error: Exception | None = None) -> None:
        self.summary = summary or JobSummary(date="2025-03-01")
        self.error = error
        self.calls = 0

    def run(self, now=None) -> JobSummary:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.summary


@pytest.fixture
def jobs() -> dict[str, StubJobService]:
    return {
        "prompt": StubJobService(
            JobSummary(
                date="2025-03-01",
                results=[
                    ExperienceJobResult(
                        experience_id="E1", status=JobStatus.POSTED, prompt="Hi?"
                    )
                ],
            )
        ),
        "rollover": StubJobService(),
        "week": StubJobService(),
    }


@pytest.fixture
def experiences() -> FakeExperienceRepository:
    return FakeExperienceRepository()


@pytest.fixture
def client(
    jobs: dict[str, StubJobService], experiences: FakeExperienceRepository
) -> Iterator[TestClient]:
    app = create_app()
    streaks = FakeStreakRepository()
    users = FakeUserRepository()
    streaks.put(
        Streak(
            experience_id="E1",
            user_id="user_alice",
            current=4,
            best=6,
            week_count=2,
            created_at=EPOCH,
            updated_at=EPOCH,
        )
    )
    streaks.put(
        Streak(
            experience_id="E1",
            user_id="user_bob000",
            current=4,
            best=9,
            week_count=4,
            created_at=EPOCH,
            updated_at=EPOCH,
        )
    )
    users.upsert("user_alice", "alice")

    app.dependency_overrides[load_cron_config] = lambda: CronConfig(
        signing_secret=SECRET, leaderboard_size=10
    )
    app.dependency_overrides[get_daily_prompt_service] = lambda: jobs["prompt"]
    app.dependency_overrides[get_rollover_service] = lambda: jobs["rollover"]
    app.dependency_overrides[get_weekly_summary_service] = lambda: jobs["week"]
    app.dependency_overrides[get_experience_config_service] = lambda: ExperienceConfigService(
        experience_repo=experiences,
        config_repo=FakeExperienceConfigRepository(experiences),
    )
    app.dependency_overrides[get_leaderboard_service] = lambda: LeaderboardService(
        experience_repo=experiences, streak_repo=streaks, user_repo=users
    )

    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client


def test_health(client: TestClient) -> None:
    resp = client.get("/health")

    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


@pytest.mark.parametrize("job", ["prompt", "rollover", "week"])
def test_cron_rejects_missing_or_wrong_signature(
    client: TestClient, jobs: dict[str, StubJobService], job: str
) -> None:
    missing = client.post(f"/api/cron/{job}")
    wrong = client.post(f"/api/cron/{job}", headers={"x-questchat-signature": "nope"})

    assert missing.status_code == 401
    assert wrong.status_code == 401
    assert wrong.json() == {"error": "Invalid signature"}
    assert jobs[job].calls == 0


def test_cron_rejects_everything_without_configured_secret(
    client: TestClient, jobs: dict[str, StubJobService]
) -> None:
    client.app.dependency_overrides[load_cron_config] = lambda: CronConfig(
        signing_secret="", leaderboard_size=10
    )

    resp = client.post("/api/cron/prompt", headers={"x-questchat-signature": ""})

    assert resp.status_code == 401
    assert jobs["prompt"].calls == 0


def test_cron_runs_job_with_valid_signature(
    client: TestClient, jobs: dict[str, StubJobService]
) -> None:
    resp = client.post("/api/cron/prompt", headers={"x-questchat-signature": SECRET})

    assert resp.status_code == 200
    assert resp.json() == {
        "success": True,
        "date": "2025-03-01",
        "results": [{"experience_id": "E1", "status": "posted", "prompt": "Hi?"}],
    }
    assert jobs["prompt"].calls == 1


def test_cron_unexpected_failure_returns_500(
    client: TestClient, jobs: dict[str, StubJobService]
) -> None:
    jobs["rollover"].error = RuntimeError("database unreachable")

    resp = client.post("/api/cron/rollover", headers={"x-questchat-signature": SECRET})

    assert resp.status_code == 500
    assert resp.json() == {"error": "Internal server error"}


def test_experience_config_round_trip(
    client: TestClient, experiences: FakeExperienceRepository
) -> None:
    assert client.get("/api/v1/experiences/E1/config").status_code == 404

    saved = client.put(
        "/api/v1/experiences/E1/config",
        json={"access_pass_id": "pass_1", "reward_percentage": 25},
    )
    assert saved.status_code == 200
    assert saved.json()["reward_percentage"] == 25
    assert saved.json()["streak_thresholds"] == [3, 7]

    fetched = client.get("/api/v1/experiences/E1/config")
    assert fetched.status_code == 200
    assert fetched.json()["reward_percentage"] == 25
    assert experiences.find_by_experience_id("E1").access_pass_id == "pass_1"


def test_experience_config_validation_error(client: TestClient) -> None:
    resp = client.put("/api/v1/experiences/E1/config", json={"reward_percentage": 150})

    assert resp.status_code == 422
    assert "reward_percentage" in resp.json()["error"]


def test_leaderboard(client: TestClient, experiences: FakeExperienceRepository) -> None:
    assert client.get("/api/v1/experiences/E1/leaderboard").status_code == 404

    experiences.add(build_experience("E1"), ExperienceConfig(experience_id="E1"))
    resp = client.get("/api/v1/experiences/E1/leaderboard", params={"limit": 5})

    assert resp.status_code == 200
    items = resp.json()["items"]
    assert [i["user_id"] for i in items] == ["user_bob000", "user_alice"]
    assert items[0]["display_name"] == "User bob000"
    assert items[1]["display_name"] == "alice"
    assert items[0]["rank"] == 1
