from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from common.types.datetime import to_day_key
from streak_service.app.models.chat import ChatMessage
from streak_service.app.models.experience import ExperienceConfig
from streak_service.app.models.job import JobStatus
from streak_service.app.models.message_log import MessageLog
from streak_service.app.models.reward import REWARD_TYPE_STREAK, Reward
from streak_service.app.models.streak import Streak
from streak_service.app.services.channel_resolver import ChannelResolver
from streak_service.app.services.rollover_service import (
    RolloverService,
    build_reward_code,
    select_first_replies,
)
from streak_service.tests.fakes import (
    FakeExperienceRepository,
    FakeIssuedCodeRepository,
    FakeMessageLogRepository,
    FakeMessagingGateway,
    FakeRewardIssuer,
    FakeRewardRepository,
    FakeStreakRepository,
    FakeUserRepository,
    build_experience,
)


T0 = datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)
EXPERIENCE_ID = "E1"
CHANNEL_ID = "chat_E1"


@dataclass
class RolloverFixture:
    service: RolloverService
    experiences: FakeExperienceRepository
    message_logs: FakeMessageLogRepository
    users: FakeUserRepository
    streaks: FakeStreakRepository
    rewards: FakeRewardRepository
    issued_codes: FakeIssuedCodeRepository
    gateway: FakeMessagingGateway
    issuer: FakeRewardIssuer


def _build_fixture(*, access_pass_id: str | None = "pass_E1") -> RolloverFixture:
    experiences = FakeExperienceRepository()
    experiences.add(
        build_experience(
            EXPERIENCE_ID, access_pass_id=access_pass_id, chat_channel_id=CHANNEL_ID
        ),
        ExperienceConfig(experience_id=EXPERIENCE_ID, streak_thresholds=[3, 7]),
    )
    message_logs = FakeMessageLogRepository()
    users = FakeUserRepository()
    streaks = FakeStreakRepository()
    rewards = FakeRewardRepository()
    issued_codes = FakeIssuedCodeRepository()
    gateway = FakeMessagingGateway()
    issuer = FakeRewardIssuer()

    service = RolloverService(
        experience_repo=experiences,
        message_log_repo=message_logs,
        user_repo=users,
        streak_repo=streaks,
        reward_repo=rewards,
        issued_code_repo=issued_codes,
        gateway=gateway,
        reward_issuer=issuer,
        channel_resolver=ChannelResolver(experiences, gateway),
    )
    return RolloverFixture(
        service=service,
        experiences=experiences,
        message_logs=message_logs,
        users=users,
        streaks=streaks,
        rewards=rewards,
        issued_codes=issued_codes,
        gateway=gateway,
        issuer=issuer,
    )


def _day(n: int) -> datetime:
    return T0 + timedelta(days=n - 1)


def _post_prompt(fx: RolloverFixture, n: int) -> None:
    fx.message_logs.add_anchor(EXPERIENCE_ID, to_day_key(_day(n)), _day(n))


def _reply(
    fx: RolloverFixture,
    actor_id: str | None,
    n: int,
    *,
    minutes: int = 60,
    name: str | None = None,
) -> None:
    fx.gateway.post(
        CHANNEL_ID,
        ChatMessage(
            actor_id=actor_id,
            actor_name=name,
            text="my answer",
            timestamp=_day(n) + timedelta(minutes=minutes),
        ),
    )


def _rollover(fx: RolloverFixture, n: int):
    """n 일차를 집계하는 롤오버 (n+1 일차 아침 실행)."""
    return fx.service.run(now=_day(n + 1) + timedelta(hours=2))


def _streak(fx: RolloverFixture, user_id: str) -> Streak:
    streak = fx.streaks.get(EXPERIENCE_ID, user_id)
    assert streak is not None
    return streak


def test_five_day_scenario_builds_resets_and_rewards_streaks() -> None:
    fx = _build_fixture()

    # day 1: U1 replies
    _post_prompt(fx, 1)
    _reply(fx, "U1", 1)
    summary = _rollover(fx, 1)

    assert summary.date == to_day_key(_day(1))
    u1 = _streak(fx, "U1")
    assert (u1.current, u1.best, u1.week_count) == (1, 1, 1)

    # day 2: U1 replies again
    _post_prompt(fx, 2)
    _reply(fx, "U1", 2)
    _rollover(fx, 2)
    u1 = _streak(fx, "U1")
    assert (u1.current, u1.best) == (2, 2)

    # day 3: only U2 replies, U1 is reset
    _post_prompt(fx, 3)
    _reply(fx, "U2", 3)
    summary = _rollover(fx, 3)
    result = summary.results[0]
    assert result.status == JobStatus.PROCESSED
    assert result.streaks_reset == 1
    u1 = _streak(fx, "U1")
    assert (u1.current, u1.best) == (0, 2)
    assert _streak(fx, "U2").current == 1

    # day 4, 5: U2 keeps replying and reaches the 3-day threshold
    for n in (4, 5):
        _post_prompt(fx, n)
        _reply(fx, "U2", n, name="quester")
        summary = _rollover(fx, n)

    u2 = _streak(fx, "U2")
    assert u2.current == 3
    assert summary.results[0].rewards_issued == 1
    assert fx.rewards.exists(EXPERIENCE_ID, "U2", REWARD_TYPE_STREAK, 3)
    assert len(fx.issuer.issued) == 1

    congrats = [text for _, text in fx.gateway.send_attempts if "Congratulations" in text]
    assert len(congrats) == 1
    assert "quester" in congrats[0]
    assert "3-day streak" in congrats[0]
    assert fx.issuer.issued[0]["code"] in congrats[0]


def test_rollover_double_fire_does_not_double_count() -> None:
    fx = _build_fixture()
    for n in (1, 2):
        _post_prompt(fx, n)
        _reply(fx, "U1", n)
        _rollover(fx, n)

    # when
    second = _rollover(fx, 2)

    # then
    assert _streak(fx, "U1").current == 2
    assert second.results[0].streaks_updated == 0
    assert second.results[0].users_active == 1
    assert fx.message_logs.find(EXPERIENCE_ID, "U1", to_day_key(_day(2))) is not None
    assert sum(1 for key in fx.message_logs.logs if key[1] == "U1") == 2


def test_rerun_keeps_streak_of_actor_missing_from_feed() -> None:
    fx = _build_fixture()
    for n in (1, 2):
        _post_prompt(fx, n)
        _reply(fx, "U1", n)
        _rollover(fx, n)
    # 최근 페이지만 내려오는 피드에서 U1 의 답글이 밀려난 상황
    fx.gateway.messages[CHANNEL_ID] = []
    _reply(fx, "U2", 2)

    # when
    rerun = _rollover(fx, 2)

    # then
    result = rerun.results[0]
    assert result.streaks_reset == 0
    assert result.users_active == 2
    u1 = _streak(fx, "U1")
    assert (u1.current, u1.best, u1.week_count) == (2, 2, 2)
    assert _streak(fx, "U2").current == 1


def test_concurrent_message_log_insert_skips_streak_update() -> None:
    fx = _build_fixture()
    _post_prompt(fx, 1)
    _reply(fx, "U1", 1)
    day_key = to_day_key(_day(1))
    real_find = fx.message_logs.find

    def find_then_lose_race(
        experience_id: str, actor_id: str, dkey: str
    ) -> MessageLog | None:
        found = real_find(experience_id, actor_id, dkey)
        if actor_id == "U1" and found is None:
            # 조회 직후 다른 실행이 같은 행을 먼저 삽입한다.
            fx.message_logs.logs[(experience_id, actor_id, dkey)] = MessageLog(
                experience_id=experience_id,
                actor_id=actor_id,
                day_key=dkey,
                first_post_at=_day(1),
                created_at=_day(1),
                updated_at=_day(1),
            )
        return found

    fx.message_logs.find = find_then_lose_race  # type: ignore[method-assign]

    # when
    summary = _rollover(fx, 1)

    # then
    result = summary.results[0]
    assert result.status == JobStatus.PROCESSED
    assert result.streaks_updated == 0
    assert result.streaks_reset == 0
    assert fx.streaks.get(EXPERIENCE_ID, "U1") is None
    assert fx.message_logs.find(EXPERIENCE_ID, "U1", day_key) is not None


def test_concurrent_reward_insert_skips_congratulation() -> None:
    fx = _build_fixture()
    fx.streaks.put(
        Streak(
            experience_id=EXPERIENCE_ID,
            user_id="U1",
            current=2,
            best=2,
            created_at=T0,
            updated_at=T0,
        )
    )
    # 다른 실행이 이미 3일 보상을 기록했지만 exists 조회 시점에는 보이지 않았다.
    fx.rewards.try_insert(
        Reward(
            experience_id=EXPERIENCE_ID,
            user_id="U1",
            threshold=3,
            created_at=T0,
            updated_at=T0,
        )
    )
    fx.rewards.exists = lambda *args: False  # type: ignore[method-assign]
    _post_prompt(fx, 1)
    _reply(fx, "U1", 1)

    # when
    summary = _rollover(fx, 1)

    # then
    result = summary.results[0]
    assert _streak(fx, "U1").current == 3
    assert result.streaks_updated == 1
    assert result.rewards_issued == 0
    assert len(fx.rewards.rewards) == 1
    assert not any("Congratulations" in text for _, text in fx.gateway.send_attempts)


def test_only_first_reply_per_actor_is_counted() -> None:
    fx = _build_fixture()
    _post_prompt(fx, 1)
    # 피드가 역순으로 와도 가장 이른 메시지가 첫 답글이다.
    for minutes in (300, 240, 180, 120, 30):
        _reply(fx, "U1", 1, minutes=minutes)

    # when
    _rollover(fx, 1)

    # then
    log = fx.message_logs.find(EXPERIENCE_ID, "U1", to_day_key(_day(1)))
    assert log is not None
    assert log.first_post_at == _day(1) + timedelta(minutes=30)
    assert _streak(fx, "U1").current == 1
    assert _streak(fx, "U1").week_count == 1


def test_messages_outside_window_and_system_messages_are_ignored() -> None:
    fx = _build_fixture()
    _post_prompt(fx, 1)
    _reply(fx, "EARLY", 1, minutes=-5)
    _reply(fx, "LATE", 1, minutes=24 * 60 + 90)
    _reply(fx, "GRACE", 1, minutes=24 * 60 + 89)
    _reply(fx, "SYSTEM", 1)
    _reply(fx, None, 1)

    # when
    summary = _rollover(fx, 1)

    # then
    assert summary.results[0].users_active == 1
    assert fx.streaks.get(EXPERIENCE_ID, "GRACE") is not None
    assert fx.streaks.get(EXPERIENCE_ID, "EARLY") is None
    assert fx.streaks.get(EXPERIENCE_ID, "LATE") is None
    assert fx.streaks.get(EXPERIENCE_ID, "SYSTEM") is None


def test_best_is_never_below_current() -> None:
    fx = _build_fixture()
    for n in range(1, 6):
        _post_prompt(fx, n)
        _reply(fx, "U1", n)
        if n != 3:
            _reply(fx, "U2", n)
        _rollover(fx, n)

        for streak in fx.streaks.streaks.values():
            assert streak.best >= streak.current


def test_no_prompt_yesterday_changes_nothing() -> None:
    fx = _build_fixture()
    fx.streaks.put(
        Streak(
            experience_id=EXPERIENCE_ID,
            user_id="U1",
            current=4,
            best=4,
            created_at=T0,
            updated_at=T0,
        )
    )
    _reply(fx, "U2", 1)

    # when
    summary = _rollover(fx, 1)

    # then
    assert summary.results[0].status == JobStatus.NO_PROMPT_YESTERDAY
    assert _streak(fx, "U1").current == 4
    assert fx.streaks.get(EXPERIENCE_ID, "U2") is None


def test_message_fetch_failure_keeps_streaks_and_allows_rerun() -> None:
    fx = _build_fixture()
    fx.streaks.put(
        Streak(
            experience_id=EXPERIENCE_ID,
            user_id="U1",
            current=2,
            best=2,
            created_at=T0,
            updated_at=T0,
        )
    )
    _post_prompt(fx, 1)
    _reply(fx, "U1", 1)
    fx.gateway.fail_fetch = True

    # when
    summary = _rollover(fx, 1)

    # then
    assert summary.results[0].status == JobStatus.NO_MESSAGES
    assert _streak(fx, "U1").current == 2

    fx.gateway.fail_fetch = False
    rerun = _rollover(fx, 1)
    assert rerun.results[0].status == JobStatus.PROCESSED
    assert _streak(fx, "U1").current == 3


def test_reset_runs_even_without_replies() -> None:
    fx = _build_fixture()
    fx.streaks.put(
        Streak(
            experience_id=EXPERIENCE_ID,
            user_id="U1",
            current=5,
            best=6,
            week_count=3,
            created_at=T0,
            updated_at=T0,
        )
    )
    _post_prompt(fx, 1)

    # when
    summary = _rollover(fx, 1)

    # then
    assert summary.results[0].status == JobStatus.PROCESSED
    assert summary.results[0].users_active == 0
    u1 = _streak(fx, "U1")
    assert (u1.current, u1.best, u1.week_count) == (0, 6, 3)


def test_reward_is_granted_at_most_once_per_threshold() -> None:
    fx = _build_fixture()
    fx.rewards.try_insert(
        Reward(
            experience_id=EXPERIENCE_ID,
            user_id="U1",
            threshold=3,
            created_at=T0,
            updated_at=T0,
        )
    )
    fx.streaks.put(
        Streak(
            experience_id=EXPERIENCE_ID,
            user_id="U1",
            current=2,
            best=5,
            created_at=T0,
            updated_at=T0,
        )
    )
    _post_prompt(fx, 1)
    _reply(fx, "U1", 1)

    # when
    summary = _rollover(fx, 1)

    # then
    assert _streak(fx, "U1").current == 3
    assert summary.results[0].rewards_issued == 0
    assert fx.issuer.issued == []
    assert len(fx.rewards.rewards) == 1


def test_congratulation_failure_keeps_reward() -> None:
    fx = _build_fixture()
    fx.gateway.fail_send_containing = "Congratulations"
    for n in (1, 2, 3):
        _post_prompt(fx, n)
        _reply(fx, "U1", n)
        summary = _rollover(fx, n)

    result = summary.results[0]
    assert result.status == JobStatus.PROCESSED
    assert result.rewards_issued == 1
    assert fx.rewards.exists(EXPERIENCE_ID, "U1", REWARD_TYPE_STREAK, 3)
    assert len(fx.issued_codes.codes) == 1

    reward = next(iter(fx.rewards.rewards.values()))
    assert reward.issued_code_id == fx.issued_codes.codes[0].id


def test_reward_issue_failure_does_not_abort_experience() -> None:
    fx = _build_fixture()
    fx.issuer.fail = True
    for n in (1, 2, 3):
        _post_prompt(fx, n)
        _reply(fx, "U1", n)
        _reply(fx, "U2", n, minutes=90)
        summary = _rollover(fx, n)

    result = summary.results[0]
    assert result.status == JobStatus.PROCESSED
    assert result.streaks_updated == 2
    assert result.rewards_issued == 0
    assert _streak(fx, "U2").current == 3
    assert fx.rewards.rewards == {}


def test_reward_requires_access_pass() -> None:
    fx = _build_fixture(access_pass_id=None)
    for n in (1, 2, 3):
        _post_prompt(fx, n)
        _reply(fx, "U1", n)
        summary = _rollover(fx, n)

    assert _streak(fx, "U1").current == 3
    assert summary.results[0].rewards_issued == 0
    assert fx.issuer.issued == []


def test_failure_in_one_experience_does_not_stop_others() -> None:
    fx = _build_fixture()
    fx.experiences.add(
        build_experience("E0", chat_channel_id="chat_E0"),
        ExperienceConfig(experience_id="E0"),
    )
    fx.message_logs.add_anchor("E0", to_day_key(_day(1)), _day(1))
    _post_prompt(fx, 1)
    _reply(fx, "U1", 1)

    real_list_messages = fx.gateway.list_messages

    def broken_for_e0(channel_id: str) -> list[ChatMessage]:
        if channel_id == "chat_E0":
            raise RuntimeError("unexpected payload")
        return real_list_messages(channel_id)

    fx.gateway.list_messages = broken_for_e0  # type: ignore[method-assign]

    # when
    summary = _rollover(fx, 1)

    # then
    by_id = {r.experience_id: r for r in summary.results}
    assert by_id["E0"].status == JobStatus.ERROR
    assert by_id["E0"].error == "unexpected payload"
    assert by_id[EXPERIENCE_ID].status == JobStatus.PROCESSED
    assert _streak(fx, "U1").current == 1


def test_select_first_replies_breaks_timestamp_ties_by_feed_order() -> None:
    ts = T0 + timedelta(minutes=10)
    messages = [
        ChatMessage(actor_id="B", timestamp=ts),
        ChatMessage(actor_id="A", timestamp=ts),
        ChatMessage(actor_id="B", text="second", timestamp=ts + timedelta(seconds=1)),
        ChatMessage(actor_id="C", timestamp=None),
    ]

    firsts = select_first_replies(messages, T0, T0 + timedelta(days=1))

    assert [m.actor_id for m in firsts] == ["B", "A"]
    assert firsts[0].text == ""


def test_build_reward_code_format() -> None:
    now = datetime(2025, 3, 5, 11, 0, tzinfo=timezone.utc)

    code = build_reward_code(7, "user_abc123XYZ", now)

    prefix, threshold, actor, stamp = code.split("-")
    assert prefix == "QUEST"
    assert threshold == "7D"
    assert actor == "123XYZ"
    assert int(stamp, 36) == int(now.timestamp() * 1000)
    assert code == code.upper()
