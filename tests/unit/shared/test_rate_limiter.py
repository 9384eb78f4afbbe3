import pytest

from directory_sync.errors import ConfigurationError
from directory_sync.sync.rate_limiter import WINDOW_MS, RateLimiter
from tests.fixtures.timing import FakeClock


def _limiter(ceiling: int, clock: FakeClock) -> RateLimiter:
    return RateLimiter(ceiling, clock=clock, sleep=clock.sleep)


def test_allow_sleeps_remaining_window_when_saturated() -> None:
    """
    Given: 호출 수가 상한에 도달했고 윈도 종료까지 400ms 남음
    When: allow 호출
    Then: 남은 400ms 만큼 대기
    """
    clock = FakeClock(start=10_000)
    limiter = _limiter(3, clock)

    limiter.allow(3, 10_400, 10_000)

    assert clock.sleeps == [400]


def test_allow_does_not_sleep_below_ceiling_or_after_window() -> None:
    """
    Given: 상한 미만이거나 이미 지난 윈도
    When: allow 호출
    Then: 대기하지 않음
    """
    clock = FakeClock(start=10_000)
    limiter = _limiter(3, clock)

    limiter.allow(2, 10_400, 10_000)
    limiter.allow(3, 9_000, 10_000)

    assert clock.sleeps == []


def test_page_level_pause_only_when_saturated() -> None:
    """
    Given: 상한 2의 페이지 단위 윈도
    When: 호출 2회를 기록
    Then: 여유가 사라지고 윈도 끝까지 대기
    """
    clock = FakeClock(start=5_000)
    limiter = _limiter(2, clock)

    limiter.open_window()
    limiter.record_call()
    assert limiter.has_room() is True
    limiter.record_call()
    assert limiter.has_room() is False

    limiter.pause_if_saturated()
    assert clock.sleeps == [WINDOW_MS]


def test_acquire_never_exceeds_ceiling_within_a_window() -> None:
    """
    Given: 상한 3, 시간이 흐르지 않는 시계
    When: acquire 7회
    Then: 어떤 1초 구간에도 호출은 3회 이하
    """
    clock = FakeClock(start=0)
    limiter = _limiter(3, clock)
    call_times = []

    for _ in range(7):
        limiter.acquire()
        call_times.append(clock.now)

    for start in call_times:
        in_window = [t for t in call_times if start <= t < start + WINDOW_MS]
        assert len(in_window) <= 3
    assert len(clock.sleeps) == 2


def test_zero_ceiling_always_waits() -> None:
    """
    Given: 상한 0
    When: 연속 acquire 3회
    Then: 첫 호출을 포함한 매 호출이 윈도 하나를 기다린 뒤 실행
    """
    clock = FakeClock(start=1_700_000_000_000)
    limiter = _limiter(0, clock)

    limiter.acquire()
    limiter.acquire()
    limiter.acquire()

    assert clock.sleeps == [1001, 1001, 1001]


def test_zero_ceiling_page_level_waits_after_each_call() -> None:
    """
    Given: 상한 0의 페이지 단위 윈도
    When: 호출 1회 후 pause
    Then: 윈도 종료까지 대기
    """
    clock = FakeClock(start=0)
    limiter = _limiter(0, clock)

    limiter.open_window()
    limiter.record_call()

    assert limiter.has_room() is False
    limiter.pause_if_saturated()
    assert clock.sleeps == [WINDOW_MS]


def test_negative_ceiling_is_a_configuration_error() -> None:
    """
    Given: 음수 상한
    When: RateLimiter 생성
    Then: ConfigurationError
    """
    with pytest.raises(ConfigurationError):
        RateLimiter(-1)
