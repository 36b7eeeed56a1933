import pytest

from timesync.services.ai.json_extract import extract_json_object, find_json_object
from timesync.services.ai.policy import fail_open
from timesync.services.ai.rate_limiter import MinuteBudget


def test_find_json_object_skips_prose_and_fences():
    text = 'Here you go:\n```json\n{"results": [{"meetingId": "m-1"}]}\n```\nDone.'

    assert find_json_object(text) == '{"results": [{"meetingId": "m-1"}]}'


def test_find_json_object_ignores_braces_inside_strings():
    text = '{"reason": "title has a } brace", "ok": true} trailing'

    assert extract_json_object(text) == {"reason": "title has a } brace", "ok": True}


def test_extract_json_object_moves_past_invalid_candidates():
    text = "{not json} then {\"matchedTasks\": []}"

    assert extract_json_object(text) == {"matchedTasks": []}


def test_extract_json_object_without_object():
    assert extract_json_object("no json here") is None
    assert extract_json_object("") is None
    assert extract_json_object("{unbalanced") is None


@pytest.mark.asyncio
async def test_fail_open_returns_result():
    async def ok():
        return [1]

    assert await fail_open(ok(), [], event="unused") == [1]


@pytest.mark.asyncio
async def test_fail_open_returns_fallback_on_error():
    async def broken():
        raise RuntimeError("model down")

    assert await fail_open(broken(), [], event="Step failed", meeting_id="m-1") == []


class FakeClock:
    def __init__(self):
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.mark.asyncio
async def test_budget_waits_when_requests_exhausted():
    clock = FakeClock()
    budget = MinuteBudget(requests_per_minute=2, tokens_per_minute=10_000, clock=clock, sleep=clock.sleep)

    await budget.acquire(10)
    clock.now = 5.0
    await budget.acquire(10)
    await budget.acquire(10)

    assert clock.sleeps == [55.0]


@pytest.mark.asyncio
async def test_budget_waits_when_tokens_exhausted():
    clock = FakeClock()
    budget = MinuteBudget(requests_per_minute=100, tokens_per_minute=100, clock=clock, sleep=clock.sleep)

    await budget.acquire(80)
    await budget.acquire(30)

    assert clock.sleeps == [60.0]


@pytest.mark.asyncio
async def test_oversized_request_is_sent_into_an_empty_window():
    clock = FakeClock()
    budget = MinuteBudget(requests_per_minute=10, tokens_per_minute=100, clock=clock, sleep=clock.sleep)

    await budget.acquire(5_000)

    assert clock.sleeps == []
