from types import SimpleNamespace

import httpx
import openai
import pytest

from timesync.services.ai.client import AIClient, AIClientError, estimate_tokens


def _completion(content: str | None):
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content))],
        usage=SimpleNamespace(total_tokens=42),
    )


def _status_error(cls, status_code: int):
    request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
    return cls("API error", response=httpx.Response(status_code, request=request), body=None)


class FakeCompletions:
    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.calls = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def _client(test_settings, outcomes):
    completions = FakeCompletions(outcomes)
    sdk = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    config = test_settings.model_copy(update={"OPENAI_RETRY_DELAY_SECONDS": 0, "OPENAI_MAX_RETRIES": 2})
    return AIClient(config, client=sdk), completions


def test_estimate_tokens():
    assert estimate_tokens("") == 1
    assert estimate_tokens("abcd") == 1
    assert estimate_tokens("abcde") == 2


def test_client_without_credentials_is_unconfigured(test_settings):
    assert AIClient(test_settings).configured is False


@pytest.mark.asyncio
async def test_unconfigured_client_raises(test_settings):
    with pytest.raises(AIClientError) as exc:
        await AIClient(test_settings).complete("hello")

    assert exc.value.recoverable is False


@pytest.mark.asyncio
async def test_complete_returns_stripped_text(test_settings):
    client, completions = _client(test_settings, [_completion("  {\"ok\": true}\n")])

    result = await client.complete("prompt", temperature=0.3, max_tokens=100)

    assert result == '{"ok": true}'
    call = completions.calls[0]
    assert call["messages"] == [{"role": "user", "content": "prompt"}]
    assert call["temperature"] == 0.3
    assert call["max_tokens"] == 100
    assert call["model"] == test_settings.OPENAI_MODEL


@pytest.mark.asyncio
async def test_transient_errors_are_retried(test_settings):
    client, completions = _client(
        test_settings,
        [_status_error(openai.RateLimitError, 429), _completion(None), _completion("done")],
    )

    assert await client.complete("prompt") == "done"
    assert len(completions.calls) == 3


@pytest.mark.asyncio
async def test_client_errors_are_not_retried(test_settings):
    client, completions = _client(test_settings, [_status_error(openai.BadRequestError, 400), _completion("never")])

    with pytest.raises(AIClientError) as exc:
        await client.complete("prompt")

    assert len(completions.calls) == 1
    assert "API error" in exc.value.api_error


@pytest.mark.asyncio
async def test_gives_up_after_retries(test_settings):
    errors = [_status_error(openai.InternalServerError, 500) for _ in range(3)]
    client, completions = _client(test_settings, errors)

    with pytest.raises(AIClientError, match="3 attempts"):
        await client.complete("prompt")

    assert len(completions.calls) == 3


@pytest.mark.asyncio
async def test_health_check_reports_configuration(test_settings):
    client, _ = _client(test_settings, [])

    health = await client.health_check()

    assert health["healthy"] is True
    assert health["configuration"]["provider"] == "openai"
