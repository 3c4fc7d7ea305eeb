from dataclasses import dataclass, field
from typing import Any

import httpx
import openai
import pytest
from fakes import make_strategy

from limi.integrations.openai_client import OpenAICompletionClient
from limi.synthesis.strategy import Empty, Strategy, Success, TransportError


@dataclass
class FakeResponse:
    payload: dict[str, Any]

    def model_dump(self) -> dict[str, Any]:
        return self.payload


@dataclass
class FakeEndpoint:
    outputs: list[FakeResponse | Exception]
    calls: list[dict[str, Any]] = field(default_factory=list)

    async def create(self, **kwargs: Any) -> FakeResponse:
        self.calls.append(kwargs)
        output = self.outputs.pop(0)
        if isinstance(output, Exception):
            raise output
        return output


class FakeChat:
    def __init__(self, completions: FakeEndpoint) -> None:
        self.completions = completions


class FakeAsyncOpenAI:
    def __init__(self, *, chat: list[FakeResponse | Exception] = (), responses: list[FakeResponse | Exception] = ()):
        self.chat = FakeChat(FakeEndpoint(list(chat)))
        self.responses = FakeEndpoint(list(responses))
        self.closed = False

    async def close(self) -> None:
        self.closed = True


def _chat_payload(content: str | None) -> FakeResponse:
    message = {"role": "assistant", "content": content}
    return FakeResponse({"object": "chat.completion", "choices": [{"message": message}]})


def _request() -> httpx.Request:
    return httpx.Request("POST", "https://api.openai.test/v1/chat/completions")


@pytest.mark.asyncio
async def test_chat_success_for_legacy_model_uses_max_tokens_and_temperature() -> None:
    fake = FakeAsyncOpenAI(chat=[_chat_payload("<final>Hi.</final>")])
    client = OpenAICompletionClient(fake, persona_prompt="You are Limi.")  # type: ignore[arg-type]
    strategy = Strategy(
        name="fast", model="gpt-4o-mini", max_tokens=120, timeout_seconds=4.0, instruction="Be brief."
    )

    outcome = await client.invoke(strategy, "hello", 4.0)

    assert outcome == Success(strategy="fast", text="<final>Hi.</final>")
    call = fake.chat.completions.calls[0]
    assert call["model"] == "gpt-4o-mini"
    assert call["max_tokens"] == 120
    assert call["temperature"] == 0.4
    assert call["timeout"] == 4.0
    assert "max_completion_tokens" not in call
    assert call["messages"][0] == {"role": "system", "content": "You are Limi.\n\nBe brief."}
    assert call["messages"][1] == {"role": "user", "content": "hello"}


@pytest.mark.asyncio
async def test_chat_for_gpt5_uses_max_completion_tokens_without_temperature() -> None:
    fake = FakeAsyncOpenAI(chat=[_chat_payload("ok")])
    client = OpenAICompletionClient(fake)  # type: ignore[arg-type]
    strategy = Strategy(name="primary", model="gpt-5", max_tokens=180, timeout_seconds=8.0, temperature=0.9)

    await client.invoke(strategy, "hello", 8.0)

    call = fake.chat.completions.calls[0]
    assert call["max_completion_tokens"] == 180
    assert "max_tokens" not in call
    assert "temperature" not in call


@pytest.mark.asyncio
async def test_responses_endpoint_is_decoded_by_its_own_shape() -> None:
    payload = {
        "object": "response",
        "output": [{"type": "message", "content": [{"type": "output_text", "text": "Paris."}]}],
    }
    fake = FakeAsyncOpenAI(responses=[FakeResponse(payload)])
    client = OpenAICompletionClient(fake)  # type: ignore[arg-type]
    strategy = Strategy(name="deep", model="gpt-5", max_tokens=400, timeout_seconds=9.0, endpoint="responses")

    outcome = await client.invoke(strategy, "capital?", 9.0)

    assert outcome == Success(strategy="deep", text="Paris.")
    call = fake.responses.calls[0]
    assert call["max_output_tokens"] == 400
    assert call["input"] == "capital?"
    assert "temperature" not in call


@pytest.mark.asyncio
async def test_blank_content_is_empty() -> None:
    fake = FakeAsyncOpenAI(chat=[_chat_payload("  \n"), _chat_payload(None)])
    client = OpenAICompletionClient(fake)  # type: ignore[arg-type]
    assert await client.invoke(make_strategy("a"), "q", 1.0) == Empty(strategy="a")
    assert await client.invoke(make_strategy("a"), "q", 1.0) == Empty(strategy="a")


@pytest.mark.asyncio
async def test_malformed_payload_is_transport_error() -> None:
    fake = FakeAsyncOpenAI(chat=[FakeResponse({"object": "chat.completion", "choices": []})])
    outcome = await OpenAICompletionClient(fake).invoke(make_strategy("a"), "q", 1.0)  # type: ignore[arg-type]
    assert isinstance(outcome, TransportError)
    assert outcome.detail.startswith("malformed_payload")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("error", "detail"),
    [
        (
            openai.APIStatusError(
                "upstream exploded",
                response=httpx.Response(502, request=_request()),
                body=None,
            ),
            "status_502: upstream exploded",
        ),
        (openai.APITimeoutError(request=_request()), "transport_timeout"),
        (openai.APIConnectionError(request=_request()), "APIConnectionError: Connection error."),
    ],
)
async def test_api_errors_become_transport_errors(error: Exception, detail: str) -> None:
    fake = FakeAsyncOpenAI(chat=[error])
    outcome = await OpenAICompletionClient(fake).invoke(make_strategy("a"), "q", 1.0)  # type: ignore[arg-type]
    assert outcome == TransportError(strategy="a", detail=detail)


@pytest.mark.asyncio
async def test_close_closes_underlying_client() -> None:
    fake = FakeAsyncOpenAI()
    await OpenAICompletionClient(fake).close()  # type: ignore[arg-type]
    assert fake.closed
