"""OpenAI completion client."""

from __future__ import annotations

import re
from typing import Any

import openai
from loguru import logger
from openai import AsyncOpenAI

from limi.errors import MalformedPayloadError
from limi.synthesis.decoders import decode_payload
from limi.synthesis.extract import normalize_whitespace
from limi.synthesis.strategy import Empty, Outcome, Strategy, Success, TransportError

DEFAULT_PERSONA_PROMPT = "You are Limi. Be concise."
DEFAULT_TEMPERATURE = 0.4
# gpt-5 family rejects max_tokens and custom temperature
REASONING_MODEL_RE = re.compile(r"^gpt-5", re.IGNORECASE)


def build_openai(api_key: str | None, api_base: str | None = None) -> AsyncOpenAI:
    """Build the process-wide OpenAI handle; retries are disabled."""
    return AsyncOpenAI(api_key=api_key, base_url=api_base, max_retries=0)


class OpenAICompletionClient:
    """Completion service client returning one outcome per call.

    The timeout is only passed down as the HTTP timeout of the request; racing
    the call against the strategy timeout is the executor's job.
    """

    def __init__(self, client: AsyncOpenAI, *, persona_prompt: str = DEFAULT_PERSONA_PROMPT) -> None:
        self._client = client
        self._persona_prompt = persona_prompt.strip()

    async def invoke(self, strategy: Strategy, user_text: str, timeout: float) -> Outcome:
        try:
            if strategy.endpoint == "responses":
                response = await self._client.responses.create(
                    **self.responses_args(strategy, user_text), timeout=timeout
                )
            else:
                response = await self._client.chat.completions.create(
                    **self.chat_args(strategy, user_text), timeout=timeout
                )
        except openai.APIError as exc:
            logger.debug("openai.call.error strategy={} error={!s}", strategy.name, exc)
            return TransportError(strategy=strategy.name, detail=_format_api_error(exc))

        try:
            text = decode_payload(response.model_dump())
        except MalformedPayloadError as exc:
            return TransportError(strategy=strategy.name, detail=f"malformed_payload: {exc.detail}")

        if not normalize_whitespace(text):
            return Empty(strategy=strategy.name)
        return Success(strategy=strategy.name, text=text)

    async def close(self) -> None:
        await self._client.close()

    def system_prompt(self, strategy: Strategy) -> str:
        return "\n\n".join(block for block in (self._persona_prompt, strategy.instruction.strip()) if block)

    def chat_args(self, strategy: Strategy, user_text: str) -> dict[str, Any]:
        args: dict[str, Any] = {
            "model": strategy.model,
            "messages": [
                {"role": "system", "content": self.system_prompt(strategy)},
                {"role": "user", "content": user_text},
            ],
        }
        if REASONING_MODEL_RE.match(strategy.model):
            args["max_completion_tokens"] = strategy.max_tokens
        else:
            args["max_tokens"] = strategy.max_tokens
            args["temperature"] = _temperature(strategy)
        return args

    def responses_args(self, strategy: Strategy, user_text: str) -> dict[str, Any]:
        args: dict[str, Any] = {
            "model": strategy.model,
            "instructions": self.system_prompt(strategy),
            "input": user_text,
            "max_output_tokens": strategy.max_tokens,
        }
        if not REASONING_MODEL_RE.match(strategy.model):
            args["temperature"] = _temperature(strategy)
        return args


def _temperature(strategy: Strategy) -> float:
    return DEFAULT_TEMPERATURE if strategy.temperature is None else strategy.temperature


def _format_api_error(exc: openai.APIError) -> str:
    if isinstance(exc, openai.APIStatusError):
        return f"status_{exc.status_code}: {exc.message}"
    if isinstance(exc, openai.APITimeoutError):
        return "transport_timeout"
    return f"{type(exc).__name__}: {exc.message}"
