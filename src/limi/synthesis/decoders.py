"""Decoders for the completion payload shapes Limi understands.

Each decoder handles exactly one shape. The shape is picked from the
payload's ``object`` discriminant; nothing is inferred from structure.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any

from limi.errors import MalformedPayloadError

Decoder = Callable[[Mapping[str, Any]], str]


def decode_chat_completion(payload: Mapping[str, Any]) -> str:
    choices = payload.get("choices")
    if not isinstance(choices, list) or not choices:
        raise MalformedPayloadError("chat.completion without choices")
    message = choices[0].get("message") if isinstance(choices[0], Mapping) else None
    if not isinstance(message, Mapping):
        raise MalformedPayloadError("chat.completion choice without message")

    content = message.get("content")
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "".join(
            part["text"]
            for part in content
            if isinstance(part, Mapping) and part.get("type") == "text" and isinstance(part.get("text"), str)
        )
    raise MalformedPayloadError(f"chat.completion content of type {type(content).__name__}")


def decode_response(payload: Mapping[str, Any]) -> str:
    output = payload.get("output")
    if not isinstance(output, list):
        raise MalformedPayloadError("response without output list")

    parts: list[str] = []
    for item in output:
        if not isinstance(item, Mapping) or item.get("type") != "message":
            continue
        for part in item.get("content") or ():
            if isinstance(part, Mapping) and part.get("type") == "output_text" and isinstance(part.get("text"), str):
                parts.append(part["text"])
    return "".join(parts)


DECODERS: dict[str, Decoder] = {
    "chat.completion": decode_chat_completion,
    "response": decode_response,
}


def decode_payload(payload: Mapping[str, Any]) -> str:
    """Return the raw answer text of a completion payload."""
    if not isinstance(payload, Mapping):
        raise MalformedPayloadError(f"payload of type {type(payload).__name__}")
    kind = payload.get("object")
    decoder = DECODERS.get(kind) if isinstance(kind, str) else None
    if decoder is None:
        raise MalformedPayloadError(f"unknown payload object: {kind!r}")
    return decoder(payload)
