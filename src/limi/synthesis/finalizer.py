"""Turn race results into canonical, bounded reply text."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Literal

from limi.synthesis.extract import find_delimited, normalize_whitespace
from limi.synthesis.strategy import RaceResult, Won

UNCERTAIN_TEXT = "I'm not sure."
ELLIPSIS = "…"

SENTENCE_END_RE = re.compile(r"(?<=[.!?])\s+")
CODE_FENCE_RE = re.compile(r"```[A-Za-z0-9_-]*")
LEADING_LABEL_RE = re.compile(r"^(?:(?:final answer|answer|reply|response)\s*:\s*)+", re.IGNORECASE)
QUOTE_PAIRS = {'"': '"', "'": "'", "“": "”", "‘": "’", "`": "`"}


@dataclass(frozen=True)
class FinalAnswer:
    text: str
    source: Literal["answer", "uncertain"]
    truncated: bool = False


class ReplyFinalizer:
    """Pure text policy: extraction, trimming, sentence and character ceilings."""

    def __init__(
        self,
        *,
        max_sentences: int = 2,
        max_chars: int = 320,
        uncertain_text: str = UNCERTAIN_TEXT,
    ) -> None:
        if max_sentences < 1:
            raise ValueError("max_sentences must be at least 1")
        if max_chars <= len(ELLIPSIS):
            raise ValueError(f"max_chars must exceed {len(ELLIPSIS)}")
        self.max_sentences = max_sentences
        self.max_chars = max_chars
        self.uncertain_text = uncertain_text

    def finalize(self, result: RaceResult | None) -> FinalAnswer:
        if not isinstance(result, Won):
            return FinalAnswer(text=self.uncertain_text, source="uncertain")
        return self.finalize_text(result.text)

    def finalize_text(self, raw: str) -> FinalAnswer:
        segment = find_delimited(raw)
        text = normalize_whitespace(_trim_heuristically(raw if segment is None else segment))
        if not text:
            return FinalAnswer(text=self.uncertain_text, source="uncertain")

        text, cut_sentences = self._limit_sentences(text)
        text, cut_chars = self._limit_chars(text)
        return FinalAnswer(text=text, source="answer", truncated=cut_sentences or cut_chars)

    def _limit_sentences(self, text: str) -> tuple[str, bool]:
        sentences = SENTENCE_END_RE.split(text)
        if len(sentences) <= self.max_sentences:
            return text, False
        return " ".join(sentences[: self.max_sentences]), True

    def _limit_chars(self, text: str) -> tuple[str, bool]:
        if len(text) <= self.max_chars:
            return text, False
        kept = text[: self.max_chars - len(ELLIPSIS)].rstrip()
        return f"{kept}{ELLIPSIS}", True


def _trim_heuristically(text: str) -> str:
    text = CODE_FENCE_RE.sub(" ", text).strip()
    while True:
        trimmed = _unwrap_quotes(LEADING_LABEL_RE.sub("", text).strip())
        if trimmed == text:
            return text
        text = trimmed


def _unwrap_quotes(text: str) -> str:
    # only a matching pair around the whole text, with no closing quote inside
    if len(text) < 2 or QUOTE_PAIRS.get(text[0]) != text[-1]:
        return text
    inner = text[1:-1]
    if text[-1] in inner:
        return text
    return inner.strip()
