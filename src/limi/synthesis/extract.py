"""Answer extraction shared by the executor and the finalizer."""

from __future__ import annotations

import re

FINAL_TAG_RE = re.compile(r"<final>(.*?)</final>", re.IGNORECASE | re.DOTALL)
FINAL_MARKER_RE = re.compile(r"^\s*final answer\s*:", re.IGNORECASE | re.MULTILINE)
WHITESPACE_RE = re.compile(r"\s+")


def normalize_whitespace(text: str) -> str:
    return WHITESPACE_RE.sub(" ", text).strip()


def find_delimited(text: str) -> str | None:
    """Return the delimiter-wrapped segment of ``text``, or None if there is none.

    A complete ``<final>...</final>`` pair takes precedence; the last pair wins
    when the model repeats itself. Otherwise everything after the last
    ``Final Answer:`` marker that starts a line is used.
    """
    tagged = FINAL_TAG_RE.findall(text)
    if tagged:
        return tagged[-1]

    markers = list(FINAL_MARKER_RE.finditer(text))
    if markers:
        return text[markers[-1].end() :]
    return None


def extract_answer(text: str) -> str:
    """Use only the delimited segment when present, else the full text."""
    segment = find_delimited(text)
    return text if segment is None else segment
