"""Small text helpers shared by the agents, connectors and the chat boundary."""

from __future__ import annotations

import re

_HTML_TAG = re.compile(r"<[^>]+>")
_WHITESPACE = re.compile(r"\s+")
_BOT_MENTION = re.compile(r"<users/[^>]+>")


def first_n_words(text: str | None, n: int = 50) -> str:
    """
    Return the first `n` words of `text` for log previews.

    Appends " ..." when the text was cut. Keeps full LLM and tool payloads
    out of the logs.
    """
    if not text:
        return ""
    words = str(text).split()
    if len(words) <= n:
        return str(text).strip()
    return " ".join(words[:n]) + " ..."


def strip_html(html: str | None) -> str:
    if not html:
        return ""
    return _WHITESPACE.sub(" ", _HTML_TAG.sub(" ", str(html))).strip()


def sanitize_query(text: str) -> str:
    """Remove quotes and backslashes so free text can be embedded in JQL/CQL."""
    return _WHITESPACE.sub(" ", re.sub(r'["\\]', " ", text)).strip()


def strip_bot_mention(text: str) -> str:
    """Drop `<users/...>` mention markup that chat platforms inject."""
    return _BOT_MENTION.sub("", text).strip()


def truncate(text: str, limit: int, marker: str = "...") -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + marker
