"""
Input neutralisation for user-authored notice content.

Titles are plain text. Descriptions are rich text / markdown, so ordinary
markup is kept and only active content is removed.
"""
from __future__ import annotations

import html
import re

from markupsafe import Markup

from app.noticeboard.constants import SEARCH_MAX_CHARS

_BLOCK_TAGS = ("script", "style", "iframe", "object", "embed", "frameset", "frame", "applet")
_BLOCK_RE = re.compile(
    r"<\s*(%s)\b[^>]*>.*?<\s*/\s*\1\s*>" % "|".join(_BLOCK_TAGS),
    re.IGNORECASE | re.DOTALL,
)
# Unclosed or self-closing leftovers of the same tags.
_LONE_TAG_RE = re.compile(r"<\s*/?\s*(%s)\b[^>]*>" % "|".join(_BLOCK_TAGS), re.IGNORECASE)
# Attribute boundary is whitespace, "/" or the closing quote of the previous value.
_EVENT_ATTR_RE = re.compile(r"""(?:\s+|(?<=[/"']))on[a-z]+\s*=\s*(?:"[^"]*"|'[^']*'|[^\s>]+)""", re.IGNORECASE)
_DANGEROUS_URL_RE = re.compile(r"(?:java|vb)script\s*:|data\s*:\s*text/html", re.IGNORECASE)
_ATTR_VALUE_RE = re.compile(r"""(=\s*)("[^"]*"|'[^']*'|[^\s>"']+)""")
# Browsers ignore these inside a URL scheme.
_URL_NOISE_RE = re.compile(r"[\x00-\x20]")
_WS_RE = re.compile(r"\s+")


def clean_title(value: str | None) -> str:
    """Plain-text title: tags stripped, entities decoded once, whitespace collapsed."""
    if not value:
        return ""
    text = Markup(_BLOCK_RE.sub(" ", str(value))).striptags()
    return _WS_RE.sub(" ", text).strip()


def _neutralise_encoded_url(match: re.Match) -> str:
    raw = match.group(2)
    inner = raw[1:-1] if raw[0] in "\"'" else raw
    decoded = _URL_NOISE_RE.sub("", html.unescape(inner))
    if not _DANGEROUS_URL_RE.search(decoded):
        return match.group(0)
    safe = _DANGEROUS_URL_RE.sub("blocked:", decoded).replace("\"", "&quot;")
    return f'{match.group(1)}"{safe}"'


def clean_rich_text(value: str | None) -> str:
    if not value:
        return ""
    text = str(value)
    text = _BLOCK_RE.sub("", text)
    text = _LONE_TAG_RE.sub("", text)
    text = _EVENT_ATTR_RE.sub("", text)
    text = _DANGEROUS_URL_RE.sub("blocked:", text)
    # entity-encoded or whitespace-split schemes inside attribute values
    text = _ATTR_VALUE_RE.sub(_neutralise_encoded_url, text)
    return text.strip()


def clean_search_term(value: str | None) -> str:
    return _WS_RE.sub(" ", (value or "")).strip()[:SEARCH_MAX_CHARS]


def like_pattern(term: str) -> str:
    """``%term%`` with LIKE wildcards in ``term`` escaped (use with escape='\\\\')."""
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def clean_url(value: str | None, max_len: int = 500) -> str | None:
    """Keep only relative paths and http(s) URLs."""
    if not value:
        return None
    url = str(value).strip()[:max_len]
    if url.startswith("/") and not url.startswith("//"):
        return url
    if re.match(r"^https?://", url, re.IGNORECASE):
        return url
    return None
