from __future__ import annotations

import re

_NUMERIC_ENTITY_RE = re.compile(r"&#(\d+);")
_HEX_ENTITY_RE = re.compile(r"&#[xX]([0-9a-fA-F]+);")
_HTML_TAG_RE = re.compile(r"<[^>]*>")
_WHITESPACE_RE = re.compile(r"\s+")

# Applied in order. &amp; is decoded before &lt;/&gt; on purpose: feeds that
# double-escape their description markup (&amp;lt;a&amp;gt;) come out as
# real tags, which strip_markup then removes.
_NAMED_ENTITIES = (
    ("&quot;", '"'),
    ("&apos;", "'"),
    ("&#x27;", "'"),
    ("&amp;", "&"),
    ("&lt;", "<"),
    ("&gt;", ">"),
)

SNIPPET_MAX_LEN = 200


def _is_storable_codepoint(codepoint: int) -> bool:
    # NUL and lone surrogates cannot be stored in a Postgres TEXT column.
    if codepoint == 0 or 0xD800 <= codepoint <= 0xDFFF:
        return False
    return codepoint <= 0x10FFFF


def _chr_or_keep(match: re.Match[str], base: int) -> str:
    try:
        codepoint = int(match.group(1), base)
    except ValueError:
        return match.group(0)
    if not _is_storable_codepoint(codepoint):
        return match.group(0)
    return chr(codepoint)


def decode_entities(value: str) -> str:
    """Decode numeric, hex and the five named XML entities."""
    if not value:
        return ""
    text = _NUMERIC_ENTITY_RE.sub(lambda m: _chr_or_keep(m, 10), value)
    text = _HEX_ENTITY_RE.sub(lambda m: _chr_or_keep(m, 16), text)
    for entity, char in _NAMED_ENTITIES:
        text = text.replace(entity, char)
    return text


def strip_markup(value: str) -> str:
    """Drop tags and NUL bytes, collapse whitespace."""
    text = _HTML_TAG_RE.sub(" ", (value or "").replace("\x00", ""))
    return _WHITESPACE_RE.sub(" ", text).strip()


def clean_text(value: str) -> str:
    """Decode first, then strip, so encoded tags like &lt;a&gt; are removed too."""
    return strip_markup(decode_entities(value or ""))


def trim_snippet(value: str, max_length: int = SNIPPET_MAX_LEN) -> str:
    value = (value or "").strip()
    if len(value) <= max_length:
        return value
    return value[:max_length].rstrip()
