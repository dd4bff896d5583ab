"""
Best-effort markdown projections.

Safe HTML rendering is owned by the presentation layer; here we only derive
``body_md`` (trimmed author input) and a plain-text ``body_text`` for
previews.
"""

import re
from typing import Optional, Tuple

_CODE_BLOCK = re.compile(r"```[\s\S]*?```")
_INLINE_CODE = re.compile(r"`[^`]*`")
_LINK = re.compile(r"\[([^\]]+)\]\([^)]+\)")
_MARKUP = re.compile(r"[#>*_~\-]+")
_BLANK_RUNS = re.compile(r"\n{3,}")


def markdown_to_text(md: str) -> str:
    """Strip code, links and markup characters, keeping paragraph breaks."""
    text = _CODE_BLOCK.sub(" ", md)
    text = _INLINE_CODE.sub(" ", text)
    text = _LINK.sub(r"\1", text)
    text = _MARKUP.sub(" ", text)
    text = text.replace("\r\n", "\n")
    text = _BLANK_RUNS.sub("\n\n", text)
    return text.strip()


def derive_bodies(raw_md: str) -> Tuple[str, Optional[str]]:
    """Return ``(body_md, body_text)`` for an author's raw submission."""
    body_md = raw_md.strip()
    body_text = markdown_to_text(body_md)
    return body_md, body_text or None
