"""Free-text sanitization for seller and admin input."""

from __future__ import annotations

from typing import Any, Optional

import bleach


def sanitize_text(text: Any, max_length: Optional[int] = None) -> str:
    """
    Strip markup and surrounding whitespace from user input text.

    Only for descriptive fields (titles, descriptions, bank settings).
    Credential blocks are delivered verbatim and never pass through here.
    """
    if text is None:
        return ""
    text = str(text).strip()
    if not text:
        return ""
    text = bleach.clean(text, tags=[], strip=True).strip()
    if max_length and len(text) > max_length:
        text = text[:max_length]
    return text


def as_flag(value: Any) -> bool:
    """Interpret JSON / form booleans ("true", "1", "on", True)."""
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)
