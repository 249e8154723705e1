import re

from .logging_config import redact_text

_WHITESPACE_RE = re.compile(r"\s+")


def trim_for_privacy(text: str, max_chars: int) -> str:
    """Return a short, single-line preview of ``text`` that is safe to log.

    Secrets and email addresses are redacted before the cut, so a preview
    never shows part of a credential. The result is at most ``max_chars``
    characters plus an ellipsis.
    """
    preview = redact_text(_WHITESPACE_RE.sub(" ", text).strip())
    if len(preview) <= max_chars:
        return preview
    return preview[:max_chars].rstrip() + "..."
