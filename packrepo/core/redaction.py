# packrepo/core/redaction.py
from __future__ import annotations

import re

__all__ = ["redactText", "redactUri"]



# Catalog URIs end up in log lines; strip secrets they may carry
_SENSITIVE_PATTERNS: list[tuple[re.Pattern[str], str]] = [
    # user:password@host in URLs
    (re.compile(r"(?iu)\b([a-z][a-z0-9+.\-]*://)[^/\s:@]+:[^/\s@]+@"), r"\1***@"),

    # Bearer or Authorization headers
    (re.compile(r"(?iu)(Bearer\s+)[A-Za-z0-9._\-]+"), r"\1***"),
    (re.compile(r"(?iu)(Authorization\s*[:=]\s*)[A-Za-z0-9._\-]+"), r"\1***"),

    # Password / token fields in JSON catalogs or settings dumps
    (re.compile(r'(?iu)("password"\s*:\s*")[^"]+(")'), r"\1***\2"),
    (re.compile(r'(?iu)("api[_\-]?key"\s*:\s*")[^"]+(")'), r"\1***\2"),
    (re.compile(r'(?iu)("token"\s*:\s*")[^"]+(")'), r"\1***\2"),

    # Query parameter forms like ?token=abcdef or &access_token=abcdef
    (re.compile(r"""(?iu)([?&](?:access_)?token=)[^&\s"']+"""), r"\1***"),
    (re.compile(r"""(?iu)([?&]api[_\-]?key=)[^&\s"']+"""), r"\1***"),
]



def redactText(text: str) -> str:
    """Return sanitized text with sensitive substrings replaced by ***."""
    if not text:
        return text
    out = text
    for pattern, repl in _SENSITIVE_PATTERNS:
        try:
            out = pattern.sub(repl, out)
        except re.error:
            continue # Never crash logging on regex errors
    return out



def redactUri(uri: str | None) -> str:
    """Printable form of a repository URI."""
    if uri is None:
        return "<none>"
    return redactText(str(uri))
