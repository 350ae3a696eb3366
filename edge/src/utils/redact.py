from __future__ import annotations

import re
from typing import Iterable


_SENSITIVE_HEADERS = frozenset({"authorization", "proxy-authorization", "cookie", "set-cookie", "x-api-key"})
_RE_BEARER = re.compile(r"(?i)\bBearer\s+([A-Za-z0-9._\-+/=]{8,})")
_RE_JWT = re.compile(r"\beyJ[A-Za-z0-9_\-]+\.[A-Za-z0-9_\-]+\.[A-Za-z0-9_\-]+\b")
_RE_TOKEN_PARAM = re.compile(r"(?i)\b(token|access_token|api_key)=([^&\s]+)")


def redact_secrets(text: str) -> str:
    """
    Best-effort secret redaction for request lines and header values in logs.

    NOTE: Do not rely on this as the only control; also avoid logging secrets in the first place.
    """
    if not text:
        return text

    out = text
    out = _RE_BEARER.sub("Bearer [REDACTED]", out)
    out = _RE_JWT.sub("[REDACTED]", out)
    out = _RE_TOKEN_PARAM.sub(lambda m: f"{m.group(1)}=[REDACTED]", out)
    return out


def redact_headers(headers: Iterable[tuple[str, str]]) -> dict[str, str]:
    out: dict[str, str] = {}
    for name, value in headers:
        key = name.lower()
        if key in _SENSITIVE_HEADERS:
            value = "[REDACTED]"
        else:
            value = redact_secrets(value)
        out[key] = f"{out[key]}, {value}" if key in out else value
    return out
