from __future__ import annotations

import re
from typing import Iterable

TOKENISH = re.compile(r"(?i)\b(secret|token|password|apikey|api_key|authorization)(\s*[=:]\s*|\s+)(bearer\s+)?([^\s,;]+)")
BEARER = re.compile(r"(?i)\bbearer\s+[A-Za-z0-9._~+/=-]+")
HEX_LONG = re.compile(r"\b[0-9a-f]{32,}\b", re.I)

MASK = "[REDACTED]"


def redact_string(s: str, secrets: Iterable[str] = ()) -> str:
    for secret in secrets:
        if secret and len(secret) >= 4:
            s = s.replace(secret, MASK)
    s = BEARER.sub(f"Bearer {MASK}", s)
    s = TOKENISH.sub(lambda m: f"{m.group(1)}{m.group(2)}{MASK}", s)
    return HEX_LONG.sub(MASK, s)
