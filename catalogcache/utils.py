from __future__ import annotations

import hashlib
import json
import re
from typing import Any


def generate_key(namespace: str, operation: str, params: dict[str, Any] | None = None) -> str:
    encoded = json.dumps(params or {}, sort_keys=True, separators=(",", ":"), default=str)
    return f"{namespace}:{operation}:{encoded}"


def compile_pattern(pattern: str) -> re.Pattern[str]:
    """Translate a ``*`` glob into an unanchored regular expression.

    Every ``*`` matches any substring and all other characters match
    literally. The result is meant for ``search`` so a pattern matches any
    key that contains it.
    """
    return re.compile(".*".join(re.escape(part) for part in pattern.split("*")))


def parse_bearer_token(header_value: str | None) -> str | None:
    if not header_value:
        return None
    value = header_value.strip()
    if not value:
        return None
    if " " not in value:
        return value
    scheme, token = value.split(" ", 1)
    if scheme.lower() != "bearer":
        return value
    token = token.strip()
    return token or None


def sha256_text(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def auth_fingerprint(token: str | None) -> str:
    if not token:
        return "anon"
    return sha256_text(token)[:12]
