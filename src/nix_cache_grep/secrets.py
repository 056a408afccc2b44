"""Credential scrubbing for log output.

The S3 backend runs with whatever AWS credentials boto3 discovers, and
botocore debug logging echoes signed headers and presigned query strings.
Both formatters in :mod:`nix_cache_grep.logging_config` pass every message,
argument and context field through :func:`redact_structure` first.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

REDACTED = "<REDACTED>"

_SENSITIVE_KEYS = frozenset(
    {
        "authorization",
        "awsaccesskeyid",
        "awssecretaccesskey",
        "awssessiontoken",
        "secretaccesskey",
        "sessiontoken",
        "signature",
        "token",
        "xamzcredential",
        "xamzsecuritytoken",
        "xamzsignature",
    }
)

# Applied in order to every rendered string.
_SCRUBBERS: tuple[tuple[re.Pattern[str], str], ...] = (
    # SigV4 Authorization header value: keep the algorithm name only.
    (re.compile(r"(AWS4-HMAC-SHA256)\s+[^\"'\n]+"), rf"\1 {REDACTED}"),
    (re.compile(r"(?i)\bBearer\s+[^\s,\"']+"), f"Bearer {REDACTED}"),
    (
        re.compile(
            r"(?i)\b(X-Amz-(?:Signature|Credential|Security-Token)|Signature|AWSAccessKeyId"
            r"|aws_secret_access_key|aws_session_token|token)(=|\s*:\s*)([\"']?)[^&\s,\"']+\3"
        ),
        rf"\1\2\3{REDACTED}\3",
    ),
    (re.compile(r"\b(?:AKIA|ASIA)[0-9A-Z]{16}\b"), REDACTED),
)


def is_sensitive_key(key: str) -> bool:
    return re.sub(r"[^a-z0-9]", "", key.lower()) in _SENSITIVE_KEYS


class SecretStr:
    """Credential holder whose ``str()`` and ``repr()`` are ``<REDACTED>``.

    ``reveal()`` gives the real value back; ``None`` is stored as ``""``.
    """

    def __init__(self, value: Any) -> None:
        self._value = "" if value is None else str(value)

    def reveal(self) -> str:
        return self._value

    def __repr__(self) -> str:
        return REDACTED

    __str__ = __repr__

    def __eq__(self, other: object) -> bool:
        return isinstance(other, SecretStr) and self._value == other._value

    def __hash__(self) -> int:
        return hash(self._value)


def redact_string(text: str) -> str:
    for pattern, replacement in _SCRUBBERS:
        text = pattern.sub(replacement, text)
    return text


def _redact_item(key: Any, item: Any) -> Any:
    if is_sensitive_key(str(key)):
        return item if isinstance(item, SecretStr) else SecretStr(item)
    return redact_structure(item)


def redact_structure(value: Any) -> Any:
    """Return a log-safe copy of ``value``.

    Strings are scrubbed, values under sensitive mapping keys are wrapped in
    :class:`SecretStr`, and lists, tuples and mappings are walked.
    """
    if isinstance(value, str):
        return redact_string(value)
    if isinstance(value, Mapping):
        return {key: _redact_item(key, item) for key, item in value.items()}
    if isinstance(value, tuple):
        return tuple(redact_structure(item) for item in value)
    if isinstance(value, list):
        return [redact_structure(item) for item in value]
    return value
