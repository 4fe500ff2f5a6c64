"""Map raw transport/protocol failures onto a stable error taxonomy.

Classification is an ordered rule list; the first rule that matches wins.
Authentication checks run before not-found checks because servers behind
an expired OAuth session often answer 404 as well as 401.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional, Tuple

from toolwire.core.constants import INTERNAL_ERROR, INVALID_PARAMS, METHOD_NOT_FOUND


class ErrorKind(str, Enum):
    NOT_CONNECTED = "not_connected"
    TIMEOUT = "timeout"
    AUTHENTICATION_FAILURE = "authentication"
    NOT_FOUND = "not_found"
    INVALID_ARGUMENTS = "invalid_arguments"
    INTERNAL_REMOTE_ERROR = "internal_error"
    TRANSPORT_ERROR = "transport_error"


AUTH_FAILURE_MESSAGE = "OAuth authentication failed or tokens have expired. Please re-authenticate the server."
NOT_FOUND_MESSAGE = (
    "Tool endpoint not found (404). This may indicate OAuth authentication issues "
    "or the server may not be properly configured."
)

_AUTH_MARKERS = ("401", "Unauthorized", "invalid_token", "token_expired")
_NOT_FOUND_MARKERS = ("404", "Not Found")

_CODE_STATUS = {
    METHOD_NOT_FOUND: (404, ErrorKind.NOT_FOUND),
    INVALID_PARAMS: (400, ErrorKind.INVALID_ARGUMENTS),
    INTERNAL_ERROR: (500, ErrorKind.INTERNAL_REMOTE_ERROR),
}


@dataclass(frozen=True)
class ClassifiedError:
    message: str
    status_code: int
    kind: ErrorKind
    requires_authentication: bool = False


@dataclass(frozen=True)
class RawError:
    message: str
    code: Optional[int] = None


@dataclass(frozen=True)
class ClassificationRule:
    name: str
    matches: Callable[[RawError], bool]
    build: Callable[[RawError, int], ClassifiedError]


def _classify_by_code(raw: RawError, default_status: int) -> ClassifiedError:
    status, kind = _CODE_STATUS.get(raw.code, (default_status, ErrorKind.INTERNAL_REMOTE_ERROR))
    return ClassifiedError(f"Failed to call tool: {raw.message} (Code: {raw.code})", status, kind)


RULES: Tuple[ClassificationRule, ...] = (
    ClassificationRule(
        "authentication",
        lambda raw: any(marker in raw.message for marker in _AUTH_MARKERS),
        lambda raw, _: ClassifiedError(AUTH_FAILURE_MESSAGE, 401, ErrorKind.AUTHENTICATION_FAILURE, True),
    ),
    ClassificationRule(
        "not_found",
        lambda raw: any(marker in raw.message for marker in _NOT_FOUND_MARKERS),
        lambda raw, _: ClassifiedError(NOT_FOUND_MESSAGE, 404, ErrorKind.NOT_FOUND),
    ),
    ClassificationRule(
        "protocol_code",
        lambda raw: raw.code is not None,
        _classify_by_code,
    ),
    ClassificationRule(
        "fallback",
        lambda raw: True,
        lambda raw, status: ClassifiedError(f"Failed to call tool: {raw.message}", status, ErrorKind.INTERNAL_REMOTE_ERROR),
    ),
)


def protocol_code(error: Any) -> Optional[int]:
    """Structured JSON-RPC code carried by `error`, if any.

    Understands our own `MCPError.code` and SDK-style errors that keep the
    JSON-RPC error object on `.error`.
    """
    for candidate in (error, getattr(error, "error", None)):
        code = getattr(candidate, "code", None)
        if isinstance(code, int) and not isinstance(code, bool):
            return code
    return None


def to_raw_error(error: Any) -> RawError:
    if isinstance(error, RawError):
        return error
    if isinstance(error, BaseException):
        return RawError(str(error) or "Unknown error", protocol_code(error))
    return RawError(str(error) if error else "Unknown error")


def classify_error(error: Any, status_code: int = 500, rules: Tuple[ClassificationRule, ...] = RULES) -> ClassifiedError:
    """Classify `error` (exception, message or RawError); never raises."""
    raw = to_raw_error(error)
    for rule in rules:
        if rule.matches(raw):
            return rule.build(raw, status_code)
    return ClassifiedError(f"Failed to call tool: {raw.message}", status_code, ErrorKind.INTERNAL_REMOTE_ERROR)


def matching_rule(error: Any, rules: Tuple[ClassificationRule, ...] = RULES) -> str:
    """Name of the rule that classifies `error`; handy when logging."""
    raw = to_raw_error(error)
    return next((rule.name for rule in rules if rule.matches(raw)), "fallback")
