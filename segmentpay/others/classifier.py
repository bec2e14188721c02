from enum import Enum
from typing import Any, Mapping, Optional

PAYMENT_HEADER = "X-PAYMENT"


class RequestKind(str, Enum):
    PROGRAMMATIC = "programmatic"
    INTERACTIVE = "interactive"


class Decision(str, Enum):
    GRANT = "grant"
    CHALLENGE = "challenge"
    VERIFY = "verify"


def classify_request(accept: Optional[str]) -> RequestKind:
    """
    Decide whether the caller wants a rendered page or a structured reply.

    HLS players and other automated clients do not ask for text/html, so
    anything that does not is treated as programmatic.
    """
    if accept and "text/html" in accept.lower():
        return RequestKind.INTERACTIVE
    return RequestKind.PROGRAMMATIC


def payment_proof(headers: Mapping[str, Any]) -> Optional[str]:
    """Return the payment proof header value, or None when absent/blank."""
    value = headers.get(PAYMENT_HEADER)
    if value is None:
        # plain dicts are not case-insensitive like starlette Headers
        value = next(
            (v for k, v in headers.items() if k.lower() == PAYMENT_HEADER.lower()),
            None,
        )
    if not isinstance(value, str) or not value.strip():
        return None
    return value.strip()


def decide(already_paid: bool, kind: RequestKind, has_proof: bool) -> Decision:
    if already_paid:
        return Decision.GRANT
    if kind is RequestKind.PROGRAMMATIC and not has_proof:
        return Decision.CHALLENGE
    return Decision.VERIFY
