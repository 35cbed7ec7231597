"""Credential/model rotation: candidate ordering and error classification."""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

from siteforge.errors import EmptyResponseError, TransientProviderError

log = logging.getLogger(__name__)

RETRYABLE_STATUSES = {429, 503}
_RETRYABLE_MARKERS = ("quota", "overloaded", "rate limit", "rate-limit", "resource_exhausted", "resource exhausted")

TRANSIENT = "transient"
EMPTY = "empty"
FATAL = "fatal"


def mask_credential(credential: Optional[str]) -> str:
    if not credential:
        return "unknown"
    if len(credential) <= 8:
        return "****"
    return f"{credential[:4]}...{credential[-4:]}"


@dataclass(frozen=True)
class Candidate:
    credential: str
    model: str

    @property
    def masked(self) -> str:
        return mask_credential(self.credential)

    def __repr__(self) -> str:
        return f"Candidate(credential={self.masked!r}, model={self.model!r})"


def build_candidates(credentials: Sequence[str], models: Sequence[str]) -> Tuple[Candidate, ...]:
    """Credential-major ordering: every model is tried with the primary key before the first backup."""
    return tuple(Candidate(cred, model) for cred in credentials for model in models)


def error_status(exc: BaseException) -> Optional[int]:
    for attr in ("status", "status_code", "code"):
        val = getattr(exc, attr, None)
        if isinstance(val, int):
            return val
    response = getattr(exc, "response", None)
    val = getattr(response, "status_code", None)
    if isinstance(val, int):
        return val
    cause = exc.__cause__
    if cause is not None and cause is not exc:
        val = getattr(cause, "status", None)
        if isinstance(val, int):
            return val
    return None


def is_rate_limit_signal(status: Optional[int], message: str) -> bool:
    if status in RETRYABLE_STATUSES:
        return True
    lower = (message or "").lower()
    return any(marker in lower for marker in _RETRYABLE_MARKERS)


def classify(exc: BaseException) -> str:
    """Return ``transient``, ``empty`` or ``fatal`` for an invocation error."""
    if isinstance(exc, EmptyResponseError):
        return EMPTY
    if isinstance(exc, TransientProviderError):
        return TRANSIENT
    if is_rate_limit_signal(error_status(exc), str(exc)):
        return TRANSIENT
    return FATAL


def is_retryable(exc: BaseException) -> bool:
    return classify(exc) == TRANSIENT


class Decision(enum.Enum):
    RETRY_NEXT = "retry-next"
    FAIL_FAST = "fail-fast"


class RotationPolicy:
    """Outer retry policy over an ordered candidate list.

    Rate-limit/overload errors and empty payloads move on to the next
    candidate; anything else stops the rotation even if candidates remain.
    """

    retry_kinds = frozenset({TRANSIENT, EMPTY})

    def decide(self, index: int, total: int, exc: BaseException) -> Decision:
        kind = classify(exc)
        if kind in self.retry_kinds and index < total - 1:
            return Decision.RETRY_NEXT
        return Decision.FAIL_FAST

    def report(self, index: int, total: int, candidate: Candidate, exc: BaseException, decision: Decision) -> None:
        # Observability only; must never alter control flow
        try:
            log.warning(
                "rotation candidate=%d/%d key=%s model=%s error_kind=%s decision=%s err=%s",
                index + 1,
                total,
                candidate.masked,
                candidate.model,
                classify(exc),
                decision.value,
                str(exc)[:200],
            )
        except Exception:
            log.debug("rotation report failed", exc_info=True)
