from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional, Protocol, Tuple, Union

from siteforge import rotation
from siteforge.errors import ConfigurationError, FatalProviderError, TransientProviderError
from siteforge.rotation import Candidate, Decision, RotationPolicy

log = logging.getLogger(__name__)

TEXT = "text"
IMAGE = "image"


class Adapter(Protocol):
    def invoke(self, kind: str, credential: str, model: str, prompt: str) -> Union[str, bytes]:
        ...


@dataclass(frozen=True)
class GenerationRequest:
    kind: str
    payload: str
    candidates: Tuple[Candidate, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        if self.kind not in (TEXT, IMAGE):
            raise ValueError(f"unknown generation kind: {self.kind!r}")
        # Accept any sequence but store an immutable tuple
        object.__setattr__(self, "candidates", tuple(self.candidates))


@dataclass(frozen=True)
class Attempt:
    candidate: Candidate
    error_kind: str
    message: str = ""


@dataclass(frozen=True)
class GenerationSuccess:
    content: Union[str, bytes]
    candidate: Candidate
    index: int
    attempts: Tuple[Attempt, ...] = ()

    ok = True


@dataclass(frozen=True)
class GenerationFailure:
    last_error: BaseException
    attempts: Tuple[Attempt, ...]

    ok = False

    @property
    def exhausted(self) -> bool:
        return bool(self.attempts) and self.attempts[-1].error_kind != rotation.FATAL

    def raise_error(self, label: str = "Generation") -> None:
        tried = len(self.attempts)
        msg = f"{label} failed after {tried} attempt(s): {self.last_error}"
        if self.exhausted:
            raise TransientProviderError(msg) from self.last_error
        raise FatalProviderError(msg) from self.last_error


GenerationOutcome = Union[GenerationSuccess, GenerationFailure]


class ResilientInvoker:
    """Drive a :class:`RotationPolicy` over an adapter, one candidate at a time."""

    def __init__(self, adapter: Adapter, policy: Optional[RotationPolicy] = None) -> None:
        self.adapter = adapter
        self.policy = policy or RotationPolicy()

    def run(self, request: GenerationRequest) -> GenerationOutcome:
        candidates = request.candidates
        if not candidates:
            raise ConfigurationError(f"No credentials configured for {request.kind} generation")
        total = len(candidates)
        attempts = []
        for idx, cand in enumerate(candidates):
            try:
                content = self.adapter.invoke(request.kind, cand.credential, cand.model, request.payload)
            except Exception as exc:
                attempts.append(Attempt(cand, rotation.classify(exc), str(exc)[:200]))
                decision = self.policy.decide(idx, total, exc)
                self.policy.report(idx, total, cand, exc, decision)
                if decision is Decision.RETRY_NEXT:
                    continue
                return GenerationFailure(last_error=exc, attempts=tuple(attempts))
            if idx > 0:
                log.info("%s generation ok using backup candidate %d (%s/%s)", request.kind, idx + 1, cand.masked, cand.model)
            else:
                log.info("%s generation ok using primary candidate (%s)", request.kind, cand.model)
            return GenerationSuccess(content=content, candidate=cand, index=idx, attempts=tuple(attempts))
        # Unreachable: the policy always fails fast on the last candidate
        raise AssertionError("rotation ended without a decision")
