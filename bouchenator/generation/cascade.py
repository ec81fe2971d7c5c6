"""
Generation cascade driver.

Walks an ordered provider list for one request. Transport failures (no key,
timeout, API error, empty text) move straight to the next provider. Output
that fails parsing, schema or domain checks is retried once on the same
provider with a strengthened hint, then falls through. The deterministic
fallback is the terminal state and never fails.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field, replace
from typing import Callable, Generic, List, Optional, Sequence, TypeVar

import structlog

from bouchenator.core.exceptions import GenerationError
from bouchenator.generation.providers import GenerationRequest, Provider
from bouchenator.utils.reliability import elapsed_ms

logger = structlog.get_logger("generation")

T = TypeVar("T")

MOCK_PROVIDER = "mock"

DEFAULT_RETRY_HINT = (
    "IMPORTANT: Your previous response could not be used. Output ONLY valid JSON in exactly "
    "the shape described above, with every required field present. No markdown, no code "
    "fences, no commentary."
)

# parse(text, final_attempt) -> value; raises GenerationError on bad output
Parser = Callable[[str, bool], T]


@dataclass
class RetryState:
    """Bounded retry-with-hint state for one provider."""

    max_attempts: int = 2
    attempt: int = 0
    last_reason: Optional[str] = None
    hint: Optional[str] = None

    @property
    def strengthened(self) -> bool:
        return self.hint is not None

    @property
    def final(self) -> bool:
        """True when the current attempt is the last one allowed."""
        return self.attempt >= self.max_attempts

    def begin(self) -> None:
        self.attempt += 1

    def should_retry(self, reason: str, hint: Optional[str]) -> bool:
        """Record an output failure; True when the same provider gets another go."""
        self.last_reason = reason
        if self.final:
            return False
        self.hint = hint or DEFAULT_RETRY_HINT
        return True


@dataclass
class AttemptRecord:
    provider: str
    outcome: str
    duration_ms: int
    retry: bool = False
    error: Optional[str] = None


@dataclass
class CascadeOutcome(Generic[T]):
    value: T
    provider: str
    duration_ms: int
    error: Optional[str] = None
    attempts: List[AttemptRecord] = field(default_factory=list)

    @property
    def used_fallback(self) -> bool:
        return self.provider == MOCK_PROVIDER


class GenerationCascade:
    """Drives ideas, build-plan and custom-idea requests through the providers."""

    def __init__(self, providers: Sequence[Provider]):
        self.providers = list(providers)

    async def run(
        self,
        request: GenerationRequest,
        parse: Parser,
        fallback: Callable[[], T],
    ) -> CascadeOutcome[T]:
        t0 = time.perf_counter()
        attempts: List[AttemptRecord] = []
        first_error: Optional[str] = None

        for provider in self.providers:
            if not provider.available():
                attempts.append(AttemptRecord(provider=provider.name, outcome="no_key", duration_ms=0))
                continue

            state = RetryState()
            while True:
                state.begin()
                current = replace(request, hint=state.hint)
                result = await provider.attempt(current)

                if not result.ok:
                    attempts.append(AttemptRecord(provider=provider.name, outcome=result.reason,
                                                  duration_ms=result.duration_ms,
                                                  retry=state.strengthened, error=result.error))
                    first_error = first_error or f"{provider.name}: {result.error or result.reason}"
                    break

                try:
                    value = parse(result.text, state.final)
                except GenerationError as e:
                    reason = type(e).__name__
                    attempts.append(AttemptRecord(provider=provider.name, outcome=reason,
                                                  duration_ms=result.duration_ms,
                                                  retry=state.strengthened, error=e.message))
                    first_error = first_error or f"{provider.name}: {e.message}"
                    if state.should_retry(reason, e.details.get("hint")):
                        logger.info("generation_retry", provider=provider.name, stage=request.stage,
                                    reason=reason, detail=e.message)
                        continue
                    break

                attempts.append(AttemptRecord(provider=provider.name, outcome="ok",
                                              duration_ms=result.duration_ms, retry=state.strengthened))
                return CascadeOutcome(value=value, provider=provider.name, duration_ms=elapsed_ms(t0),
                                      error=first_error, attempts=attempts)

        logger.info("generation_fallback", stage=request.stage, error=first_error,
                    attempted=[a.provider for a in attempts if a.outcome != "no_key"])
        return CascadeOutcome(value=fallback(), provider=MOCK_PROVIDER, duration_ms=elapsed_ms(t0),
                              error=first_error, attempts=attempts)
