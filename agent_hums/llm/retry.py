"""Retry/fallback controller for upstream LLM calls.

One ``RetryController.execute`` call runs a single logical "call the model"
operation through these states::

    Attempting(1) -> ... -> Attempting(n) -> Succeeded
                                          -> Exhausted -> FallbackEmitted
                                                       -> Failure

Transient errors (429, 529/overloaded, 5xx, timeouts) are retried with capped
exponential backoff; permanent errors end the run on the attempt that raised
them. The backoff sleep is the only suspension point and is a plain ``await``,
so it never blocks other requests and is abandoned as soon as the calling task
is cancelled.
"""

from __future__ import annotations

import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
)
from tenacity.wait import wait_base

from agent_hums.constants import (
    JITTER_CAP,
    RETRY_INITIAL_DELAY,
    RETRY_JITTER,
    RETRY_MAX_ATTEMPTS,
    RETRY_MAX_DELAY,
    RETRY_MULTIPLIER,
)
from agent_hums.errors import ErrorKind, classify_error, is_transient_error

logger = logging.getLogger(__name__)

T = TypeVar("T")

SleepFn = Callable[[float], Awaitable[Any]]


@dataclass(frozen=True)
class RetryPolicy:
    """Backoff parameters for one class of upstream call. Durations in seconds."""

    max_attempts: int = RETRY_MAX_ATTEMPTS
    initial_delay: float = RETRY_INITIAL_DELAY
    max_delay: float = RETRY_MAX_DELAY
    multiplier: float = RETRY_MULTIPLIER
    jitter: bool = RETRY_JITTER
    jitter_cap: float = JITTER_CAP

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.initial_delay < 0 or self.max_delay < 0:
            raise ValueError("delays must be non-negative")
        if self.multiplier <= 1:
            raise ValueError(f"multiplier must be > 1, got {self.multiplier}")
        if not 0 <= self.jitter_cap < 1:
            raise ValueError(f"jitter_cap must be in [0, 1), got {self.jitter_cap}")

    def base_delay(self, attempt: int) -> float:
        """Un-jittered wait after failed attempt ``attempt`` (1-based)."""
        if attempt < 1:
            raise ValueError("attempt numbers start at 1")
        return min(self.max_delay, self.initial_delay * self.multiplier ** (attempt - 1))

    def delay(self, attempt: int, rng: random.Random | None = None) -> float:
        base = self.base_delay(attempt)
        if not self.jitter or self.jitter_cap == 0:
            return base
        factor = (rng or random).uniform(-self.jitter_cap, self.jitter_cap)
        return base * (1 + factor)

    def schedule(self) -> list[float]:
        """All un-jittered waits this policy can produce, in order."""
        return [self.base_delay(n) for n in range(1, self.max_attempts)]


RETRY_POLICIES: dict[str, RetryPolicy] = {
    # Quick operations that should fail fast (tool lookups, summaries).
    "fast": RetryPolicy(max_attempts=3, initial_delay=0.5, max_delay=5.0, multiplier=2.0),
    "standard": RetryPolicy(max_attempts=5, initial_delay=1.0, max_delay=30.0, multiplier=2.0),
    "claude_api": RetryPolicy(max_attempts=6, initial_delay=2.0, max_delay=60.0, multiplier=2.5),
    "aggressive": RetryPolicy(max_attempts=8, initial_delay=1.0, max_delay=120.0, multiplier=2.0),
    # Tuned for Anthropic 529 "overloaded" bursts.
    "overloaded": RetryPolicy(max_attempts=5, initial_delay=5.0, max_delay=120.0, multiplier=1.8),
}


def get_retry_policy(name: str) -> RetryPolicy:
    try:
        return RETRY_POLICIES[name]
    except KeyError:
        raise ValueError(
            f"Unknown retry policy {name!r}; expected one of {sorted(RETRY_POLICIES)}"
        ) from None


class wait_policy(wait_base):
    """tenacity wait strategy that follows a RetryPolicy's schedule."""

    def __init__(self, policy: RetryPolicy, rng: random.Random | None = None):
        self.policy = policy
        self.rng = rng

    def __call__(self, retry_state: RetryCallState) -> float:
        return self.policy.delay(retry_state.attempt_number, self.rng)


# =============================================================================
# Outcomes
# =============================================================================


@dataclass(frozen=True)
class Success(Generic[T]):
    text: str
    attempts_used: int
    value: T | None = None
    kind: str = field(default="success", init=False)


@dataclass(frozen=True)
class FallbackUsed:
    text: str
    reason: str
    attempts_used: int = 0
    value: Any = None
    error: BaseException | None = None
    kind: str = field(default="fallback", init=False)


@dataclass(frozen=True)
class Failure:
    error: BaseException
    attempts_used: int
    kind: str = field(default="failure", init=False)

    @property
    def error_kind(self) -> ErrorKind:
        return classify_error(self.error) if isinstance(self.error, Exception) else ErrorKind.PERMANENT


CallOutcome = Success[Any] | FallbackUsed | Failure


class FallbackReason:
    MOCK_MODE = "mock_mode"
    MISSING_CREDENTIALS = "missing_credentials"
    RETRIES_EXHAUSTED = "retries_exhausted"


@dataclass(frozen=True)
class FallbackSettings:
    mock_mode: bool = False
    fallback_on_exhaustion: bool = True


# A fallback factory receives the reason and returns (text, payload).
FallbackFactory = Callable[[str], tuple[str, Any]]
TextOf = Callable[[Any], str]


def _default_text_of(value: Any) -> str:
    return value if isinstance(value, str) else str(value)


class RetryController:
    """Run one upstream call with bounded retry, then degrade to a fallback.

    The controller holds only immutable configuration; all per-call state
    lives in ``execute``'s locals, so one instance is safely shared by
    concurrent requests.
    """

    def __init__(
        self,
        policy: RetryPolicy,
        fallback: FallbackSettings | None = None,
        sleep: SleepFn | None = None,
        rng: random.Random | None = None,
    ):
        self.policy = policy
        self.fallback = fallback or FallbackSettings()
        self._sleep = sleep
        self._rng = rng

    def _retrying(self) -> AsyncRetrying:
        kwargs: dict[str, Any] = {
            "stop": stop_after_attempt(self.policy.max_attempts),
            "wait": wait_policy(self.policy, self._rng),
            "retry": retry_if_exception(is_transient_error),
            "before_sleep": before_sleep_log(logger, logging.WARNING),
            "reraise": True,
        }
        if self._sleep is not None:
            kwargs["sleep"] = self._sleep
        return AsyncRetrying(**kwargs)

    async def execute(
        self,
        call: Callable[[], Awaitable[T]],
        fallback_factory: FallbackFactory | None = None,
        credentials_available: bool = True,
        text_of: TextOf = _default_text_of,
        label: str = "upstream call",
    ) -> CallOutcome:
        if fallback_factory is not None:
            if self.fallback.mock_mode:
                return self._emit_fallback(fallback_factory, FallbackReason.MOCK_MODE, 0, None)
            if not credentials_available:
                return self._emit_fallback(
                    fallback_factory, FallbackReason.MISSING_CREDENTIALS, 0, None
                )

        attempts = 0
        try:
            async for attempt in self._retrying():
                with attempt:
                    attempts = attempt.retry_state.attempt_number
                    value = await call()
        except Exception as e:
            transient = is_transient_error(e)
            logger.error(
                "%s failed after %d/%d attempt(s) (%s): %s: %s",
                label,
                attempts,
                self.policy.max_attempts,
                "transient" if transient else "permanent",
                type(e).__name__,
                e,
            )
            if transient and fallback_factory is not None and self.fallback.fallback_on_exhaustion:
                return self._emit_fallback(
                    fallback_factory, FallbackReason.RETRIES_EXHAUSTED, attempts, e
                )
            return Failure(error=e, attempts_used=attempts)

        if attempts > 1:
            logger.info("%s succeeded on attempt %d", label, attempts)
        return Success(text=text_of(value), attempts_used=attempts, value=value)

    def _emit_fallback(
        self,
        factory: FallbackFactory,
        reason: str,
        attempts: int,
        error: BaseException | None,
    ) -> FallbackUsed:
        logger.warning("Emitting simulated response (reason=%s, attempts=%d)", reason, attempts)
        text, payload = factory(reason)
        return FallbackUsed(
            text=text, reason=reason, attempts_used=attempts, value=payload, error=error
        )
