"""Retry ladders for vector-store writes.

A :class:`RetryPolicy` is a pure value object describing *one* backoff
ladder: how many attempts, how long to wait between them, and which
errors it governs.  A :class:`RetryLadder` combines several policies into
a ``tenacity`` controller whose stop and wait decisions are taken from
whichever policy matches the most recent error.  All policies of a
ladder share one attempt counter.

Only ``Exception`` subclasses are retried; ``KeyboardInterrupt`` and
other ``BaseException`` types always propagate immediately.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, TypeVar

import tenacity
from tenacity import RetryCallState, retry_if_exception_type

from catalog_sync.config import settings
from catalog_sync.errors import is_transient

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Backoff(str, Enum):
    LINEAR = "linear"
    EXPONENTIAL = "exponential"


def _any_error(exc: BaseException) -> bool:
    return True


@dataclass(frozen=True)
class RetryPolicy:
    """One backoff ladder.

    Attributes
    ----------
    name:
        Label used in log messages.
    max_attempts:
        Total attempts (first try included) before the ladder gives up.
    base_delay:
        Seconds to wait after the first failed attempt.
    multiplier:
        Growth factor for exponential backoff.
    backoff:
        ``LINEAR`` waits ``attempt × base_delay``; ``EXPONENTIAL`` waits
        ``base_delay × multiplier ** (attempt - 1)``.
    applies_to:
        Classifier predicate selecting the errors this policy governs.
    """

    name: str
    max_attempts: int
    base_delay: float
    multiplier: float = 2.0
    backoff: Backoff = Backoff.LINEAR
    applies_to: Callable[[BaseException], bool] = _any_error

    def delay(self, attempt: int) -> float:
        """Seconds to wait after failed attempt number *attempt* (1-based)."""
        if self.backoff is Backoff.EXPONENTIAL:
            return self.base_delay * self.multiplier ** (attempt - 1)
        return self.base_delay * attempt

    def exhausted(self, attempt: int) -> bool:
        return attempt >= self.max_attempts


class RetryLadder:
    """Run a callable under a list of :class:`RetryPolicy` objects.

    Parameters
    ----------
    policies:
        Checked in order; the first whose ``applies_to`` accepts the error
        decides whether to stop and how long to wait.  An error no policy
        accepts stops immediately.
    sleep:
        Injected sleep function (tests pass a no-op).
    """

    def __init__(self, *policies: RetryPolicy, sleep: Callable[[float], None] = time.sleep) -> None:
        if not policies:
            raise ValueError("RetryLadder needs at least one policy")
        self.policies = policies
        self._sleep = sleep

    def policy_for(self, exc: BaseException) -> RetryPolicy | None:
        for policy in self.policies:
            if policy.applies_to(exc):
                return policy
        return None

    # -- tenacity hooks -------------------------------------------------------

    def _stop(self, retry_state: RetryCallState) -> bool:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        if exc is None:
            return True
        policy = self.policy_for(exc)
        return policy is None or policy.exhausted(retry_state.attempt_number)

    def _wait(self, retry_state: RetryCallState) -> float:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        policy = self.policy_for(exc) if exc is not None else None
        return policy.delay(retry_state.attempt_number) if policy else 0.0

    def _before_sleep(self, label: str) -> Callable[[RetryCallState], None]:
        def _log(retry_state: RetryCallState) -> None:
            exc = retry_state.outcome.exception() if retry_state.outcome else None
            policy = self.policy_for(exc) if exc is not None else None
            wait = retry_state.next_action.sleep if retry_state.next_action else 0.0
            logger.warning(
                "%s - %s failure on attempt %d, retrying in %.1fs: %s",
                label,
                policy.name if policy else "unclassified",
                retry_state.attempt_number,
                wait,
                exc,
            )

        return _log

    # -- public API -----------------------------------------------------------

    def controller(self, label: str = "write") -> tenacity.Retrying:
        """Return a fresh ``tenacity.Retrying`` bound to this ladder."""
        return tenacity.Retrying(
            stop=self._stop,
            wait=self._wait,
            retry=retry_if_exception_type(Exception),
            sleep=self._sleep,
            before_sleep=self._before_sleep(label),
            reraise=True,
        )

    def call(self, fn: Callable[..., T], *args: Any, label: str = "write", **kwargs: Any) -> T:
        """Invoke *fn* until it succeeds or the ladder gives up.

        The last error is re-raised unchanged when every attempt fails.
        """
        return self.controller(label)(fn, *args, **kwargs)


def bulk_write_ladder(sleep: Callable[[float], None] = time.sleep) -> RetryLadder:
    """Ladder for whole-batch writes: exponential for network errors, linear otherwise."""
    return RetryLadder(
        RetryPolicy(
            name="transient-network",
            max_attempts=settings.transient_max_attempts,
            base_delay=settings.transient_base_delay,
            multiplier=2.0,
            backoff=Backoff.EXPONENTIAL,
            applies_to=is_transient,
        ),
        RetryPolicy(
            name="write",
            max_attempts=settings.other_max_attempts,
            base_delay=settings.other_base_delay,
        ),
        sleep=sleep,
    )


def item_write_ladder(sleep: Callable[[float], None] = time.sleep) -> RetryLadder:
    """Ladder for single-document writes after a batch has degraded."""
    return RetryLadder(
        RetryPolicy(
            name="item-write",
            max_attempts=settings.item_max_attempts,
            base_delay=settings.item_base_delay,
        ),
        sleep=sleep,
    )
