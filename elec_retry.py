from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from elec_errors import RetryBudgetExhausted, TransientFetchError
from elec_usage import UsageReport


class RetryState(str, Enum):
    ATTEMPTING = "attempting"
    SUCCEEDED = "succeeded"
    EXHAUSTED = "exhausted"


@dataclass(frozen=True)
class RetryOutcome:
    state: RetryState
    attempts: int
    delays: int
    report: UsageReport | None = None
    last_error: TransientFetchError | None = None

    @property
    def succeeded(self) -> bool:
        return self.state is RetryState.SUCCEEDED

    def require_report(self) -> UsageReport:
        if self.report is None:
            raise RetryBudgetExhausted(self.attempts, self.last_error)
        return self.report


class RetryDriver:
    """Fixed-budget retry: N attempts, constant delay, no backoff, no jitter.

    Only TransientFetchError is retried. Anything else is a bug and propagates.
    """

    def __init__(
        self,
        *,
        max_attempts: int = 5,
        delay_seconds: float = 5.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.max_attempts = max_attempts
        self.delay_seconds = delay_seconds
        self._sleep = sleep

    def run(self, fetch: Callable[[], UsageReport]) -> RetryOutcome:
        state = RetryState.ATTEMPTING
        attempts = 0
        delays = 0
        last_error: TransientFetchError | None = None

        while state is RetryState.ATTEMPTING:
            try:
                report = fetch()
            except TransientFetchError as e:
                attempts += 1
                last_error = e
                print(f"[ERROR] Attempt {attempts} failed: {e}", flush=True)
                if attempts >= self.max_attempts:
                    state = RetryState.EXHAUSTED
                    continue
                print(f"[INFO] Retrying in {self.delay_seconds}s...", flush=True)
                self._sleep(self.delay_seconds)
                delays += 1
                continue

            attempts += 1
            return RetryOutcome(
                state=RetryState.SUCCEEDED,
                attempts=attempts,
                delays=delays,
                report=report,
            )

        return RetryOutcome(
            state=RetryState.EXHAUSTED,
            attempts=attempts,
            delays=delays,
            last_error=last_error,
        )
