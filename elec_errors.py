from __future__ import annotations


class ElectricityMonitorError(Exception):
    """Base error for the monitor."""


class ConfigError(ElectricityMonitorError):
    """Config file missing, unreadable, or malformed. Fatal at startup."""


class TransientFetchError(ElectricityMonitorError):
    """Usage API call failed (network, timeout, non-2xx, bad JSON). Retried."""


class RetryBudgetExhausted(ElectricityMonitorError):
    def __init__(self, attempts: int, last_error: BaseException | None = None) -> None:
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"Usage fetch failed after {attempts} attempt(s): {last_error}")


class NotificationError(ElectricityMonitorError):
    def __init__(self, channel: str, message: str) -> None:
        self.channel = channel
        super().__init__(f"{channel}: {message}")
