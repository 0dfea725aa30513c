"""Campus Electricity Monitor

Run-once job:
- Query the campus usage API (retried a fixed number of times)
- Classify the remaining quota (exceeded / low / normal)
- Push the result to Telegram, and email it via Gmail when it is a warning

Scheduling is external (cron, CI schedule). Each run is one linear pass.

Exit codes:
- 0: Telegram delivered (email failures never change this)
- 1: config error, retries exhausted, or Telegram delivery failed

Run:
  python campus_electricity_monitor.py -c config/config.json
"""

from __future__ import annotations

import argparse
import time
from typing import Callable, Protocol

from elec_config import DEFAULT_CONFIG_PATH, MonitorConfig, load_config
from elec_errors import ConfigError, NotificationError, RetryBudgetExhausted
from elec_retry import RetryDriver
from elec_telegram import TelegramNotifier
from elec_usage import UsageReport, build_session, fetch_usage
from gmail_email_sender import GmailEmailSender


RETRY_EXHAUSTED_MESSAGE = "Error: Maximum retry limit reached."


class Notifier(Protocol):
    def send(self, text: str) -> None: ...


def _send_best_effort_email(email: Notifier, text: str) -> None:
    try:
        email.send(text)
    except NotificationError as e:
        print(f"[ERROR] Failed to send email notification: {e}", flush=True)
    else:
        print(f"[OK] Email sent: {text}", flush=True)


def run(
    *,
    fetch: Callable[[], UsageReport],
    driver: RetryDriver,
    chat: Notifier,
    email: Notifier,
) -> int:
    """Fetch-with-retry, then notify. Returns the process exit code."""

    outcome = driver.run(fetch)

    try:
        report = outcome.require_report()
    except RetryBudgetExhausted as e:
        print(f"[ALERT] {e}", flush=True)
        try:
            chat.send(RETRY_EXHAUSTED_MESSAGE)
        except NotificationError as ne:
            print(f"[ERROR] Failed to send Telegram message: {ne}", flush=True)
        _send_best_effort_email(email, RETRY_EXHAUSTED_MESSAGE)
        print(f"[ERROR] {RETRY_EXHAUSTED_MESSAGE}", flush=True)
        return 1

    print(f"[INFO] {report.message} ({report.classification.value}, attempts={outcome.attempts})", flush=True)

    chat_error: NotificationError | None = None
    try:
        chat.send(report.message)
    except NotificationError as e:
        chat_error = e
        print(f"[ERROR] Failed to send Telegram message: {e}", flush=True)
    else:
        print(f"[OK] Telegram message sent: {report.message}", flush=True)

    if report.is_warning:
        _send_best_effort_email(email, report.message)

    if chat_error is not None:
        print("[ERROR] Telegram delivery failed", flush=True)
        return 1
    return 0


def run_with_config(config: MonitorConfig, sleep: Callable[[float], None] = time.sleep) -> int:
    session = build_session(config.request_data)
    driver = RetryDriver(
        max_attempts=config.retry.max_attempts,
        delay_seconds=config.retry.delay_seconds,
        sleep=sleep,
    )
    try:
        return run(
            fetch=lambda: fetch_usage(config.request_data, session=session),
            driver=driver,
            chat=TelegramNotifier(config.telegram),
            email=GmailEmailSender(config.email),
        )
    finally:
        session.close()


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(description="Check campus electricity balance and notify.")
    p.add_argument(
        "-c",
        "--config",
        default=str(DEFAULT_CONFIG_PATH),
        help="config.json file path (default: %(default)s)",
    )
    args = p.parse_args(argv)

    try:
        config = load_config(args.config)
    except ConfigError as e:
        print(f"[ERROR] {e}", flush=True)
        return 1

    print(f"[INIT] Campus electricity check starting (room {config.request_data.room or '-'})", flush=True)
    return run_with_config(config)


if __name__ == "__main__":
    raise SystemExit(main())
