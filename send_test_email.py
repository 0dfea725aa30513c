from __future__ import annotations

import argparse
from datetime import datetime

from elec_config import DEFAULT_CONFIG_PATH, load_config
from elec_errors import ConfigError, NotificationError
from gmail_email_sender import GmailEmailSender


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(description="Send a test email through the Gmail API.")
    p.add_argument("-c", "--config", default=str(DEFAULT_CONFIG_PATH), help="config.json file path")
    args = p.parse_args(argv)

    try:
        config = load_config(args.config)
    except ConfigError as e:
        print(f"[ERROR] {e}", flush=True)
        return 1

    now = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
    body = (
        "This is a test email from the campus electricity monitor.\n"
        f"Recipient: {config.email.user}\n"
        f"Time: {now}\n"
    )

    print("Sending test email via Gmail API...", flush=True)
    try:
        GmailEmailSender(config.email).send(body)
    except NotificationError as e:
        print(f"[ERROR] {e}", flush=True)
        return 1

    print("OK: message accepted by Gmail (check your inbox + Sent)")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
