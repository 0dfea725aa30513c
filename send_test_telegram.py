from __future__ import annotations

import argparse
from datetime import datetime

from elec_config import DEFAULT_CONFIG_PATH, load_config
from elec_errors import ConfigError, NotificationError
from elec_telegram import TelegramNotifier, resolve_proxy


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(description="Send a test message through the configured Telegram bot.")
    p.add_argument("-c", "--config", default=str(DEFAULT_CONFIG_PATH), help="config.json file path")
    p.add_argument("text", nargs="?", default="", help="Message text (default: timestamped test line)")
    args = p.parse_args(argv)

    try:
        config = load_config(args.config)
    except ConfigError as e:
        print(f"[ERROR] {e}", flush=True)
        return 1

    now = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
    text = args.text or f"Campus electricity monitor test message ({now})"
    proxy = resolve_proxy(config.telegram.proxy)

    print(f"Sending test message via {config.telegram.api_host} (proxy: {proxy or 'env/none'})...", flush=True)
    try:
        TelegramNotifier(config.telegram).send(text)
    except NotificationError as e:
        print(f"[ERROR] {e}", flush=True)
        return 1

    print("OK: message accepted by Telegram")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
