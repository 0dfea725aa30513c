from __future__ import annotations

from urllib.parse import urlsplit

import requests

from elec_config import TelegramConfig
from elec_errors import NotificationError


SEND_TIMEOUT_SECONDS = 30


def resolve_proxy(proxy: str) -> str | None:
    """Turn the configured proxy into a URL, or None to use env proxies.

    Accepts a bare `host:port` (treated as HTTP) or a full URL. Never raises.
    """

    raw = str(proxy or "").strip()
    if not raw:
        return None

    if "://" in raw:
        try:
            parts = urlsplit(raw)
            parts.port
        except ValueError:
            return None
        if parts.scheme and parts.hostname:
            return raw
        return None

    host, sep, port = raw.rpartition(":")
    if sep and host and port.isdigit():
        return f"http://{raw}"
    return None


class TelegramNotifier:
    def __init__(self, cfg: TelegramConfig) -> None:
        self._cfg = cfg

    @property
    def url(self) -> str:
        host = self._cfg.api_host or "api.telegram.org"
        return f"https://{host}/bot{self._cfg.bot_token}/sendMessage"

    def send(self, text: str) -> None:
        """Push `text` to the configured chat via the Bot API sendMessage call."""

        proxy = resolve_proxy(self._cfg.proxy)
        proxies = {"http": proxy, "https": proxy} if proxy else None

        try:
            resp = requests.post(
                self.url,
                data={"chat_id": self._cfg.user_id, "text": text},
                proxies=proxies,
                timeout=SEND_TIMEOUT_SECONDS,
            )
        except requests.RequestException as e:
            # Don't echo the exception text: it may contain the bot token in the URL.
            raise NotificationError("telegram", f"request failed ({type(e).__name__})") from e

        if not 200 <= resp.status_code < 300:
            raise NotificationError(
                "telegram", f"Bot push failed ({resp.status_code}): {resp.text[:500]}"
            )

        print("[OK] Telegram Bot push succeeded", flush=True)
