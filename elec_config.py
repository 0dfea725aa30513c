"""Config loading.

One JSON file, read once at startup, turned into frozen dataclasses that get
passed into each component. Key names follow the on-disk format
(`Telegram.BotToken`, `RequestData.RoomID`, ...).
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from elec_errors import ConfigError


DEFAULT_CONFIG_PATH = Path("config") / "config.json"


@dataclass(frozen=True)
class TelegramConfig:
    bot_token: str
    user_id: str
    api_host: str = "api.telegram.org"
    proxy: str = ""


@dataclass(frozen=True)
class EmailConfig:
    credentials_file: str = "config/credentials.json"
    token_file: str = "config/token.json"
    user: str = ""


@dataclass(frozen=True)
class RequestDataConfig:
    api: str
    headers: dict[str, str] = field(default_factory=dict)
    text: str = ""
    campus: str = ""
    source: str = ""
    id: int = 0
    build: str = ""
    room: str = ""
    room_id: str = ""
    lang: str = ""
    terminal: str = ""
    # Relaxed TLS for the usage API (no cert checks, TLS 1.0-1.2, legacy ciphers).
    legacy_tls: bool = True

    def payload(self) -> dict[str, Any]:
        return {
            "text": self.text,
            "campus": self.campus,
            "source": self.source,
            "id": self.id,
            "build": self.build,
            "room": self.room,
            "roomId": self.room_id,
            "lang": self.lang,
            "terminal": self.terminal,
        }


@dataclass(frozen=True)
class RetryConfig:
    max_attempts: int = 5
    delay_seconds: float = 5.0


@dataclass(frozen=True)
class MonitorConfig:
    telegram: TelegramConfig
    email: EmailConfig
    request_data: RequestDataConfig
    retry: RetryConfig = field(default_factory=RetryConfig)


def _section(payload: dict[str, Any], name: str) -> dict[str, Any]:
    raw = payload.get(name, {})
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigError(f"Config section {name!r} must be an object")
    return raw


def _str(section: dict[str, Any], key: str, default: str = "") -> str:
    return str(section.get(key) or default).strip()


def _required(section: dict[str, Any], section_name: str, key: str) -> str:
    value = _str(section, key)
    if not value:
        raise ConfigError(f"Missing required config value: {section_name}.{key}")
    return value


def _as_bool(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def parse_config(payload: Any) -> MonitorConfig:
    if not isinstance(payload, dict):
        raise ConfigError("Config root must be a JSON object")

    tg = _section(payload, "Telegram")
    em = _section(payload, "Email")
    rd = _section(payload, "RequestData")
    rt = _section(payload, "Retry")

    headers = rd.get("Headers") or {}
    if not isinstance(headers, dict):
        raise ConfigError("RequestData.Headers must be an object")

    try:
        request_id = int(rd.get("ID") or 0)
    except (TypeError, ValueError):
        raise ConfigError(f"RequestData.ID must be an integer, got {rd.get('ID')!r}")

    try:
        retry = RetryConfig(
            max_attempts=int(rt.get("MaxAttempts", 5)),
            delay_seconds=float(rt.get("DelaySeconds", 5)),
        )
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid Retry config: {e}")
    if retry.max_attempts < 1:
        raise ConfigError("Retry.MaxAttempts must be at least 1")
    if retry.delay_seconds < 0:
        raise ConfigError("Retry.DelaySeconds must not be negative")

    return MonitorConfig(
        telegram=TelegramConfig(
            bot_token=_required(tg, "Telegram", "BotToken"),
            user_id=_required(tg, "Telegram", "UserID"),
            api_host=_str(tg, "APIHost", "api.telegram.org"),
            proxy=_str(tg, "Proxy"),
        ),
        email=EmailConfig(
            credentials_file=_str(em, "CredentialsFile", "config/credentials.json"),
            token_file=_str(em, "TokenFile", "config/token.json"),
            user=_str(em, "User"),
        ),
        request_data=RequestDataConfig(
            api=_required(rd, "RequestData", "API"),
            headers={str(k): str(v) for k, v in headers.items()},
            text=_str(rd, "Text"),
            campus=_str(rd, "Campus"),
            source=_str(rd, "Source"),
            id=request_id,
            build=_str(rd, "Build"),
            room=_str(rd, "Room"),
            room_id=_str(rd, "RoomID"),
            lang=_str(rd, "Lang"),
            terminal=_str(rd, "Terminal"),
            legacy_tls=_as_bool(rd.get("LegacyTLS"), True),
        ),
        retry=retry,
    )


def load_config(path: str | Path = DEFAULT_CONFIG_PATH) -> MonitorConfig:
    path = Path(path)
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        raise ConfigError(f"Missing config: {path}")
    except OSError as e:
        raise ConfigError(f"Cannot read config {path}: {e}")
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ConfigError(f"Invalid JSON in {path}: {e}")

    return parse_config(payload)
