"""Gmail API email sender (cached OAuth token).

This module is intentionally tiny and boring.

Notes:
- Requires a Google Cloud OAuth client (Desktop app) with the gmail.send scope.
- The token file is created once by `setup_gmail_auth.py`. This module never
  prompts; if there is no usable token it raises.
- Expired access tokens are refreshed with google-auth and written back.
"""

from __future__ import annotations

import base64
import json
import os
from datetime import datetime, timezone
from email.mime.text import MIMEText
from pathlib import Path
from typing import Any

import google.auth.exceptions
import requests
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials

from elec_config import EmailConfig
from elec_errors import NotificationError


GMAIL_SCOPES = ["https://www.googleapis.com/auth/gmail.send"]
GMAIL_SEND_URL = "https://gmail.googleapis.com/gmail/v1/users/me/messages/send"
DEFAULT_TOKEN_URI = "https://oauth2.googleapis.com/token"
EMAIL_SUBJECT = "Electricity Alert"
SEND_TIMEOUT_SECONDS = 30


def _fail(message: str) -> NotificationError:
    return NotificationError("email", message)


def load_client_secret(path: Path) -> dict[str, str]:
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        raise _fail(f"Missing OAuth client secret file: {path}")
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise _fail(f"Unable to read client secret file {path}: {e}")

    # Google console downloads nest everything under "installed" or "web".
    section: Any = None
    if isinstance(payload, dict):
        section = payload.get("installed") or payload.get("web")
    if not isinstance(section, dict):
        raise _fail(f"Client secret file {path} has no 'installed' or 'web' section")

    client_id = str(section.get("client_id") or "").strip()
    client_secret = str(section.get("client_secret") or "").strip()
    if not client_id or not client_secret:
        raise _fail(f"Client secret file {path} is missing client_id/client_secret")

    return {
        "client_id": client_id,
        "client_secret": client_secret,
        "token_uri": str(section.get("token_uri") or DEFAULT_TOKEN_URI),
    }


def _parse_expiry(raw: Any) -> datetime | None:
    s = str(raw or "").strip()
    if not s:
        return None
    dt = datetime.fromisoformat(s.replace("Z", "+00:00"))
    # google-auth compares against naive UTC.
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def load_credentials(cfg: EmailConfig) -> Credentials:
    """Build Credentials from the client secret + cached token files.

    The token file may be google-auth's authorized-user JSON (`token`) or the
    older oauth2 layout (`access_token`, `expiry`).
    """

    secret = load_client_secret(Path(cfg.credentials_file))

    token_path = Path(cfg.token_file)
    if not token_path.exists():
        raise _fail(f"No cached token at {token_path}. Run setup_gmail_auth.py first.")

    try:
        info = json.loads(token_path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise _fail(f"Unable to parse token file {token_path}: {e}")
    if not isinstance(info, dict):
        raise _fail(f"Token file {token_path} is not a JSON object")

    token = info.get("token") or info.get("access_token")
    try:
        expiry = _parse_expiry(info.get("expiry"))
    except ValueError:
        # Unknown expiry: drop the access token so it gets refreshed.
        token, expiry = None, None

    return Credentials(
        token=token,
        refresh_token=info.get("refresh_token"),
        token_uri=secret["token_uri"],
        client_id=secret["client_id"],
        client_secret=secret["client_secret"],
        scopes=GMAIL_SCOPES,
        expiry=expiry,
    )


def _ensure_fresh(creds: Credentials, token_path: Path | None) -> None:
    if creds.valid:
        return
    if not creds.refresh_token:
        raise _fail("Cached token expired and has no refresh_token. Run setup_gmail_auth.py again.")

    try:
        creds.refresh(Request())
    except google.auth.exceptions.GoogleAuthError as e:
        raise _fail(f"Token refresh failed: {e}") from e

    if token_path is not None:
        try:
            write_private_file(token_path, creds.to_json())
        except OSError as e:
            print(f"[WARN] Could not update token file {token_path}: {e}", flush=True)


def write_private_file(path: Path, text: str) -> None:
    """Write `text` to `path` readable by the owner only (0600)."""

    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w", encoding="utf-8") as f:
        f.write(text)
    # O_CREAT only applies the mode to new files.
    os.chmod(path, 0o600)


def build_raw_message(*, to: str, subject: str, body: str) -> str:
    message = MIMEText(body)
    message["to"] = to
    message["subject"] = subject
    return base64.urlsafe_b64encode(message.as_bytes()).decode("ascii")


class GmailEmailSender:
    """Send plain-text alerts via Gmail users.messages.send.

    Pass `credentials` to use an already-authorized session; otherwise they are
    loaded from the files named in EmailConfig on each send.
    """

    def __init__(self, cfg: EmailConfig, credentials: Credentials | None = None) -> None:
        self._cfg = cfg
        self._credentials = credentials

    def send(self, body: str) -> None:
        if not self._cfg.user.strip():
            raise _fail("Email.User is required")

        if self._credentials is not None:
            creds, token_path = self._credentials, None
        else:
            creds, token_path = load_credentials(self._cfg), Path(self._cfg.token_file)
        _ensure_fresh(creds, token_path)

        raw = build_raw_message(to=self._cfg.user, subject=EMAIL_SUBJECT, body=body)
        try:
            resp = requests.post(
                GMAIL_SEND_URL,
                headers={
                    "Authorization": f"Bearer {creds.token}",
                    "Content-Type": "application/json",
                },
                data=json.dumps({"raw": raw}),
                timeout=SEND_TIMEOUT_SECONDS,
            )
        except requests.RequestException as e:
            raise _fail(f"Gmail send request failed: {e}") from e

        if resp.status_code not in (200, 202):
            raise _fail(f"Gmail send failed: {resp.status_code} {resp.text[:500]}")

        print("[OK] Gmail API push succeeded", flush=True)
