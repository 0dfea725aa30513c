"""Gmail OAuth setup: create the cached token used by gmail_email_sender.

Run this once, in an attended terminal, before scheduling the monitor:

  python setup_gmail_auth.py -c config/config.json

It prints an authorization URL, waits for the browser redirect on localhost,
and writes the token to Email.TokenFile. The monitor itself never prompts.
"""

from __future__ import annotations

import argparse
from pathlib import Path

from google_auth_oauthlib.flow import InstalledAppFlow

from elec_config import DEFAULT_CONFIG_PATH, load_config
from elec_errors import ConfigError
from gmail_email_sender import GMAIL_SCOPES, write_private_file


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(description="Authorize Gmail sending and cache the token.")
    p.add_argument("-c", "--config", default=str(DEFAULT_CONFIG_PATH), help="config.json file path")
    p.add_argument("--port", type=int, default=0, help="Local redirect port (0 = pick a free one)")
    args = p.parse_args(argv)

    try:
        config = load_config(args.config)
    except ConfigError as e:
        print(f"[ERROR] {e}", flush=True)
        return 1

    secret_path = Path(config.email.credentials_file)
    token_path = Path(config.email.token_file)
    if not secret_path.exists():
        print(f"[ERROR] Missing OAuth client secret file: {secret_path}", flush=True)
        return 1

    print("\n=== Gmail auth required ===", flush=True)
    flow = InstalledAppFlow.from_client_secrets_file(str(secret_path), GMAIL_SCOPES)
    creds = flow.run_local_server(
        port=args.port,
        open_browser=False,
        authorization_prompt_message="Go to the following link in your browser:\n{url}",
        access_type="offline",
        prompt="consent",
    )

    token_path.parent.mkdir(parents=True, exist_ok=True)
    write_private_file(token_path, creds.to_json())
    print(f"OK: token cached to {token_path}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
