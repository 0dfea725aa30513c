"""Pytest configuration and fixtures."""

import json
import os
import sys

import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


@pytest.fixture
def raw_config():
    """A complete config document in the on-disk layout."""
    return {
        "Telegram": {
            "BotToken": "123:secret-token",
            "UserID": "42",
            "APIHost": "api.telegram.org",
            "Proxy": "",
        },
        "Email": {
            "CredentialsFile": "credentials.json",
            "TokenFile": "token.json",
            "User": "student@example.edu",
        },
        "RequestData": {
            "API": "https://utility.example.edu/api/room",
            "Headers": {"Content-Type": "application/json", "X-Client": "monitor"},
            "Text": "Room 101",
            "Campus": "main",
            "Source": "web",
            "ID": 7,
            "Build": "B1",
            "Room": "101",
            "RoomID": "r-101",
            "Lang": "en",
            "Terminal": "t1",
            "LegacyTLS": False,
        },
    }


@pytest.fixture
def config_file(tmp_path, raw_config):
    """Write raw_config to a temp file and return its path."""
    path = tmp_path / "config.json"
    path.write_text(json.dumps(raw_config), encoding="utf-8")
    return path


class RecordingNotifier:
    """Notifier double that records sends and optionally fails."""

    def __init__(self, error=None):
        self.sent = []
        self.error = error

    def send(self, text):
        self.sent.append(text)
        if self.error is not None:
            raise self.error


@pytest.fixture
def recording_notifier():
    return RecordingNotifier
