"""Tests for the Gmail sender: file loading, message construction, error mapping."""

import base64
import email
import json
import os
import stat
import sys
from pathlib import Path
from unittest.mock import Mock, patch

import google.auth.exceptions
import pytest

from elec_config import EmailConfig
from elec_errors import NotificationError
from gmail_email_sender import (
    EMAIL_SUBJECT,
    GMAIL_SEND_URL,
    GmailEmailSender,
    build_raw_message,
    load_client_secret,
    load_credentials,
    write_private_file,
)


posix_only = pytest.mark.skipif(sys.platform == "win32", reason="POSIX file modes")


CLIENT_SECRET = {
    "installed": {
        "client_id": "client-123.apps.googleusercontent.com",
        "client_secret": "shh",
        "token_uri": "https://oauth2.googleapis.com/token",
    }
}


@pytest.fixture
def email_cfg(tmp_path):
    secret = tmp_path / "credentials.json"
    secret.write_text(json.dumps(CLIENT_SECRET), encoding="utf-8")
    return EmailConfig(
        credentials_file=str(secret),
        token_file=str(tmp_path / "token.json"),
        user="student@example.edu",
    )


def _decode(raw):
    return email.message_from_bytes(base64.urlsafe_b64decode(raw.encode("ascii")))


def _valid_creds(token="access-abc"):
    return Mock(valid=True, token=token, refresh_token="refresh-xyz")


def test_raw_message_has_recipient_subject_and_body():
    msg = _decode(build_raw_message(to="a@example.edu", subject=EMAIL_SUBJECT, body="Warning: low"))
    assert msg["To"] == "a@example.edu"
    assert msg["Subject"] == "Electricity Alert"
    assert msg.get_payload() == "Warning: low"


class TestClientSecret:

    def test_reads_installed_section(self, email_cfg):
        secret = load_client_secret(Path(email_cfg.credentials_file))
        assert secret["client_id"] == "client-123.apps.googleusercontent.com"
        assert secret["client_secret"] == "shh"

    def test_missing_file(self, tmp_path):
        with pytest.raises(NotificationError, match="Missing OAuth client secret"):
            load_client_secret(tmp_path / "nope.json")

    def test_malformed_json(self, tmp_path):
        path = tmp_path / "credentials.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(NotificationError):
            load_client_secret(path)

    def test_wrong_shape(self, tmp_path):
        path = tmp_path / "credentials.json"
        path.write_text(json.dumps({"client_id": "x"}), encoding="utf-8")
        with pytest.raises(NotificationError, match="installed"):
            load_client_secret(path)


class TestLoadCredentials:

    def test_missing_token_points_at_setup_script(self, email_cfg):
        with pytest.raises(NotificationError, match="setup_gmail_auth.py"):
            load_credentials(email_cfg)

    def test_reads_oauth2_style_token(self, email_cfg):
        with open(email_cfg.token_file, "w", encoding="utf-8") as f:
            json.dump(
                {
                    "access_token": "access-abc",
                    "token_type": "Bearer",
                    "refresh_token": "refresh-xyz",
                    "expiry": "2999-01-01T00:00:00Z",
                },
                f,
            )

        creds = load_credentials(email_cfg)

        assert creds.token == "access-abc"
        assert creds.refresh_token == "refresh-xyz"
        assert creds.client_id == "client-123.apps.googleusercontent.com"
        assert creds.valid

    def test_reads_authorized_user_token(self, email_cfg):
        with open(email_cfg.token_file, "w", encoding="utf-8") as f:
            json.dump({"token": "tok", "refresh_token": "ref", "expiry": "2999-01-01T00:00:00"}, f)

        creds = load_credentials(email_cfg)

        assert creds.token == "tok"
        assert creds.valid

    def test_unparseable_expiry_forces_refresh(self, email_cfg):
        with open(email_cfg.token_file, "w", encoding="utf-8") as f:
            json.dump({"access_token": "tok", "refresh_token": "ref", "expiry": "tomorrow-ish"}, f)

        creds = load_credentials(email_cfg)

        assert creds.token is None
        assert not creds.valid
        assert creds.refresh_token == "ref"

    def test_corrupt_token_file(self, email_cfg):
        with open(email_cfg.token_file, "w", encoding="utf-8") as f:
            f.write("[1, 2")
        with pytest.raises(NotificationError, match="token file"):
            load_credentials(email_cfg)


class TestSend:

    @patch("gmail_email_sender.requests.post")
    def test_sends_raw_message_with_bearer_token(self, mock_post, email_cfg):
        mock_post.return_value = Mock(status_code=200, text="{}")

        GmailEmailSender(email_cfg, credentials=_valid_creds()).send("Warning: Exceeded limit by 3.00!")

        args, kwargs = mock_post.call_args
        assert args[0] == GMAIL_SEND_URL
        assert kwargs["headers"]["Authorization"] == "Bearer access-abc"
        msg = _decode(json.loads(kwargs["data"])["raw"])
        assert msg["To"] == "student@example.edu"
        assert msg.get_payload() == "Warning: Exceeded limit by 3.00!"

    @patch("gmail_email_sender.requests.post")
    def test_non_2xx_raises(self, mock_post, email_cfg):
        mock_post.return_value = Mock(status_code=403, text="insufficient scope")

        with pytest.raises(NotificationError) as exc_info:
            GmailEmailSender(email_cfg, credentials=_valid_creds()).send("x")

        assert exc_info.value.channel == "email"
        assert "403" in str(exc_info.value)

    @patch("gmail_email_sender.requests.post")
    def test_missing_files_raise_before_any_request(self, mock_post, tmp_path):
        cfg = EmailConfig(
            credentials_file=str(tmp_path / "missing.json"),
            token_file=str(tmp_path / "token.json"),
            user="student@example.edu",
        )
        with pytest.raises(NotificationError):
            GmailEmailSender(cfg).send("x")
        mock_post.assert_not_called()

    def test_empty_recipient_raises(self, email_cfg):
        cfg = EmailConfig(credentials_file=email_cfg.credentials_file, token_file=email_cfg.token_file, user="")
        with pytest.raises(NotificationError, match="Email.User"):
            GmailEmailSender(cfg, credentials=_valid_creds()).send("x")

    def test_expired_without_refresh_token_raises(self, email_cfg):
        creds = Mock(valid=False, refresh_token=None)
        with pytest.raises(NotificationError, match="refresh_token"):
            GmailEmailSender(email_cfg, credentials=creds).send("x")

    def test_refresh_failure_raises(self, email_cfg):
        creds = Mock(valid=False, refresh_token="ref")
        creds.refresh.side_effect = google.auth.exceptions.RefreshError("invalid_grant")
        with pytest.raises(NotificationError, match="refresh failed"):
            GmailEmailSender(email_cfg, credentials=creds).send("x")

    @patch("gmail_email_sender.requests.post")
    def test_refreshed_token_is_written_back(self, mock_post, email_cfg):
        mock_post.return_value = Mock(status_code=200, text="{}")
        with open(email_cfg.token_file, "w", encoding="utf-8") as f:
            json.dump({"access_token": "old", "refresh_token": "ref", "expiry": "2000-01-01T00:00:00Z"}, f)

        def fake_refresh(self, request):
            self.token = "fresh"
            self.expiry = None

        with patch("gmail_email_sender.Credentials.refresh", autospec=True, side_effect=fake_refresh):
            GmailEmailSender(email_cfg).send("x")

        assert mock_post.call_args.kwargs["headers"]["Authorization"] == "Bearer fresh"
        with open(email_cfg.token_file, encoding="utf-8") as f:
            saved = json.load(f)
        assert saved["token"] == "fresh"
        assert saved["refresh_token"] == "ref"
        if sys.platform != "win32":
            assert stat.S_IMODE(os.stat(email_cfg.token_file).st_mode) == 0o600


class TestFileEncoding:

    def test_utf16_token_file_is_notification_error(self, email_cfg):
        with open(email_cfg.token_file, "w", encoding="utf-16") as f:
            json.dump({"access_token": "tok", "refresh_token": "ref"}, f)

        with pytest.raises(NotificationError, match="token file"):
            load_credentials(email_cfg)

    def test_utf16_client_secret_is_notification_error(self, tmp_path):
        path = tmp_path / "credentials.json"
        path.write_text(json.dumps(CLIENT_SECRET), encoding="utf-16")

        with pytest.raises(NotificationError, match="client secret"):
            load_client_secret(path)


class TestPrivateFile:

    @posix_only
    def test_new_file_is_owner_only(self, tmp_path):
        path = tmp_path / "token.json"

        write_private_file(path, '{"token": "t"}')

        assert path.read_text(encoding="utf-8") == '{"token": "t"}'
        assert stat.S_IMODE(os.stat(path).st_mode) == 0o600

    @posix_only
    def test_existing_file_is_tightened_and_truncated(self, tmp_path):
        path = tmp_path / "token.json"
        path.write_text("x" * 100, encoding="utf-8")
        os.chmod(path, 0o644)

        write_private_file(path, "{}")

        assert path.read_text(encoding="utf-8") == "{}"
        assert stat.S_IMODE(os.stat(path).st_mode) == 0o600
