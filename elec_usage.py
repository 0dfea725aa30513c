"""Usage API client + remaining-quota classification.

Notes:
- The campus endpoint is old. By default we talk to it with a relaxed TLS
  setup (no cert verification, TLS 1.0-1.2, legacy CBC ciphers). That is a
  compatibility choice, not a security one; set `RequestData.LegacyTLS` to
  false in the config once the server is known to handle modern TLS.
- `status` and `rel` in the response are parsed and kept, but they do not
  gate the message. A `rel: false` response only prints a warning.
"""

from __future__ import annotations

import math
import ssl
from dataclasses import dataclass
from enum import Enum
from typing import Any

import requests
import urllib3
from requests.adapters import HTTPAdapter

from elec_config import RequestDataConfig
from elec_errors import TransientFetchError


WARNING_THRESHOLD = 20.0
FETCH_TIMEOUT_SECONDS = 30

LEGACY_CIPHERS = ":".join(
    [
        "ECDHE-RSA-AES128-GCM-SHA256",
        "ECDHE-RSA-AES256-GCM-SHA384",
        "ECDHE-RSA-AES128-SHA",
        "ECDHE-RSA-AES256-SHA",
        "AES128-SHA",
        "AES256-SHA",
        "@SECLEVEL=0",
    ]
)


class Classification(str, Enum):
    EXCEEDED = "exceeded"
    LOW_WARNING = "low_warning"
    NORMAL = "normal"

    @property
    def is_warning(self) -> bool:
        return self is not Classification.NORMAL


@dataclass(frozen=True)
class UsageSample:
    used_amp: float
    all_amp: float
    status: int | None = None
    rel: bool | None = None

    @property
    def remaining(self) -> float:
        return self.all_amp - self.used_amp


@dataclass(frozen=True)
class UsageReport:
    sample: UsageSample
    classification: Classification
    message: str

    @property
    def is_warning(self) -> bool:
        return self.classification.is_warning


def classify(remaining: float, threshold: float = WARNING_THRESHOLD) -> Classification:
    if remaining < 0:
        return Classification.EXCEEDED
    if remaining <= threshold:
        return Classification.LOW_WARNING
    return Classification.NORMAL


def format_message(classification: Classification, remaining: float) -> str:
    if classification is Classification.EXCEEDED:
        return f"Warning: Exceeded limit by {-remaining:.2f}!"
    if classification is Classification.LOW_WARNING:
        return f"Warning: Remaining electricity is low: {remaining:.2f}"
    return f"Remaining electricity: {remaining:.2f}"


def build_report(sample: UsageSample) -> UsageReport:
    remaining = sample.remaining
    classification = classify(remaining)
    return UsageReport(
        sample=sample,
        classification=classification,
        message=format_message(classification, remaining),
    )


def _legacy_ssl_context() -> ssl.SSLContext:
    ctx = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
    ctx.check_hostname = False
    ctx.verify_mode = ssl.CERT_NONE
    ctx.minimum_version = ssl.TLSVersion.TLSv1
    ctx.maximum_version = ssl.TLSVersion.TLSv1_2
    ctx.set_ciphers(LEGACY_CIPHERS)
    return ctx


class LegacyTlsAdapter(HTTPAdapter):
    """HTTPAdapter that negotiates with the relaxed SSL context above."""

    def init_poolmanager(self, *args: Any, **kwargs: Any) -> None:
        kwargs["ssl_context"] = _legacy_ssl_context()
        super().init_poolmanager(*args, **kwargs)

    def proxy_manager_for(self, *args: Any, **kwargs: Any) -> Any:
        kwargs["ssl_context"] = _legacy_ssl_context()
        return super().proxy_manager_for(*args, **kwargs)


def build_session(cfg: RequestDataConfig) -> requests.Session:
    session = requests.Session()
    if cfg.legacy_tls:
        print(
            "[WARN] Usage API uses legacy TLS mode (certificate checks off). "
            "Set RequestData.LegacyTLS=false to disable.",
            flush=True,
        )
        session.verify = False
        session.mount("https://", LegacyTlsAdapter())
        # We already print our own warning once per run.
        urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)
    return session


def _as_status(value: Any) -> int | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if isinstance(value, float) and not math.isfinite(value):
        return None
    return int(value)


def _parse_sample(payload: Any) -> UsageSample:
    if not isinstance(payload, dict):
        raise TransientFetchError(f"Usage response is not a JSON object: {payload!r}")

    data = payload.get("data")
    if not isinstance(data, dict):
        raise TransientFetchError(f"Usage response missing 'data' object: {payload!r}")

    try:
        used = float(data["usedAmp"])
        total = float(data["allAmp"])
    except (KeyError, TypeError, ValueError) as e:
        raise TransientFetchError(f"Usage response has invalid amounts: {data!r}") from e
    if not (math.isfinite(used) and math.isfinite(total)):
        raise TransientFetchError(f"Usage response has non-finite amounts: {data!r}")

    status = payload.get("status")
    rel = payload.get("rel")
    return UsageSample(
        used_amp=used,
        all_amp=total,
        status=_as_status(status),
        rel=rel if isinstance(rel, bool) else None,
    )


def fetch_usage(cfg: RequestDataConfig, session: requests.Session | None = None) -> UsageReport:
    """POST the room query once and classify what comes back.

    Raises TransientFetchError for anything the retry driver should retry.
    """

    own_session = session is None
    if session is None:
        session = build_session(cfg)

    try:
        try:
            resp = session.post(
                cfg.api,
                json=cfg.payload(),
                headers=dict(cfg.headers),
                timeout=FETCH_TIMEOUT_SECONDS,
            )
        except requests.RequestException as e:
            raise TransientFetchError(f"Usage request failed: {e}") from e

        if not 200 <= resp.status_code < 300:
            raise TransientFetchError(f"Usage API returned HTTP {resp.status_code}")

        try:
            payload = resp.json()
        except ValueError as e:
            raise TransientFetchError(f"Usage API returned invalid JSON: {e}") from e
    finally:
        if own_session:
            session.close()

    sample = _parse_sample(payload)
    if sample.rel is False:
        print(f"[WARN] Usage API reported rel=false (status={sample.status}); using the amounts anyway", flush=True)

    return build_report(sample)
