import os
import re
from dataclasses import dataclass, field
from datetime import timedelta
from typing import List, Mapping, Optional

from dotenv import load_dotenv

from errors import ConfigurationError

BACKEND_ROOT = os.path.dirname(os.path.abspath(__file__))

_duration_pattern = re.compile(r"^\s*(\d+)\s*([smhd]?)\s*$")
_duration_units = {"": 1, "s": 1, "m": 60, "h": 3600, "d": 86400}

REQUIRED_KEYS = (
    "MONGODB_URI",
    "SECRET_KEY_ACCESS_TOKEN",
    "SECRET_KEY_REFRESH_TOKEN",
)


def parse_duration(value: str) -> timedelta:
    """Parse ``"300"``, ``"45m"``, ``"5h"`` or ``"7d"`` into a timedelta."""
    match = _duration_pattern.match(str(value or ""))
    if not match:
        raise ConfigurationError(f"Unrecognised duration: {value!r}")
    amount, unit = match.groups()
    return timedelta(seconds=int(amount) * _duration_units[unit])


def _read_bool(value: Optional[str]) -> bool:
    return str(value or "").strip().lower() in {"1", "true", "yes", "on"}


def _read_int(value: Optional[str], default: int) -> int:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return default


@dataclass(frozen=True)
class Settings:
    mongo_uri: str
    access_token_secret: str
    refresh_token_secret: str
    access_token_ttl: timedelta = timedelta(hours=5)
    refresh_token_ttl: timedelta = timedelta(days=7)
    frontend_url: str = "http://localhost:5173"
    resend_api_key: str = ""
    mail_sender: str = "Blinkeyit <noreply@blinkeyit.com>"
    upload_folder: str = os.path.join(BACKEND_ROOT, "uploads")
    max_upload_mb: int = 16
    cors_origins: List[str] = field(default_factory=list)
    trusted_proxy_hops: int = 1
    reset_requires_otp: bool = False

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """Build settings from the process environment (after ``.env``).

        Raises ``ConfigurationError`` when a required key is missing so the
        process refuses to start instead of failing per request.
        """
        if environ is None:
            load_dotenv()
            environ = os.environ

        missing = [key for key in REQUIRED_KEYS if not (environ.get(key) or "").strip()]
        if missing:
            raise ConfigurationError(
                f"Missing required configuration: {', '.join(missing)}"
            )

        cors_origins = [
            origin.strip()
            for origin in (environ.get("CORS_ALLOWED_ORIGINS") or "").split(",")
            if origin.strip()
        ]

        return cls(
            mongo_uri=environ["MONGODB_URI"].strip(),
            access_token_secret=environ["SECRET_KEY_ACCESS_TOKEN"].strip(),
            refresh_token_secret=environ["SECRET_KEY_REFRESH_TOKEN"].strip(),
            access_token_ttl=parse_duration(environ.get("ACCESS_TOKEN_EXPIRE") or "5h"),
            refresh_token_ttl=parse_duration(environ.get("REFRESH_TOKEN_EXPIRE") or "7d"),
            frontend_url=(environ.get("FRONTEND_URL") or "http://localhost:5173").strip(),
            resend_api_key=(environ.get("RESEND_API_KEY") or "").strip(),
            mail_sender=(
                environ.get("MAIL_SENDER") or "Blinkeyit <noreply@blinkeyit.com>"
            ).strip(),
            upload_folder=(
                environ.get("UPLOAD_FOLDER") or os.path.join(BACKEND_ROOT, "uploads")
            ),
            max_upload_mb=_read_int(environ.get("MAX_UPLOAD_SIZE_MB"), 16),
            cors_origins=cors_origins,
            trusted_proxy_hops=max(0, _read_int(environ.get("TRUSTED_PROXY_HOPS"), 1)),
            reset_requires_otp=_read_bool(environ.get("RESET_PASSWORD_REQUIRES_OTP")),
        )
