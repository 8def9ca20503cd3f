"""Service configuration read once from ``APP__*`` environment variables."""
from __future__ import annotations

import os
import re
from dataclasses import dataclass
from datetime import timedelta
from typing import Mapping, Optional

_DURATION = re.compile(r"^(\d+)(ms|s|m|h|d)?$")
_UNITS = {
    None: timedelta(milliseconds=1),
    "ms": timedelta(milliseconds=1),
    "s": timedelta(seconds=1),
    "m": timedelta(minutes=1),
    "h": timedelta(hours=1),
    "d": timedelta(days=1),
}


def parse_duration(value: str) -> timedelta:
    """Parse ``"3600000"``, ``"500ms"``, ``"30s"``, ``"15m"``, ``"1h"`` or ``"7d"``."""
    match = _DURATION.match(value.strip())
    if not match:
        raise ValueError(f"Invalid duration: {value!r}")
    amount, unit = match.groups()
    duration = int(amount) * _UNITS[unit]
    if duration <= timedelta(0):
        raise ValueError(f"Duration must be positive: {value!r}")
    return duration


def _flag(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    service_name: str = "order-service"
    db_dsn: Optional[str] = None
    jwt_secret: str = "change_me"
    jwt_expires_in: timedelta = timedelta(hours=1)
    jwt_algorithm: str = "HS256"
    dev_auth_user: str = "dev"
    dev_auth_pass: str = "dev"
    cookie_secure: bool = False
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ
        return cls(
            service_name=env.get("APP__SERVICE_NAME", "order-service"),
            db_dsn=env.get("APP__DB_DSN") or None,
            jwt_secret=env.get("APP__JWT_SECRET", "change_me"),
            jwt_expires_in=parse_duration(env.get("APP__JWT_EXPIRES_IN", "1h")),
            jwt_algorithm=env.get("APP__JWT_ALGORITHM", "HS256"),
            dev_auth_user=env.get("APP__DEV_AUTH_USER", "dev"),
            dev_auth_pass=env.get("APP__DEV_AUTH_PASS", "dev"),
            cookie_secure=_flag(env.get("APP__COOKIE_SECURE", "false")),
            log_level=env.get("APP__LOG_LEVEL", "INFO").upper(),
        )
