"""Host environment capabilities: who the user is and how to nudge them.

The mini-app runs inside Telegram, which hands the page a signed ``initData``
query string. ``TelegramWebAppHost`` validates that string against the bot
token before trusting any identity in it. ``NullHost`` stands in when there
is no host at all (offline runs, scripts, tests).
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol, Tuple
from urllib.parse import parse_qsl

from .errors import InitDataError

logger = logging.getLogger(__name__)

DEFAULT_INIT_DATA_MAX_AGE = 14400


@dataclass(frozen=True)
class HostIdentity:
    id: str
    display_name: str
    username: Optional[str] = None
    photo_url: Optional[str] = None


class HostEnvironment(Protocol):
    def get_identity(self) -> Optional[HostIdentity]:
        ...

    def haptic(self, kind: str) -> None:
        ...

    def alert(self, title: str, message: str) -> None:
        ...


class NullHost:
    """Host with no identity; haptics and alerts are recorded for inspection."""

    def __init__(self, identity: Optional[HostIdentity] = None) -> None:
        self._identity = identity
        self.haptics: List[str] = []
        self.alerts: List[Tuple[str, str]] = []

    def get_identity(self) -> Optional[HostIdentity]:
        return self._identity

    def haptic(self, kind: str) -> None:
        self.haptics.append(kind)

    def alert(self, title: str, message: str) -> None:
        self.alerts.append((title, message))
        logger.info("Host alert: %s - %s", title, message)


def sign_init_data(fields: Dict[str, str], bot_token: str) -> str:
    """Return the ``hash`` Telegram would attach to ``fields``."""
    data_check_string = "\n".join(f"{key}={value}" for key, value in sorted(fields.items()))
    secret_key = hmac.new(b"WebAppData", bot_token.encode(), hashlib.sha256).digest()
    return hmac.new(secret_key, data_check_string.encode(), hashlib.sha256).hexdigest()


def validate_init_data(
    init_data: str,
    bot_token: str,
    *,
    max_age: int = DEFAULT_INIT_DATA_MAX_AGE,
    now: Optional[float] = None,
) -> Dict[str, str]:
    """Check the HMAC signature and freshness of ``init_data``.

    Returns the decoded fields without ``hash``. Raises ``InitDataError``
    when anything is missing, forged or stale.
    """
    if not init_data:
        raise InitDataError("Telegram init data is empty.")
    if not bot_token:
        raise InitDataError("Telegram bot token is not configured.")

    fields = dict(parse_qsl(init_data, keep_blank_values=True))
    received_hash = fields.pop("hash", "")
    if not received_hash:
        raise InitDataError("Telegram init data carries no hash.")
    if not hmac.compare_digest(sign_init_data(fields, bot_token), received_hash):
        raise InitDataError("Telegram init data signature mismatch.")

    try:
        auth_date = int(fields.get("auth_date", "0"))
    except ValueError as exc:
        raise InitDataError("Telegram init data has an invalid auth_date.") from exc
    reference = time.time() if now is None else now
    if max_age > 0 and reference - auth_date > max_age:
        raise InitDataError("Telegram init data has expired.")
    return fields


def identity_from_fields(fields: Dict[str, str]) -> Optional[HostIdentity]:
    raw_user = fields.get("user")
    if not raw_user:
        return None
    try:
        user: Dict[str, Any] = json.loads(raw_user)
    except ValueError as exc:
        raise InitDataError("Telegram init data user payload is not valid JSON.") from exc
    if not isinstance(user, dict) or user.get("id") is None:
        raise InitDataError("Telegram init data user payload has no id.")

    display_name = " ".join(
        part for part in (user.get("first_name") or "", user.get("last_name") or "") if part
    ).strip()
    return HostIdentity(
        id=str(user["id"]),
        display_name=display_name,
        username=user.get("username") or None,
        photo_url=user.get("photo_url") or None,
    )


class TelegramWebAppHost:
    """Host backed by a validated Telegram WebApp ``initData`` string.

    Validation happens in the constructor, so holding an instance means the
    identity has been verified. Haptics and alerts are rendered by the
    client; the server records them so a response can carry them back.
    """

    def __init__(
        self,
        init_data: str,
        bot_token: str,
        *,
        max_age: int = DEFAULT_INIT_DATA_MAX_AGE,
        now: Optional[float] = None,
    ) -> None:
        fields = validate_init_data(init_data, bot_token, max_age=max_age, now=now)
        self._identity = identity_from_fields(fields)
        self.haptics: List[str] = []
        self.alerts: List[Tuple[str, str]] = []

    def get_identity(self) -> Optional[HostIdentity]:
        return self._identity

    def haptic(self, kind: str) -> None:
        self.haptics.append(kind)

    def alert(self, title: str, message: str) -> None:
        self.alerts.append((title, message))


__all__ = [
    "DEFAULT_INIT_DATA_MAX_AGE",
    "HostEnvironment",
    "HostIdentity",
    "NullHost",
    "TelegramWebAppHost",
    "identity_from_fields",
    "sign_init_data",
    "validate_init_data",
]
