"""Login and registration flows that feed the reconciliation service."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from pydantic import ValidationError

from .diagnostics import DiagnosticLog
from .errors import AuthError
from .host import HostEnvironment, HostIdentity, NullHost
from .oracle import AIOracle
from .profile import ProfileRecord, UserDossier, apply_update, new_profile
from .reconciliation import ReconciliationService
from .remote_store import RemoteProfileStore, RemoteStatus

logger = logging.getLogger(__name__)

DEFAULT_ARMOR_STYLE = "Classic Bronze"
INVITE_LINK_TEMPLATE = "https://t.me/SalesProBot?start=ref_{username}"
TELEGRAM_PASSWORD_PLACEHOLDER = "tg_auth"
MIN_PASSWORD_LENGTH = 4


class LoginOutcome(str, Enum):
    LOGGED_IN = "logged_in"
    NEEDS_REGISTRATION = "needs_registration"


@dataclass
class HostLogin:
    outcome: LoginOutcome
    record: Optional[ProfileRecord] = None
    suggested_name: Optional[str] = None
    suggested_username: Optional[str] = None


@dataclass
class Registration:
    name: str
    username: str
    password: str = ""
    telegram_id: Optional[str] = None
    photo_base64: Optional[str] = None
    armor_style: str = DEFAULT_ARMOR_STYLE
    dossier: Optional[UserDossier] = None


def clean_username(username: str) -> str:
    return username.strip().replace("@", "")


class AuthService:
    def __init__(
        self,
        reconciliation: ReconciliationService,
        remote: RemoteProfileStore,
        diagnostics: DiagnosticLog,
        *,
        oracle: Optional[AIOracle] = None,
    ) -> None:
        self._reconciliation = reconciliation
        self._remote = remote
        self._diagnostics = diagnostics
        self._oracle = oracle

    def _find_cached(self, *, telegram_id: Optional[str] = None, username: Optional[str] = None) -> Optional[ProfileRecord]:
        users = self._reconciliation.cached_users()
        if telegram_id:
            for user in users:
                if user.telegram_id == telegram_id:
                    return user
        if username:
            wanted = username.lower()
            for user in users:
                if user.telegram_username and user.telegram_username.lower() == wanted:
                    return user
        return None

    async def enter(self, candidate: ProfileRecord) -> ProfileRecord:
        """Reconcile ``candidate`` as a signed-in user and persist the result."""
        record = await self._reconciliation.reconcile(apply_update(candidate, {"is_authenticated": True}))
        return self._reconciliation.save(record)

    async def login_with_host(self, identity: HostIdentity, host: Optional[HostEnvironment] = None) -> HostLogin:
        """Sign in the user the host vouches for, or ask for registration.

        Known users are looked up in the local cache by Telegram id, then by
        username, and only then remotely. A remote probe reads the row
        without creating one.
        """
        target = host or NullHost()
        user = self._find_cached(telegram_id=identity.id, username=identity.username)
        if user is None and self._remote.is_configured:
            probe = await self._remote.fetch_by_telegram_id(identity.id)
            if probe.status is RemoteStatus.FOUND and probe.profile is not None and probe.profile.name:
                try:
                    user = probe.profile.to_record()
                except ValidationError as exc:
                    self._diagnostics.error(
                        "Backend: remote profile failed validation during login",
                        {"telegram_id": identity.id, "error": str(exc)},
                    )

        if user is None:
            target.haptic("light")
            return HostLogin(
                LoginOutcome.NEEDS_REGISTRATION,
                suggested_name=identity.display_name,
                suggested_username=identity.username or f"user_{identity.id}",
            )

        target.haptic("success")
        record = await self.enter(apply_update(user, {"telegram_id": identity.id}))
        return HostLogin(LoginOutcome.LOGGED_IN, record=record)

    async def login_with_password(self, username: str, password: str) -> ProfileRecord:
        name = clean_username(username)
        secret = password.strip()
        if not name:
            raise AuthError("username", "Username is required.")
        if not secret:
            raise AuthError("password", "Password is required.")

        user = self._find_cached(username=name)
        if user is None:
            raise AuthError("username", "User not found.")
        if user.local_password and user.local_password != secret:
            raise AuthError("password", "Wrong password.")
        return await self.enter(user)

    async def register(self, request: Registration) -> ProfileRecord:
        username = clean_username(request.username)
        if not username:
            raise AuthError("username", "Username is required.")
        if not request.name.strip():
            raise AuthError("name", "Name is required.")
        if self._find_cached(username=username) is not None:
            raise AuthError("username", "User already exists.", conflict=True)

        password = request.password.strip()
        if not password and request.telegram_id:
            password = TELEGRAM_PASSWORD_PLACEHOLDER
        if len(password) < MIN_PASSWORD_LENGTH:
            raise AuthError("password", f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")

        avatar_url = await self._render_avatar(request.photo_base64, request.armor_style)
        record = new_profile(
            request.name,
            telegram_id=request.telegram_id,
            telegram_username=username,
            local_password=password,
            dossier=request.dossier,
            avatar_url=avatar_url,
            original_photo_base64=request.photo_base64,
            armor_style=request.armor_style,
        )
        record = apply_update(record, {"invite_link": INVITE_LINK_TEMPLATE.format(username=username)})
        logger.info("Registering %s", username)
        return await self.enter(record)

    async def _render_avatar(self, photo_base64: Optional[str], style: str) -> Optional[str]:
        if self._oracle is None or not photo_base64:
            return None
        try:
            return await self._oracle.generate_avatar(photo_base64, style)
        except Exception as exc:  # noqa: BLE001
            self._diagnostics.warn("Avatar generation failed; registering without one", str(exc))
            return None


__all__ = [
    "AuthService",
    "HostLogin",
    "LoginOutcome",
    "Registration",
    "clean_username",
]
