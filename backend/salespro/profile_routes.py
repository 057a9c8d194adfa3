"""Profile endpoints used by the SalesPro mini-app front-end."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import BaseModel, Field, ValidationError

from .auth import LoginOutcome, Registration
from .errors import AuthError, InitDataError
from .host import HostIdentity, TelegramWebAppHost
from .leaderboard import Leaderboard
from .profile import ProfileRecord, UserDossier, complete_lesson
from .services import Services

router = APIRouter(prefix="/api/profile", tags=["profile"])
logger = logging.getLogger(__name__)

PRIVATE_FIELDS = {"local_password"}


def get_services(request: Request) -> Services:
    services: Optional[Services] = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="SalesPro services are not initialised.",
        )
    return services


class SessionRequest(BaseModel):
    init_data: Optional[str] = Field(default=None, description="Telegram WebApp initData query string.")
    candidate: Optional[Dict[str, Any]] = Field(default=None, description="Explicit profile to reconcile.")


class LoginRequest(BaseModel):
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class RegisterRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    username: str = Field(..., min_length=1, max_length=64)
    password: str = ""
    init_data: Optional[str] = None
    photo_base64: Optional[str] = None
    armor_style: str = "Classic Bronze"
    dossier: Optional[UserDossier] = None


class LessonCompletionRequest(BaseModel):
    xp_reward: int = Field(default=0, ge=0)


class SessionResponse(BaseModel):
    outcome: LoginOutcome
    profile: Optional[Dict[str, Any]] = None
    suggested_name: Optional[str] = None
    suggested_username: Optional[str] = None
    haptics: List[str] = Field(default_factory=list)


class LeaderboardEntryPayload(BaseModel):
    rank: Optional[int] = None
    name: str
    telegram_id: Optional[str] = None
    telegram_username: Optional[str] = None
    xp: int
    level: int
    role: str
    avatar_url: Optional[str] = None


class LeaderboardPayload(BaseModel):
    source: str
    approximate: bool
    entries: List[LeaderboardEntryPayload]


def _profile_payload(record: ProfileRecord) -> Dict[str, Any]:
    return record.model_dump(mode="json", exclude=PRIVATE_FIELDS)


def _verified_host(services: Services, init_data: str) -> TelegramWebAppHost:
    settings = services.settings
    try:
        return TelegramWebAppHost(
            init_data,
            settings.telegram_bot_token or "",
            max_age=settings.init_data_max_age_seconds,
        )
    except InitDataError as exc:
        services.diagnostics.warn("Rejected Telegram init data", str(exc))
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc


def _require_identity(host: TelegramWebAppHost) -> HostIdentity:
    identity = host.get_identity()
    if identity is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Telegram init data carries no user.",
        )
    return identity


def _require_session(services: Services) -> ProfileRecord:
    record = services.reconciliation.load_local()
    if not record.is_authenticated:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="No active session.")
    return record


def _auth_failure(exc: AuthError, *, login: bool) -> HTTPException:
    if exc.conflict:
        code = status.HTTP_409_CONFLICT
    elif login:
        code = status.HTTP_401_UNAUTHORIZED
    else:
        code = status.HTTP_422_UNPROCESSABLE_ENTITY
    return HTTPException(status_code=code, detail={"field": exc.field, "message": exc.message})


@router.get("/", status_code=status.HTTP_200_OK)
def get_current_profile(services: Services = Depends(get_services)) -> Dict[str, Any]:
    return _profile_payload(services.reconciliation.load_local())


@router.post("/session", response_model=SessionResponse, status_code=status.HTTP_200_OK)
async def start_session(payload: SessionRequest, services: Services = Depends(get_services)) -> SessionResponse:
    if payload.init_data:
        host = _verified_host(services, payload.init_data)
        login = await services.auth.login_with_host(_require_identity(host), host)
        return SessionResponse(
            outcome=login.outcome,
            profile=_profile_payload(login.record) if login.record else None,
            suggested_name=login.suggested_name,
            suggested_username=login.suggested_username,
            haptics=list(host.haptics),
        )

    if payload.candidate is not None:
        try:
            candidate = ProfileRecord.model_validate(payload.candidate)
        except ValidationError as exc:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail=exc.errors(include_url=False, include_context=False),
            ) from exc
    else:
        candidate = services.reconciliation.load_local()
        if not candidate.is_authenticated:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="No active session.")

    record = await services.auth.enter(candidate)
    return SessionResponse(outcome=LoginOutcome.LOGGED_IN, profile=_profile_payload(record))


@router.post("/login", status_code=status.HTTP_200_OK)
async def login(payload: LoginRequest, services: Services = Depends(get_services)) -> Dict[str, Any]:
    try:
        record = await services.auth.login_with_password(payload.username, payload.password)
    except AuthError as exc:
        raise _auth_failure(exc, login=True) from exc
    return _profile_payload(record)


@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(payload: RegisterRequest, services: Services = Depends(get_services)) -> Dict[str, Any]:
    telegram_id: Optional[str] = None
    if payload.init_data:
        telegram_id = _require_identity(_verified_host(services, payload.init_data)).id
    try:
        record = await services.auth.register(
            Registration(
                name=payload.name,
                username=payload.username,
                password=payload.password,
                telegram_id=telegram_id,
                photo_base64=payload.photo_base64,
                armor_style=payload.armor_style,
                dossier=payload.dossier,
            )
        )
    except AuthError as exc:
        raise _auth_failure(exc, login=False) from exc
    return _profile_payload(record)


@router.patch("/", status_code=status.HTTP_200_OK)
async def update_profile(changes: Dict[str, Any], services: Services = Depends(get_services)) -> Dict[str, Any]:
    record = _require_session(services)
    forbidden = sorted(set(changes) & {"is_authenticated", "telegram_id"})
    if forbidden:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Fields cannot be changed here: {', '.join(forbidden)}",
        )
    try:
        updated = services.reconciliation.update(record, changes)
    except ValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=exc.errors(include_url=False, include_context=False),
        ) from exc
    return _profile_payload(updated)


@router.post("/lessons/{lesson_id}/complete", status_code=status.HTTP_200_OK)
async def complete_lesson_route(
    lesson_id: str,
    payload: LessonCompletionRequest,
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    record = _require_session(services)
    updated = complete_lesson(record, lesson_id, payload.xp_reward)
    if updated is not record:
        services.reconciliation.save(updated)
    return _profile_payload(updated)


@router.post("/logout", status_code=status.HTTP_200_OK)
async def logout(services: Services = Depends(get_services)) -> Dict[str, Any]:
    return _profile_payload(services.reconciliation.logout())


def _leaderboard_payload(board: Leaderboard) -> LeaderboardPayload:
    entries = [
        LeaderboardEntryPayload(
            rank=None if board.approximate else index,
            name=record.name,
            telegram_id=record.telegram_id,
            telegram_username=record.telegram_username,
            xp=record.xp,
            level=record.level,
            role=record.role.value,
            avatar_url=record.avatar_url,
        )
        for index, record in enumerate(board.entries, start=1)
    ]
    return LeaderboardPayload(source=board.source, approximate=board.approximate, entries=entries)


@router.get("/leaderboard", response_model=LeaderboardPayload, status_code=status.HTTP_200_OK)
async def leaderboard(
    limit: Optional[int] = Query(default=None, ge=1, le=200),
    services: Services = Depends(get_services),
) -> LeaderboardPayload:
    return _leaderboard_payload(await services.leaderboard.get_top(limit))


__all__ = ["get_services", "router"]
