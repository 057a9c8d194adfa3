from __future__ import annotations

import json
import time
from urllib.parse import urlencode

import pytest

from salespro.errors import InitDataError
from salespro.host import TelegramWebAppHost, sign_init_data, validate_init_data

BOT_TOKEN = "123456:TEST-TOKEN"


def build_init_data(user: dict | None = None, *, auth_date: int | None = None, token: str = BOT_TOKEN) -> str:
    fields = {
        "auth_date": str(auth_date if auth_date is not None else int(time.time())),
        "query_id": "AAHdF6IQAAAAAN0XohDhrOrc",
    }
    if user is not None:
        fields["user"] = json.dumps(user, separators=(",", ":"))
    fields["hash"] = sign_init_data(fields, token)
    return urlencode(fields)


def test_valid_init_data_yields_identity() -> None:
    init_data = build_init_data({"id": 42, "first_name": "Ivan", "last_name": "Petrov", "username": "ivanp"})

    host = TelegramWebAppHost(init_data, BOT_TOKEN)
    identity = host.get_identity()

    assert identity is not None
    assert identity.id == "42"
    assert identity.display_name == "Ivan Petrov"
    assert identity.username == "ivanp"


def test_tampered_init_data_is_rejected() -> None:
    init_data = build_init_data({"id": 42, "first_name": "Ivan"})
    tampered = init_data.replace("Ivan", "Eve")

    with pytest.raises(InitDataError):
        validate_init_data(tampered, BOT_TOKEN)


def test_init_data_signed_with_other_token_is_rejected() -> None:
    with pytest.raises(InitDataError):
        validate_init_data(build_init_data({"id": 1}, token="999:OTHER"), BOT_TOKEN)


def test_stale_init_data_is_rejected() -> None:
    issued = 1_700_000_000
    init_data = build_init_data({"id": 1}, auth_date=issued)

    assert validate_init_data(init_data, BOT_TOKEN, max_age=60, now=issued + 30)["auth_date"] == str(issued)
    with pytest.raises(InitDataError):
        validate_init_data(init_data, BOT_TOKEN, max_age=60, now=issued + 61)


def test_missing_hash_or_token_is_rejected() -> None:
    with pytest.raises(InitDataError):
        validate_init_data("auth_date=1&user=%7B%7D", BOT_TOKEN)
    with pytest.raises(InitDataError):
        validate_init_data(build_init_data({"id": 1}), "")


def test_init_data_without_user_has_no_identity() -> None:
    host = TelegramWebAppHost(build_init_data(None), BOT_TOKEN)
    assert host.get_identity() is None
