"""
Settings parsing and validation.
"""

from datetime import timedelta

import pytest
from pydantic import ValidationError

from app.core.config import Settings, parse_duration

SECRETS = {
    "jwt_access_secret": "access-secret-for-config-tests",
    "jwt_refresh_secret": "refresh-secret-for-config-tests",
}


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("15m", timedelta(minutes=15)),
        ("7d", timedelta(days=7)),
        ("2h", timedelta(hours=2)),
        ("1w", timedelta(weeks=1)),
        ("30s", timedelta(seconds=30)),
        ("3600", timedelta(hours=1)),
        (90, timedelta(seconds=90)),
        (" 10M ", timedelta(minutes=10)),
    ],
)
def test_parse_duration(raw, expected):
    assert parse_duration(raw) == expected


@pytest.mark.parametrize("raw", ["", "soon", "15 minutes", "-5m", "1.5h"])
def test_parse_duration_rejects_garbage(raw):
    with pytest.raises(ValueError):
        parse_duration(raw)


def test_expirations_accept_duration_strings():
    settings = Settings(**SECRETS, jwt_access_expiration="30m", jwt_refresh_expiration="14d")
    assert settings.jwt_access_expiration == timedelta(minutes=30)
    assert settings.jwt_refresh_expiration == timedelta(days=14)


def test_unparsable_expiration_fails_startup():
    with pytest.raises(ValidationError):
        Settings(**SECRETS, jwt_access_expiration="whenever")


def test_zero_expiration_rejected():
    with pytest.raises(ValidationError):
        Settings(**SECRETS, jwt_access_expiration="0")


def test_secrets_must_differ():
    with pytest.raises(ValidationError):
        Settings(jwt_access_secret="same-secret-value-123", jwt_refresh_secret="same-secret-value-123")


def test_short_secret_rejected():
    with pytest.raises(ValidationError):
        Settings(jwt_access_secret="short", jwt_refresh_secret="refresh-secret-for-config-tests")


def test_bcrypt_cost_floor():
    with pytest.raises(ValidationError):
        Settings(**SECRETS, bcrypt_rounds=8)


def test_settings_are_immutable():
    settings = Settings(**SECRETS)
    with pytest.raises(ValidationError):
        settings.jwt_algorithm = "HS512"


def test_production_flag():
    assert Settings(**SECRETS, node_env="production").is_production
    assert not Settings(**SECRETS, node_env="development").is_production


def test_frontend_base_url_strips_slash():
    settings = Settings(**SECRETS, frontend_url="https://meet.example.com/")
    assert settings.frontend_base_url == "https://meet.example.com"
