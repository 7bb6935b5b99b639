"""Tests for actor token issuing and verification."""

import jwt
import pytest

from adminlog.auth.tokens import (
    Actor,
    TokenExpiredError,
    TokenService,
    TokenValidationError,
    extract_bearer_token,
)
from adminlog.config.settings import AppSettings
from adminlog.tests.conftest import ADMIN, TEST_JWT_SECRET


class TestTokenService:

    def test_round_trip_preserves_identity(self, token_service):
        actor = token_service.verify(token_service.issue(ADMIN))
        assert actor == ADMIN

    def test_expired(self, token_service):
        token = token_service.issue(ADMIN, lifetime_minutes=-1)
        with pytest.raises(TokenExpiredError):
            token_service.verify(token)

    def test_wrong_secret(self, token_service):
        forged = TokenService("another-secret").issue(ADMIN)
        with pytest.raises(TokenValidationError):
            token_service.verify(forged)

    def test_missing_subject(self):
        token = jwt.encode({"iat": 0, "exp": 4102444800}, TEST_JWT_SECRET, algorithm="HS256")
        with pytest.raises(TokenValidationError):
            TokenService(TEST_JWT_SECRET).verify(token)

    def test_missing_token(self, token_service):
        with pytest.raises(TokenValidationError):
            token_service.verify(None)

    def test_role_defaults_to_user(self):
        token = jwt.encode({"sub": "u-1", "iat": 0, "exp": 4102444800}, TEST_JWT_SECRET, algorithm="HS256")
        assert TokenService(TEST_JWT_SECRET).verify(token).role == "user"

    def test_secret_required(self):
        with pytest.raises(ValueError):
            TokenService.from_settings(AppSettings(jwt_secret=None))


class TestHelpers:

    @pytest.mark.parametrize("header,expected", [
        ("Bearer abc", "abc"),
        ("bearer  abc ", "abc"),
        ("Basic abc", None),
        ("Bearer", None),
        (None, None),
    ])
    def test_extract_bearer_token(self, header, expected):
        assert extract_bearer_token(header) == expected

    def test_has_role_case_insensitive(self):
        assert Actor(id="a", role="Admin").has_role("admin") is True
        assert Actor(id="a", role="user").has_role("admin", "retailer") is False
