"""
Identity Tests
==============

Password hashing, token types, magic-link sign-in, onboarding and admin
role management.
"""

import pytest

from talhub import profiles as profile_service
from talhub.auth import (
    AuthService, create_access_token, create_refresh_token, create_magic_link_token,
    decode_token, get_password_hash, normalize_email, verify_password,
)
from talhub.db.models import Profile, UserRole
from talhub.errors import AuthenticationError, PermissionDeniedError, ValidationError


class TestPasswords:

    def test_hash_and_verify(self):
        hashed = get_password_hash("correct horse")
        assert verify_password("correct horse", hashed)
        assert not verify_password("wrong horse", hashed)

    def test_password_over_72_bytes(self):
        with pytest.raises(ValidationError):
            get_password_hash("é" * 37)
        assert not verify_password("x" * 73, get_password_hash("x" * 72))


class TestTokens:

    def test_token_types_are_not_interchangeable(self):
        refresh = create_refresh_token({"sub": "user-1"})
        access = create_access_token({"sub": "user-1"})

        assert decode_token(refresh, expected_type="access") is None
        assert decode_token(access, expected_type="access")["sub"] == "user-1"
        assert decode_token("not-a-jwt") is None

    def test_normalize_email(self):
        assert normalize_email("  Someone@Example.COM ") == "someone@example.com"
        with pytest.raises(ValidationError):
            normalize_email("someone@")


class TestAuthService:

    def test_register_and_login(self, db):
        service = AuthService(db)
        auth = service.register("New@Example.com", "secret-pass", "New Person")

        assert auth.email == "new@example.com"
        assert auth.role == UserRole.TENANT
        assert service.authenticate_user("new@example.com", "secret-pass").user_id == auth.user_id
        assert service.authenticate_user("new@example.com", "nope") is None

        with pytest.raises(ValidationError):
            service.register("new@example.com", "another-pass")

    def test_magic_link_creates_profile_once(self, db):
        service = AuthService(db)

        first = service.redeem_magic_link(create_magic_link_token("fresh@example.com"))
        second = service.redeem_magic_link(create_magic_link_token("fresh@example.com"))

        assert first.user_id == second.user_id
        assert db.query(Profile).filter(Profile.email == "fresh@example.com").count() == 1

    def test_magic_link_cannot_be_replayed(self, db):
        service = AuthService(db)
        token = create_magic_link_token("fresh@example.com")

        service.redeem_magic_link(token)
        with pytest.raises(AuthenticationError):
            service.redeem_magic_link(token)

    def test_magic_link_rejects_other_token_types(self, db):
        with pytest.raises(AuthenticationError):
            AuthService(db).redeem_magic_link(create_access_token({"sub": "x", "email": "x@example.com"}))

    def test_refresh_issues_new_pair(self, db, make_user):
        user = make_user("user@example.com")
        pair = AuthService(db).refresh(create_refresh_token({"sub": user.user_id}))

        assert decode_token(pair["access_token"], expected_type="access")["sub"] == user.user_id
        with pytest.raises(AuthenticationError):
            AuthService(db).refresh(pair["access_token"])


class TestProfiles:

    def test_onboarding_requires_all_fields(self, db):
        auth = AuthService(db).redeem_magic_link(create_magic_link_token("new@example.com"))
        assert not profile_service.profile_is_complete(profile_service.get_profile(db, auth.user_id))

        with pytest.raises(ValidationError):
            profile_service.complete_onboarding(db, auth, "Ann", "", "landlord")
        with pytest.raises(ValidationError):
            profile_service.complete_onboarding(db, auth, "Ann", "555", "admin")

        profile = profile_service.complete_onboarding(db, auth, "Ann", "555", "landlord")
        assert profile.role == UserRole.LANDLORD
        assert profile_service.profile_to_dict(profile)["is_complete"] is True

    def test_only_admin_changes_roles(self, db, make_user):
        admin = make_user("admin@example.com", UserRole.ADMIN)
        user = make_user("user@example.com", UserRole.TENANT)

        with pytest.raises(PermissionDeniedError):
            profile_service.admin_update_profile(db, user, user.user_id, {"role": "admin"})

        updated = profile_service.admin_update_profile(db, admin, user.user_id, {"role": "lawyer"})
        assert updated.role == UserRole.LAWYER
