"""
tests/test_tokens.py -- Unit tests for auth.tokens and auth.store.

Covers:
  - bcrypt hashing and verification, including malformed hashes
  - token issuance carries subject, role and email
  - verify_access_token rejects expired, tampered, foreign-key, subject-less
    and unknown-role tokens with InvalidToken
  - authenticate_user: success, wrong password, unknown email, tombstoned user
  - UserStore lowercases emails and hides deactivated accounts
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from jose import jwt

from auth.models import Role, User
from auth.tokens import (
    authenticate_user,
    create_access_token,
    hash_password,
    verify_access_token,
    verify_password,
)
from core.config import get_settings
from core.errors import InvalidToken


class TestPasswords:
    def test_hash_and_verify(self):
        hashed = hash_password("s3cret-pass")
        assert hashed != "s3cret-pass"
        assert verify_password("s3cret-pass", hashed)
        assert not verify_password("wrong-pass", hashed)

    def test_malformed_hash_is_a_mismatch(self):
        assert verify_password("anything", "not-a-bcrypt-hash") is False


class TestTokens:
    def test_round_trip_claim(self):
        token = create_access_token("a" * 24, Role.viewer, email="v@example.com")
        claim = verify_access_token(token)
        assert claim.subject_id == "a" * 24
        assert claim.role is Role.viewer
        assert claim.email == "v@example.com"

    def test_role_accepts_plain_string(self):
        claim = verify_access_token(create_access_token("a" * 24, "collaborator"))
        assert claim.role is Role.collaborator

    def test_expired_token(self):
        token = create_access_token("a" * 24, Role.owner, expire_seconds=-1)
        with pytest.raises(InvalidToken):
            verify_access_token(token)

    def test_tampered_token(self):
        token = create_access_token("a" * 24, Role.viewer)
        header, payload, signature = token.split(".")
        forged = create_access_token("a" * 24, Role.owner).split(".")[1]
        with pytest.raises(InvalidToken):
            verify_access_token(".".join([header, forged, signature[::-1]]))

    def test_token_signed_with_another_key(self):
        payload = {"sub": "a" * 24, "role": "owner", "exp": datetime.now(timezone.utc) + timedelta(minutes=5)}
        token = jwt.encode(payload, "x" * 64, algorithm="HS256")
        with pytest.raises(InvalidToken):
            verify_access_token(token)

    def test_token_without_subject(self):
        payload = {"role": "owner", "exp": datetime.now(timezone.utc) + timedelta(minutes=5)}
        token = jwt.encode(payload, get_settings().secret_key, algorithm="HS256")
        with pytest.raises(InvalidToken):
            verify_access_token(token)

    def test_token_with_unknown_role(self):
        payload = {"sub": "a" * 24, "role": "admin", "exp": datetime.now(timezone.utc) + timedelta(minutes=5)}
        token = jwt.encode(payload, get_settings().secret_key, algorithm="HS256")
        with pytest.raises(InvalidToken):
            verify_access_token(token)


class TestAuthenticateUser:
    @pytest.fixture
    def alice(self, user_store):
        return user_store.create_user(
            User(
                email="Alice@Example.com",
                display_name="Alice",
                role=Role.owner,
                hashed_password=hash_password("alice-password"),
            )
        )

    def test_success(self, user_store, alice):
        user = authenticate_user(user_store, "alice@example.com", "alice-password")
        assert user is not None
        assert user.id == alice.id

    def test_email_lookup_is_case_insensitive(self, user_store, alice):
        assert authenticate_user(user_store, "ALICE@example.COM", "alice-password") is not None

    def test_wrong_password(self, user_store, alice):
        assert authenticate_user(user_store, "alice@example.com", "nope-nope") is None

    def test_unknown_email(self, user_store):
        assert authenticate_user(user_store, "nobody@example.com", "whatever1") is None

    def test_deactivated_user_cannot_log_in(self, user_store, alice):
        assert user_store.deactivate_user(alice.id) is True
        assert authenticate_user(user_store, "alice@example.com", "alice-password") is None
        assert user_store.get_by_id(alice.id) is None


class TestUserStore:
    def test_email_stored_lowercase(self, user_store):
        user = user_store.create_user(User(email="MiXeD@Example.com", display_name="M"))
        assert user.email == "mixed@example.com"
        assert user_store.get_by_id(user.id).email == "mixed@example.com"

    def test_default_role_is_collaborator(self, user_store):
        user = user_store.create_user(User(email="c@example.com", display_name="C"))
        assert user_store.get_by_id(user.id).role is Role.collaborator

    def test_claim_from_user(self, user_store):
        user = user_store.create_user(User(email="o@example.com", display_name="O", role=Role.owner))
        claim = user.claim()
        assert claim.subject_id == user.id
        assert claim.role is Role.owner

    def test_get_many_skips_unknown_and_deactivated(self, user_store):
        kept = user_store.create_user(User(email="k@example.com", display_name="K"))
        gone = user_store.create_user(User(email="g@example.com", display_name="G"))
        user_store.deactivate_user(gone.id)
        found = user_store.get_many([kept.id, gone.id, "0" * 24])
        assert list(found) == [kept.id]
        assert found[kept.id].display_name == "K"
        assert user_store.get_many([]) == {}

    def test_ping(self, user_store):
        assert user_store.ping() is True
