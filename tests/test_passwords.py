"""
tests/test_passwords.py -- PasswordHasher (bcrypt) behaviour.

Rounds are kept at the bcrypt minimum (4) so the suite stays fast; the work
factor itself is bcrypt's concern.
"""

from __future__ import annotations

import pytest

from auth.passwords import PasswordHasher
from core.errors import HashingError


@pytest.fixture(scope="module")
def hasher() -> PasswordHasher:
    return PasswordHasher(rounds=4)


def test_verify_accepts_matching_password(hasher) -> None:
    digest = hasher.hash("secure_password_@123P")
    assert hasher.verify("secure_password_@123P", digest) is True


def test_verify_rejects_wrong_password(hasher) -> None:
    digest = hasher.hash("secure_password_@123P")
    assert hasher.verify("wrong_password_@123", digest) is False


def test_verify_is_case_sensitive(hasher) -> None:
    digest = hasher.hash("MyPassword1")
    assert hasher.verify("mypassword1", digest) is False


def test_same_password_gets_different_salts(hasher) -> None:
    assert hasher.hash("Secret123!") != hasher.hash("Secret123!")


def test_digest_records_configured_cost(hasher) -> None:
    assert hasher.hash("Secret123!").startswith("$2b$04$")


@pytest.mark.parametrize("digest", ["", "not-a-bcrypt-hash", "$2b$04$short"])
def test_malformed_digest_is_false_not_an_error(hasher, digest) -> None:
    assert hasher.verify("Secret123!", digest) is False


def test_decoy_digest_never_matches_user_input(hasher) -> None:
    assert hasher.decoy_digest.startswith("$2b$04$")
    assert hasher.verify("Secret123!", hasher.decoy_digest) is False
    assert hasher.verify_decoy("Secret123!") is None


@pytest.mark.parametrize("rounds", [3, 32])
def test_rounds_out_of_range_rejected(rounds) -> None:
    with pytest.raises(ValueError):
        PasswordHasher(rounds=rounds)


def test_internal_failure_is_hashing_error(hasher, monkeypatch) -> None:
    import bcrypt

    def boom(*args, **kwargs):
        raise ValueError("internal")

    monkeypatch.setattr(bcrypt, "hashpw", boom)
    with pytest.raises(HashingError):
        hasher.hash("Secret123!")
