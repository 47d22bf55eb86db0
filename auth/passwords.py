"""
auth/passwords.py -- Credential hasher (bcrypt, direct usage, no passlib wrapper).

Using bcrypt directly rather than passlib[bcrypt] because passlib's internal
wrap-bug detection creates a password longer than 72 bytes, which bcrypt 4.x
rejects with an explicit error. Direct bcrypt usage has no compatibility shim.

Contract:
  hash()   -- raises HashingError only on an internal bcrypt failure. Input
              length is policed earlier by auth.validation (<= 72 bytes).
  verify() -- bcrypt.checkpw is constant-time; a mismatch or a malformed
              digest returns False and never raises.

decoy_digest is computed once per hasher at the configured cost. The service
verifies against it when an email does not resolve to a usable account, so
response time does not reveal whether the account exists.

Stateless beyond configuration; safe to share across threads.
"""

from __future__ import annotations

import bcrypt

from core.errors import HashingError

DEFAULT_ROUNDS = 12
_DECOY_PLAINTEXT = "authcore-timing-decoy"


class PasswordHasher:
    """bcrypt hashing with a configurable work factor."""

    def __init__(self, rounds: int = DEFAULT_ROUNDS) -> None:
        if not 4 <= rounds <= 31:
            raise ValueError("bcrypt rounds must be between 4 and 31")
        self.rounds = rounds
        self.decoy_digest = self.hash(_DECOY_PLAINTEXT)

    def hash(self, plaintext: str) -> str:
        try:
            return bcrypt.hashpw(plaintext.encode("utf-8"), bcrypt.gensalt(rounds=self.rounds)).decode("utf-8")
        except (ValueError, TypeError) as exc:
            raise HashingError() from exc

    def verify(self, plaintext: str, digest: str) -> bool:
        try:
            return bcrypt.checkpw(plaintext.encode("utf-8"), digest.encode("utf-8"))
        except (ValueError, TypeError):
            return False

    def verify_decoy(self, plaintext: str) -> None:
        """Burn one bcrypt verification. Result is discarded on purpose."""
        self.verify(plaintext, self.decoy_digest)
