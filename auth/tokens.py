"""
auth/tokens.py -- Access-token signing and refresh-secret utilities.

Security design decisions:
  JWT: python-jose with HS256. Tokens carry sub (user id), iss, aud, iat and
       exp, signed with SECRET_KEY. verify() raises one of three distinct
       TokenError subclasses so the transport can tell "expired, go refresh"
       from "forged or garbage, reject":
         TokenExpired          genuine token past exp
         TokenInvalidSignature signature mismatch or unexpected algorithm
         TokenMalformedClaims  not a JWT, missing claims, wrong iss/aud
       The header algorithm is pinned before verification, so "alg": "none"
       and algorithm-confusion tokens are rejected as invalid signatures.

  Refresh secrets: secrets.token_urlsafe(32) gives 256 bits of entropy. We
       store HMAC-SHA256(SECRET_KEY, raw) so lookup is O(1) through the
       UNIQUE index on refresh_tokens.token_hash. bcrypt's intentional
       slowness is unnecessary for high-entropy secrets, and a salted hash
       could not be looked up at all.

  SECRET_KEY: must be at least 32 characters. TokenSigner refuses to be
       constructed otherwise -- fail closed, never fall back to a default.

Layer rule: imports core/ and auth.models only.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import math
import secrets
from datetime import datetime, timedelta, timezone

from jose import jws, jwt
from jose.exceptions import JWSError, JWTClaimsError, JWTError

from auth.models import AccessClaims
from core.config import MIN_SECRET_LENGTH
from core.errors import ConfigurationError, TokenExpired, TokenInvalidSignature, TokenMalformedClaims

logger = logging.getLogger("authcore.auth")

_ALGORITHM = "HS256"
_BEARER_PREFIX = "bearer "


def _require_secret(secret: str | None) -> str:
    if not secret:
        raise ConfigurationError("Signing secret is not configured.")
    if len(secret) < MIN_SECRET_LENGTH:
        raise ConfigurationError(f"Signing secret must be at least {MIN_SECRET_LENGTH} characters.")
    return secret


# ---------------------------------------------------------------------------
# Access tokens
# ---------------------------------------------------------------------------


class TokenSigner:
    """Stateless HS256 signer/verifier bound to one process secret.

    Usage:
        signer = TokenSigner(settings.secret_key, issuer="authcore", audience="authcore-clients")
        token = signer.issue(user.id, timedelta(minutes=15))
        claims = signer.verify(token)
    """

    def __init__(self, secret: str, issuer: str, audience: str, algorithm: str = _ALGORITHM) -> None:
        self._secret = _require_secret(secret)
        self.issuer = issuer
        self.audience = audience
        self.algorithm = algorithm

    def issue(self, subject: str, ttl: timedelta | int | float) -> str:
        """Encode and sign claims for ``subject``.

        ttl may be a timedelta or a number of seconds. JWT times are whole
        seconds, so a positive ttl rounds exp up (a sub-second ttl still
        yields a token that verifies) and a non-positive ttl rounds it down,
        producing a token that is already expired (useful for tests).
        """
        if not isinstance(ttl, timedelta):
            ttl = timedelta(seconds=ttl)
        now = datetime.now(timezone.utc)
        expires = (now + ttl).timestamp()
        payload = {
            "sub": subject,
            "iss": self.issuer,
            "aud": self.audience,
            "iat": int(now.timestamp()),
            "exp": math.ceil(expires) if ttl > timedelta(0) else math.floor(expires),
        }
        return jwt.encode(payload, self._secret, algorithm=self.algorithm)

    def verify(self, token: str) -> AccessClaims:
        """Verify signature and claims. Raises a TokenError subclass on any failure."""
        if not isinstance(token, str) or not token:
            raise TokenMalformedClaims()

        # 1. Structure: three segments, JSON header, JSON object payload.
        try:
            header = jwt.get_unverified_header(token)
            jwt.get_unverified_claims(token)
        except (JWTError, JWSError) as exc:
            raise TokenMalformedClaims() from exc

        # 2. Pin the algorithm before trusting anything the header says.
        if header.get("alg") != self.algorithm:
            logger.debug("Rejected token signed with unexpected alg %r", header.get("alg"))
            raise TokenInvalidSignature()

        # 3. Signature.
        try:
            jws.verify(token, self._secret, algorithms=[self.algorithm])
        except JWSError as exc:
            raise TokenInvalidSignature() from exc

        # 4. Claims: iss, aud and the presence of every required claim. jose
        # checks exp before aud/iss, so expiry is left to step 5; a token
        # minted for another audience or issuer is malformed even once expired.
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self.algorithm],
                audience=self.audience,
                issuer=self.issuer,
                options={
                    "verify_exp": False,
                    "require_sub": True,
                    "require_iat": True,
                    "require_exp": True,
                    "require_iss": True,
                    "require_aud": True,
                },
            )
        except (JWTClaimsError, JWTError) as exc:
            raise TokenMalformedClaims() from exc

        sub = payload.get("sub")
        exp = payload.get("exp")
        if not isinstance(sub, str) or not sub:
            raise TokenMalformedClaims()
        if isinstance(exp, bool) or not isinstance(exp, (int, float)):
            raise TokenMalformedClaims()

        # 5. Expiry. exp is the first instant the token is no longer accepted.
        if exp <= datetime.now(timezone.utc).timestamp():
            raise TokenExpired()

        return AccessClaims(
            sub=sub,
            iss=payload["iss"],
            # A list-valued aud has already been checked to contain ours.
            aud=self.audience,
            iat=int(payload["iat"]),
            exp=int(exp),
        )


def bearer_token(authorization: str | None) -> str:
    """Extract the token from an ``Authorization: Bearer <token>`` header value.

    The scheme comparison is case-insensitive (RFC 7235). Raises
    TokenMalformedClaims when the header is absent, uses another scheme, or
    carries no token.
    """
    if not authorization or authorization[: len(_BEARER_PREFIX)].lower() != _BEARER_PREFIX:
        raise TokenMalformedClaims("Missing bearer token.")
    token = authorization[len(_BEARER_PREFIX) :].strip()
    if not token:
        raise TokenMalformedClaims("Missing bearer token.")
    return token


# ---------------------------------------------------------------------------
# Refresh secrets
# ---------------------------------------------------------------------------


def generate_refresh_secret() -> str:
    """Return a new raw refresh secret (43 URL-safe chars, 256 bits)."""
    return secrets.token_urlsafe(32)


class RefreshTokenHasher:
    """Deterministic keyed digest for refresh secrets.

    Using SECRET_KEY as the HMAC key means an attacker who dumps the
    refresh_tokens table cannot replay or brute-force stored digests without
    also knowing SECRET_KEY.
    """

    def __init__(self, secret: str) -> None:
        self._key = _require_secret(secret).encode("utf-8")

    def digest(self, raw_secret: str) -> str:
        return hmac.new(self._key, raw_secret.encode("utf-8"), hashlib.sha256).hexdigest()
