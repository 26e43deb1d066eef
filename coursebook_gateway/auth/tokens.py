"""
Token service — HS256 JWTs carrying {sub, username, iat, exp, iss}.

Verification is a pure function of the secret, the token and the service
clock: signature, expiry, issuer and maximum age are all checked before a
subject is returned.
There is no server-side session table.
"""

from __future__ import annotations

import time
from datetime import timedelta
from typing import Any, Callable

from jose import jwt
from jose.exceptions import JWTClaimsError, JWTError

from coursebook_gateway.core.exceptions import AuthError, AuthFailure

ALGORITHM = "HS256"
BEARER_PREFIX = "bearer "


class TokenService:
    """Issue and verify signed, time-bounded identity tokens."""

    def __init__(
        self,
        secret: str,
        issuer: str,
        validity: timedelta = timedelta(hours=48),
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if not secret:
            raise ValueError("token secret must be non-empty")
        self._secret = secret
        self._issuer = issuer
        self._validity_sec = int(validity.total_seconds())
        self._clock = clock

    @property
    def issuer(self) -> str:
        return self._issuer

    def issue(self, subject: str) -> str:
        """Sign a token for subject, valid for the configured window from now."""
        issued_at = int(self._clock())
        claims = {
            "sub": subject,
            "username": subject,
            "iat": issued_at,
            "exp": issued_at + self._validity_sec,
            "iss": self._issuer,
        }
        return jwt.encode(claims, self._secret, algorithm=ALGORITHM)

    def verify(self, token: str | None) -> str:
        """
        Return the subject embedded in token.

        Raises AuthError(MALFORMED_TOKEN | INVALID_SIGNATURE | EXPIRED |
        ISSUER_MISMATCH). Accepts an optional "Bearer " prefix.
        """
        token = _strip_bearer(token)
        if not token:
            raise AuthError(AuthFailure.MALFORMED_TOKEN, "jwt must be provided")
        try:
            unverified = jwt.get_unverified_claims(token)
        except JWTError as e:
            raise AuthError(AuthFailure.MALFORMED_TOKEN, "jwt malformed") from e
        if not _has_required_shape(unverified):
            raise AuthError(AuthFailure.MALFORMED_TOKEN, "jwt malformed")

        try:
            claims = jwt.decode(
                token,
                self._secret,
                algorithms=[ALGORITHM],
                issuer=self._issuer,
                options={
                    "verify_exp": False,
                    "require_exp": True,
                    "require_iat": True,
                    "require_iss": True,
                },
            )
        except JWTClaimsError as e:
            if "issuer" in str(e).lower():
                raise AuthError(AuthFailure.ISSUER_MISMATCH, f"jwt issuer invalid. expected: {self._issuer}") from e
            raise AuthError(AuthFailure.MALFORMED_TOKEN, "jwt malformed") from e
        except JWTError as e:
            raise AuthError(AuthFailure.INVALID_SIGNATURE, "invalid signature") from e

        # exp and maxAge are both judged by the service clock
        now = int(self._clock())
        if int(claims["exp"]) < now:
            raise AuthError(AuthFailure.EXPIRED, "jwt expired")
        if now - int(claims["iat"]) > self._validity_sec:
            raise AuthError(AuthFailure.EXPIRED, "maxAge exceeded")
        return str(claims["sub"])


def _strip_bearer(token: str | None) -> str:
    token = (token or "").strip()
    if token.lower().startswith(BEARER_PREFIX):
        token = token[len(BEARER_PREFIX):].strip()
    return token


def _has_required_shape(claims: Any) -> bool:
    if not isinstance(claims, dict):
        return False
    subject = claims.get("sub")
    if not isinstance(subject, str) or not subject:
        return False
    return isinstance(claims.get("iat"), int) and isinstance(claims.get("exp"), int)
