"""
Identity provider for LessonLoop.

Issues and verifies signed bearer tokens (HS256 JWTs via PyJWT). A verified
token yields a stable identity id, the email it was issued for, and a
verified flag; the web layer maps the identity id onto a User profile.
"""

import time
from dataclasses import dataclass

import jwt

from lessonloop.errors import Unauthorized

ALGORITHM = "HS256"


@dataclass(frozen=True)
class Identity:
    uid: str
    email: str
    verified: bool


class TokenIdentityProvider:
    """Signs and verifies bearer tokens with a shared secret."""

    def __init__(self, secret_key, ttl_seconds=86400, issuer="lessonloop"):
        if not secret_key:
            raise ValueError("A secret key is required to sign tokens")
        self.secret_key = secret_key
        self.ttl_seconds = int(ttl_seconds)
        self.issuer = issuer

    def issue_token(self, uid, email, verified=True, now=None):
        now = int(now if now is not None else time.time())
        payload = {
            "sub": uid,
            "email": email,
            "email_verified": bool(verified),
            "iss": self.issuer,
            "iat": now,
            "exp": now + self.ttl_seconds,
        }
        return jwt.encode(payload, self.secret_key, algorithm=ALGORITHM)

    def verify_token(self, token):
        """Verify a bearer token and return its Identity.

        Raises:
            Unauthorized: missing, malformed, tampered or expired token.
        """
        if not token:
            raise Unauthorized("No token, authorization denied")
        try:
            payload = jwt.decode(
                token,
                self.secret_key,
                algorithms=[ALGORITHM],
                issuer=self.issuer,
                options={"require": ["sub", "exp"]},
            )
        except jwt.PyJWTError as e:
            raise Unauthorized(f"Token is not valid or expired: {e}") from e
        return Identity(
            uid=payload["sub"],
            email=payload.get("email", ""),
            verified=bool(payload.get("email_verified", False)),
        )
