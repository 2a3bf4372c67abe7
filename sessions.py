# sessions.py
"""Stateless, signed session credentials.

A credential is an itsdangerous-signed payload holding the user id and an
absolute expiry. Nothing is stored server-side, so logging out only hands
the client a credential that is already expired.
"""

import time
from typing import Callable, Optional

from itsdangerous import BadSignature, URLSafeSerializer

from errors import ExpiredCredentialError, InvalidCredentialError

DEFAULT_TTL = 30 * 24 * 3600


class SessionIssuer:
    salt = "movie-reviews.session"

    def __init__(self, secret_key: str, ttl: int = DEFAULT_TTL,
                 clock: Callable[[], float] = time.time):
        if not secret_key:
            raise ValueError("secret_key must not be empty")
        self._serializer = URLSafeSerializer(secret_key, salt=self.salt)
        self.ttl = ttl
        self._clock = clock

    def issue(self, user_id: int) -> str:
        return self._serializer.dumps({"uid": user_id, "exp": int(self._clock()) + self.ttl})

    def verify(self, credential: Optional[str]) -> int:
        """Return the user id carried by ``credential``.

        Raises InvalidCredentialError for anything that was not produced by
        this issuer (bad signature, tampered or malformed payload) and
        ExpiredCredentialError once the expiry has passed.
        """
        if not credential:
            raise InvalidCredentialError("Invalid credential")
        try:
            payload = self._serializer.loads(credential)
        except BadSignature:
            raise InvalidCredentialError("Invalid credential") from None

        exp = payload.get("exp") if isinstance(payload, dict) else None
        if not isinstance(exp, (int, float)) or isinstance(exp, bool):
            raise InvalidCredentialError("Invalid credential")
        if exp <= self._clock():
            raise ExpiredCredentialError("Credential expired")

        user_id = payload.get("uid")
        if not isinstance(user_id, int) or isinstance(user_id, bool):
            raise InvalidCredentialError("Invalid credential")
        return user_id

    def revoke(self) -> str:
        """Sentinel credential that is expired from the moment it is issued."""
        return self._serializer.dumps({"uid": None, "exp": 0})
