from __future__ import annotations

import secrets
import threading
import time

from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from .errors import InvalidToken


NONCE_ACTION = "transient_cleaner_manual_cleanup"


class NonceManager:
    """Issues signed single-use tokens for the manual cleanup endpoint."""

    def __init__(self, secret_key: str, *, max_age_seconds: int = 86400, action: str = NONCE_ACTION):
        if not secret_key:
            raise ValueError("secret_key is required")
        self._serializer = URLSafeTimedSerializer(secret_key, salt=action)
        self._max_age_seconds = int(max_age_seconds)
        self._used: dict[str, float] = {}
        self._lock = threading.Lock()

    def issue(self) -> str:
        return self._serializer.dumps({"nonce": secrets.token_urlsafe(16)})

    def consume(self, token: str) -> None:
        if not token:
            raise InvalidToken("Security check failed. Please refresh the page and try again.")
        try:
            payload = self._serializer.loads(str(token), max_age=self._max_age_seconds)
        except SignatureExpired as exc:
            raise InvalidToken("Security token expired. Please refresh the page and try again.") from exc
        except BadSignature as exc:
            raise InvalidToken("Security check failed. Please refresh the page and try again.") from exc

        nonce = str(payload.get("nonce") or "") if isinstance(payload, dict) else ""
        if not nonce:
            raise InvalidToken("Security check failed. Please refresh the page and try again.")

        now = time.time()
        with self._lock:
            self._forget_expired(now)
            if nonce in self._used:
                raise InvalidToken("Security token already used. Please refresh the page and try again.")
            self._used[nonce] = now

    def _forget_expired(self, now: float) -> None:
        cutoff = now - self._max_age_seconds
        for nonce in [key for key, used_at in self._used.items() if used_at < cutoff]:
            del self._used[nonce]
