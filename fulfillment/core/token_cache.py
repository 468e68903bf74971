import threading
import time
from typing import Callable, Optional, Tuple

# fetch() returns (access_token, expires_in_seconds)
TokenFetcher = Callable[[], Tuple[str, float]]


class TokenCache:
    """Caches one bearer token until shortly before it expires.

    The cache is an ordinary object owned by whoever builds the client, so each
    app instance (and each test) controls its own lifetime and clock.
    """

    def __init__(self, fetch: TokenFetcher, clock: Callable[[], float] = time.monotonic, leeway: float = 60.0):
        self._fetch = fetch
        self._clock = clock
        self._leeway = leeway
        self._token: Optional[str] = None
        self._expires_at = 0.0
        self._lock = threading.Lock()

    @property
    def expired(self) -> bool:
        return self._token is None or self._clock() >= self._expires_at

    def get(self) -> str:
        with self._lock:
            if self.expired:
                token, expires_in = self._fetch()
                self._token = token
                self._expires_at = self._clock() + max(float(expires_in) - self._leeway, 0.0)
            return self._token

    def invalidate(self) -> None:
        with self._lock:
            self._token = None
            self._expires_at = 0.0
