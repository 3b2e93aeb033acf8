"""
Fetch gate: the process-wide bound on concurrent outbound requests.

Every source adapter receives the same FetchGate instance and performs
its network calls while holding a permit. A slow source holding permits
starves other callers; that backpressure is intended.
"""

import itertools
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, Iterator, Optional

import requests
from requests.adapters import HTTPAdapter

from ..config import FetchConfig, default_max_concurrent_requests
from ..utils.exceptions import FetchError, TransientFetchError
from ..utils.logging import get_logger


DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
)


@dataclass(frozen=True)
class FetchPermit:
    """Capacity token held for the duration of one outbound call."""
    permit_id: int


class FetchGate:
    """
    Bounded semaphore plus the shared HTTP session.

    ``acquire()`` blocks until a slot frees up; ``permit()`` is the scoped
    form and releases on any exit, including exceptions.
    """

    def __init__(
        self,
        max_concurrent_requests: Optional[int] = None,
        session: Optional[requests.Session] = None,
        connect_timeout: float = 10.0,
        read_timeout: float = 60.0,
        pool_maxsize: int = 10
    ) -> None:
        self.logger = get_logger(__name__)
        if max_concurrent_requests is None:
            max_concurrent_requests = default_max_concurrent_requests()
        self.capacity = max_concurrent_requests
        if self.capacity < 1:
            raise ValueError(f"max_concurrent_requests must be positive, got {self.capacity}")

        self.timeout = (connect_timeout, read_timeout)
        self.session = session or self._build_session(pool_maxsize)

        self._semaphore = threading.BoundedSemaphore(self.capacity)
        self._lock = threading.Lock()
        self._counter = itertools.count(1)
        self._outstanding = 0
        self._peak_outstanding = 0

        self.logger.debug(f"Fetch gate initialized with {self.capacity} permits")

    @classmethod
    def from_config(cls, fetch_config: FetchConfig, max_concurrent_requests: Optional[int] = None) -> "FetchGate":
        """Build a gate from configuration; an explicit cap overrides the configured one."""
        return cls(
            max_concurrent_requests=(
                fetch_config.effective_max_concurrent_requests
                if max_concurrent_requests is None else max_concurrent_requests
            ),
            connect_timeout=fetch_config.connect_timeout,
            read_timeout=fetch_config.read_timeout,
            pool_maxsize=fetch_config.pool_maxsize
        )

    def _build_session(self, pool_maxsize: int) -> requests.Session:
        session = requests.Session()
        session.trust_env = False  # ignore proxy environment variables
        adapter = HTTPAdapter(pool_connections=pool_maxsize, pool_maxsize=max(pool_maxsize, self.capacity))
        session.mount("http://", adapter)
        session.mount("https://", adapter)
        session.headers.update({"User-Agent": DEFAULT_USER_AGENT})
        return session

    # =============================================================================
    # PERMITS
    # =============================================================================

    @property
    def outstanding(self) -> int:
        with self._lock:
            return self._outstanding

    @property
    def peak_outstanding(self) -> int:
        with self._lock:
            return self._peak_outstanding

    def acquire(self, timeout: Optional[float] = None) -> FetchPermit:
        """
        Block until a permit is available.

        Args:
            timeout: Seconds to wait; None waits forever

        Raises:
            TransientFetchError: If no permit became available within ``timeout``
        """
        acquired = self._semaphore.acquire(timeout=timeout) if timeout is not None else self._semaphore.acquire()
        if not acquired:
            raise TransientFetchError(f"No fetch permit available within {timeout}s")

        with self._lock:
            self._outstanding += 1
            self._peak_outstanding = max(self._peak_outstanding, self._outstanding)
            return FetchPermit(next(self._counter))

    def release(self, permit: FetchPermit) -> None:
        with self._lock:
            self._outstanding -= 1
        self._semaphore.release()

    @contextmanager
    def permit(self, timeout: Optional[float] = None) -> Iterator[FetchPermit]:
        token = self.acquire(timeout=timeout)
        try:
            yield token
        finally:
            self.release(token)

    # =============================================================================
    # HTTP HELPERS
    # =============================================================================

    def request(
        self,
        method: str,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        **kwargs: Any
    ) -> requests.Response:
        """
        Send one HTTP request while holding a permit.

        The response body is fully read before the permit is released.

        Raises:
            TransientFetchError: On connection errors, timeouts and HTTP error statuses
        """
        kwargs.setdefault("timeout", self.timeout)
        with self.permit():
            try:
                response = self.session.request(method, url, headers=headers, **kwargs)
                response.raise_for_status()
            except requests.exceptions.RequestException as e:
                raise TransientFetchError(f"{method} {url} failed: {e}") from e
        return response

    def get_text(self, url: str, headers: Optional[Dict[str, str]] = None, encoding: Optional[str] = None) -> str:
        """GET a page as text; ``encoding`` forces a decoding such as ``big5``."""
        response = self.request("GET", url, headers=headers)
        if encoding:
            return response.content.decode(encoding, errors="replace")
        return response.text

    def get_json(self, url: str, headers: Optional[Dict[str, str]] = None) -> Any:
        response = self.request("GET", url, headers=headers)
        return self._decode_json(response, url)

    def post_json(self, url: str, payload: Any = None, headers: Optional[Dict[str, str]] = None) -> Any:
        response = self.request("POST", url, headers=headers, json=payload)
        return self._decode_json(response, url)

    def post_form(self, url: str, params: Optional[Dict[str, str]] = None, headers: Optional[Dict[str, str]] = None) -> str:
        response = self.request("POST", url, headers=headers, data=params)
        return response.text

    @staticmethod
    def _decode_json(response: requests.Response, url: str) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise FetchError(f"Error parsing response JSON from {url}: {e}") from e

    def close(self) -> None:
        self.session.close()
