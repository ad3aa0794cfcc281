from __future__ import annotations

from dataclasses import dataclass, field
import logging
import random
import time
from typing import Any, Dict, Optional, Tuple, Union

import requests
from requests import Response
from requests.exceptions import ConnectionError as RequestsConnectionError
from requests.exceptions import RequestException
from requests.exceptions import Timeout as RequestsTimeout

from ... import config
from ...errors import AuthorizationError, NotFoundError, ParseError, TransportError

logger = logging.getLogger(__name__)

RETRY_STATUSES = (429, 500, 502, 503, 504)
USER_AGENT = "active-contributor-metrics"


def as_object(value: Any, where: str) -> Dict[str, Any]:
    """Return ``value`` when it is a JSON object, else raise ``ParseError``."""
    if not isinstance(value, dict):
        raise ParseError(f"Expected an object in {where}, got {type(value).__name__}")
    return value


@dataclass(frozen=True)
class ApiClient:
    """Small helper around a REST API with retries and error mapping.

    Every failure leaves this class as a ``SourceError`` subclass, so the
    backends above it never see ``requests`` exceptions.
    """

    base_url: str
    headers: Dict[str, str] = field(default_factory=dict)
    auth: Optional[Tuple[str, str]] = None

    max_retries: int = config.MAX_RETRIES
    backoff_seconds: float = config.BACKOFF_SECONDS
    timeout: float = config.REQUEST_TIMEOUT_SECONDS
    verify: Union[bool, str] = True

    session: requests.Session = field(default_factory=requests.Session, repr=False, compare=False)

    def __post_init__(self) -> None:
        if self.max_retries < 1:
            raise ValueError("max_retries must be at least 1")

    def url_for(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        return f"{self.base_url.rstrip('/')}/{path.lstrip('/')}"

    def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Response:
        return self._request_with_retries(method="GET", url=self.url_for(path), params=params)

    def get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        resp = self.get(path, params=params)
        try:
            return resp.json()
        except ValueError as exc:
            raise TransportError(
                f"Invalid JSON from {resp.url}: {exc}", status_code=resp.status_code
            ) from exc

    def _sleep_seconds(self, attempt: int, resp: Optional[Response] = None) -> float:
        if resp is not None:
            retry_after = resp.headers.get("Retry-After")
            if retry_after and retry_after.isdigit():
                return float(retry_after)
        return (self.backoff_seconds * (2 ** (attempt - 1))) + random.uniform(0.0, 0.25)

    def _is_rate_limited(self, resp: Response) -> bool:
        if resp.status_code in RETRY_STATUSES:
            return True
        if resp.status_code != 403:
            return False
        # GitHub signals primary rate limits with a 403 and no remaining quota,
        # and secondary rate limits with a 403 carrying Retry-After.
        return resp.headers.get("X-RateLimit-Remaining") == "0" or "Retry-After" in resp.headers

    def _request_with_retries(
        self,
        *,
        method: str,
        url: str,
        params: Optional[Dict[str, Any]] = None,
    ) -> Response:
        headers = {"User-Agent": USER_AGENT, **self.headers}

        for attempt in range(1, self.max_retries + 1):
            try:
                resp = self.session.request(
                    method,
                    url,
                    headers=headers,
                    params=params,
                    auth=self.auth,
                    timeout=self.timeout,
                    verify=self.verify,
                )
            except (RequestsConnectionError, RequestsTimeout) as exc:
                if attempt >= self.max_retries:
                    raise TransportError(f"{method} {url} failed after {attempt} attempts: {exc}") from exc
                sleep_seconds = self._sleep_seconds(attempt)
                logger.debug("Network error on %s (%s), retrying in %.1fs", url, exc, sleep_seconds)
                time.sleep(sleep_seconds)
                continue
            except RequestException as exc:
                raise TransportError(f"{method} {url} failed: {exc}") from exc

            if self._is_rate_limited(resp):
                if attempt >= self.max_retries:
                    raise TransportError(
                        f"{method} {url} still rate limited or unavailable after {attempt} attempts "
                        f"(HTTP {resp.status_code})",
                        status_code=resp.status_code,
                    )
                sleep_seconds = self._sleep_seconds(attempt, resp)
                logger.info(
                    "HTTP %d from %s, backing off %.1fs (attempt %d/%d)",
                    resp.status_code,
                    url,
                    sleep_seconds,
                    attempt,
                    self.max_retries,
                )
                time.sleep(sleep_seconds)
                continue

            self._raise_for_status(method, url, resp)
            return resp

        raise TransportError(f"{method} {url} failed unexpectedly")

    @staticmethod
    def _raise_for_status(method: str, url: str, resp: Response) -> None:
        status = resp.status_code
        if status < 400:
            return

        detail = (resp.text or "").strip()[:200]
        message = f"{method} {url} returned HTTP {status}" + (f": {detail}" if detail else "")
        if status in (401, 403):
            raise AuthorizationError(message, status_code=status)
        if status == 404:
            raise NotFoundError(message, status_code=status)
        raise TransportError(message, status_code=status)
