from __future__ import annotations

import logging
import time
from typing import Any, Callable, Optional

import httpx

logger = logging.getLogger(__name__)


class IntelliRackClientError(RuntimeError):
    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        payload: Any = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload


# Status codes that are safe to retry (server-side transient errors).
_RETRYABLE_STATUS_CODES = {502, 503, 504, 429}


def _json_or_none(res: httpx.Response) -> Any:
    try:
        return res.json()
    except ValueError:
        return None


def _error_message(res: httpx.Response) -> str:
    """Pull the backend's ``error``/``message`` field out of a failed response."""
    data = _json_or_none(res)
    if isinstance(data, dict):
        for key in ("error", "message"):
            if data.get(key):
                return str(data[key])
    return res.text or f"HTTP {res.status_code}"


class _ApiClient:
    def __init__(
        self,
        auth_token_provider: Callable[[], str],
        api_base: str,
        timeout: float = 20.0,
        max_retries: int = 3,
        backoff_base: float = 0.5,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.auth_token_provider = auth_token_provider
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout
        self.max_retries = max_retries
        self.backoff_base = backoff_base
        self._transport = transport
        self._client: Optional[httpx.Client] = None

    def _get_client(self) -> httpx.Client:
        """Return a shared httpx.Client, creating one if needed."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.Client(timeout=self.timeout, transport=self._transport)
        return self._client

    def close(self) -> None:
        """Close the underlying HTTP connection pool."""
        if self._client is not None and not self._client.is_closed:
            self._client.close()
            self._client = None

    def _headers(self, require_auth: bool = True) -> dict[str, str]:
        token = self.auth_token_provider()
        if not token:
            if require_auth:
                raise IntelliRackClientError("Not authenticated: no token available")
            return {"Content-Type": "application/json"}
        return {"Content-Type": "application/json", "Authorization": f"Bearer {token}"}

    def _url(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        return f"{self.api_base}{path}"

    def _request_with_retry(
        self,
        method: str,
        url: str,
        **kwargs: Any,
    ) -> httpx.Response:
        """Execute an HTTP request with exponential backoff retry.

        Retries on connection errors and retryable HTTP status codes
        (502, 503, 504, 429).  Other errors are raised immediately.
        """
        last_exc: Optional[Exception] = None
        for attempt in range(self.max_retries):
            try:
                client = self._get_client()
                res = client.request(method, url, **kwargs)
                logger.debug("%s %s -> %d", method, url, res.status_code)

                if res.status_code < 400:
                    return res

                if res.status_code in _RETRYABLE_STATUS_CODES and attempt < self.max_retries - 1:
                    wait = self.backoff_base * (2**attempt)
                    logger.warning(
                        "Retryable HTTP %d on %s %s (attempt %d/%d, waiting %.1fs)",
                        res.status_code,
                        method,
                        url,
                        attempt + 1,
                        self.max_retries,
                        wait,
                    )
                    time.sleep(wait)
                    continue

                raise IntelliRackClientError(
                    _error_message(res),
                    status_code=res.status_code,
                    payload=_json_or_none(res),
                )

            except IntelliRackClientError:
                raise
            except (httpx.ConnectError, httpx.TimeoutException, httpx.RemoteProtocolError) as exc:
                last_exc = exc
                if attempt < self.max_retries - 1:
                    wait = self.backoff_base * (2**attempt)
                    logger.warning(
                        "Connection error on %s %s: %s (attempt %d/%d, waiting %.1fs)",
                        method,
                        url,
                        exc,
                        attempt + 1,
                        self.max_retries,
                        wait,
                    )
                    # Start the next attempt on a fresh socket.
                    self.close()
                    time.sleep(wait)
                else:
                    raise IntelliRackClientError(
                        f"Request failed after {self.max_retries} attempts: {exc}"
                    ) from exc

        raise IntelliRackClientError(
            f"Request failed after {self.max_retries} attempts"
            + (f": {last_exc}" if last_exc else "")
        )

    @staticmethod
    def _decode(res: httpx.Response) -> Any:
        if not res.content:
            return {}
        try:
            return res.json()
        except ValueError as exc:
            raise IntelliRackClientError(
                f"Invalid JSON from {res.request.url}", status_code=res.status_code
            ) from exc

    def get(
        self,
        path: str,
        params: Optional[dict[str, Any]] = None,
        *,
        require_auth: bool = True,
    ) -> Any:
        res = self._request_with_retry(
            "GET",
            self._url(path),
            params=params,
            headers=self._headers(require_auth),
        )
        return self._decode(res)

    def post(
        self,
        path: str,
        payload: Optional[dict[str, Any]] = None,
        *,
        require_auth: bool = True,
    ) -> Any:
        res = self._request_with_retry(
            "POST",
            self._url(path),
            json=payload or {},
            headers=self._headers(require_auth),
        )
        return self._decode(res)

    def patch(self, path: str, payload: Optional[dict[str, Any]] = None) -> Any:
        res = self._request_with_retry(
            "PATCH",
            self._url(path),
            json=payload or {},
            headers=self._headers(),
        )
        return self._decode(res)

    def delete(self, path: str, params: Optional[dict[str, Any]] = None) -> Any:
        res = self._request_with_retry(
            "DELETE",
            self._url(path),
            params=params,
            headers=self._headers(),
        )
        return self._decode(res)
