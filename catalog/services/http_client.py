import logging
from typing import Any, Dict, Optional

import httpx

from config import settings
from catalog.errors import AuthorizationFailure, RemoteFailure
from catalog.session import Session

logger = logging.getLogger(__name__)


class CatalogHTTPClient:
    """HTTP client for the catalog REST service.

    Every call carries `Content-Type: application/json`; calls made with
    `auth=True` also carry the session's bearer token. Non-success responses
    and transport errors are raised as RemoteFailure. No retries.
    """

    def __init__(
        self,
        session: Session,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.session = session
        self.base_url = (base_url or settings.api_base_url).rstrip("/")

        # Connection limits for a single interactive user
        limits = httpx.Limits(
            max_keepalive_connections=10,
            max_connections=20,
            keepalive_expiry=30.0
        )

        # Timeout configuration
        read_timeout = timeout or settings.api_timeout
        timeout_config = httpx.Timeout(
            timeout=read_timeout,
            connect=min(settings.api_connect_timeout, read_timeout),
        )

        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            limits=limits,
            timeout=timeout_config,
            follow_redirects=True,
            transport=transport,
        )

    def _headers(self, auth: bool) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if auth:
            token = self.session.bearer_token()
            if token:
                headers["Authorization"] = f"Bearer {token}"
        return headers

    async def request(
        self,
        method: str,
        path: str,
        *,
        fallback: str,
        auth: bool = False,
        params: Optional[Dict[str, Any]] = None,
        payload: Optional[Any] = None,
    ) -> Any:
        """Send one request and return the decoded JSON body (None when empty)."""
        headers = self._headers(auth)

        try:
            response = await self._client.request(method, path, params=params, json=payload, headers=headers)
        except httpx.TimeoutException as e:
            logger.error(f"{method} {path} timed out: {e}")
            raise RemoteFailure(f"{fallback}: request timed out") from e
        except httpx.RequestError as e:
            logger.error(f"{method} {path} failed: {e}")
            raise RemoteFailure(fallback) from e

        if response.is_success:
            return self._decode(response)

        message = self._error_message(response) or fallback
        logger.error(f"{method} {path} -> {response.status_code}: {message}")

        if response.status_code == 401:
            self.session.invalidate(f"{method} {path} returned 401")
            raise AuthorizationFailure(message, response.status_code)
        if response.status_code == 403:
            raise AuthorizationFailure(message, response.status_code)
        raise RemoteFailure(message, response.status_code)

    @staticmethod
    def _decode(response: httpx.Response) -> Any:
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return response.text

    @staticmethod
    def _error_message(response: httpx.Response) -> Optional[str]:
        """Pass through whatever message the service sent back."""
        text = response.text.strip() if response.content else ""
        if not text:
            return None
        try:
            data = response.json()
        except ValueError:
            return text
        if isinstance(data, dict):
            for key in ("message", "title", "error", "detail"):
                value = data.get(key)
                if isinstance(value, str) and value.strip():
                    return value.strip()
            return None
        if isinstance(data, str) and data.strip():
            return data.strip()
        return None

    async def get(self, path: str, **kwargs) -> Any:
        return await self.request("GET", path, **kwargs)

    async def post(self, path: str, **kwargs) -> Any:
        return await self.request("POST", path, **kwargs)

    async def put(self, path: str, **kwargs) -> Any:
        return await self.request("PUT", path, **kwargs)

    async def delete(self, path: str, **kwargs) -> Any:
        return await self.request("DELETE", path, **kwargs)

    async def close(self):
        """Close the underlying connection pool"""
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
