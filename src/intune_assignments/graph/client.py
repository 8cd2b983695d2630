from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, AsyncIterator, Sequence, TypeAlias

import httpx

from intune_assignments.auth.types import TokenProvider
from intune_assignments.graph.errors import (
    AuthenticationError,
    GraphAPIError,
    GraphErrorCategory,
    NotFoundError,
    PermissionError,
    RateLimitError,
)
from intune_assignments.graph.rate_limiter import RateLimiter, rate_limiter
from intune_assignments.graph.requests import GraphRequest
from intune_assignments.utils import get_logger


logger = get_logger(__name__)

GRAPH_HOST = "https://graph.microsoft.com"


class GraphAPIVersion(str, Enum):
    """Supported Microsoft Graph API versions."""

    V1 = "v1.0"
    BETA = "beta"


ApiVersionInput: TypeAlias = GraphAPIVersion | str | None

_VERSION_ALIASES = {"v1": "v1.0", "v1.0": "v1.0", "1.0": "v1.0", "beta": "beta"}


def _coerce_api_version(value: GraphAPIVersion | str) -> str:
    if isinstance(value, GraphAPIVersion):
        return value.value
    cleaned = value.strip()
    return _VERSION_ALIASES.get(cleaned.lower(), cleaned)


class ThrottledAsyncClient(httpx.AsyncClient):
    """``httpx.AsyncClient`` that paces sends and retries 429s and timeouts.

    Responses of 400 and above (other than retried 429s) are raised as
    ``GraphAPIError`` subclasses; transport failures become ``NETWORK`` errors.
    """

    def __init__(self, *args: Any, limiter: RateLimiter | None = None, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._limiter = limiter or rate_limiter

    async def send(self, request: httpx.Request, **kwargs: Any) -> httpx.Response:
        started = time.perf_counter()
        attempt = 1
        while True:
            await self._wait_for_slot()
            try:
                response = await super().send(request, **kwargs)
            except httpx.TimeoutException as exc:
                if await self._limiter.should_retry(attempt=attempt, error=exc):
                    await asyncio.sleep(
                        await self._limiter.calculate_retry_delay(attempt=attempt)
                    )
                    attempt += 1
                    continue
                _log_exchange(request, None, started, attempt)
                raise GraphAPIError(
                    message="Network timeout communicating with Microsoft Graph",
                    category=GraphErrorCategory.NETWORK,
                    inner_error=exc,
                ) from exc
            except httpx.RequestError as exc:
                _log_exchange(request, None, started, attempt)
                raise GraphAPIError(
                    message=f"Network error communicating with Microsoft Graph: {exc}",
                    category=GraphErrorCategory.NETWORK,
                    inner_error=exc,
                ) from exc

            if response.status_code == 429:
                await self._limiter.record_rate_limit()
                retry_after = response.headers.get("Retry-After")
                if attempt <= self._limiter.max_retries:
                    await response.aclose()
                    await asyncio.sleep(
                        await self._limiter.calculate_retry_delay(
                            attempt=attempt, retry_after_header=retry_after
                        )
                    )
                    attempt += 1
                    continue

            _log_exchange(request, response.status_code, started, attempt)
            if response.status_code >= 400:
                await response.aread()
                raise error_from_response(response)
            await self._limiter.reset_rate_limit_tracking()
            return response

    async def _wait_for_slot(self) -> None:
        while not await self._limiter.can_make_request():
            await asyncio.sleep(max(await self._limiter.calculate_delay(), 0.05))
        await self._limiter.record_request()


def _log_exchange(
    request: httpx.Request, status_code: int | None, started: float, attempt: int
) -> None:
    logger.debug(
        "Graph request",
        method=request.method,
        url=str(request.url),
        status_code=status_code,
        duration_ms=round((time.perf_counter() - started) * 1000, 2),
        retries=attempt - 1,
    )


_STATUS_CATEGORIES = {
    400: GraphErrorCategory.VALIDATION,
    409: GraphErrorCategory.CONFLICT,
}


def error_from_response(response: httpx.Response) -> GraphAPIError:
    """Map a failed Graph response onto the error taxonomy."""

    status = response.status_code
    code: str | None = None
    message: str | None = None
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        code = body["error"].get("code")
        message = body["error"].get("message")
    message = message or response.text or f"Graph request failed with status {status}"

    match status:
        case 401:
            return AuthenticationError(message)
        case 403:
            return PermissionError(message)
        case 404:
            return NotFoundError(message)
        case 429:
            return RateLimitError(message, retry_after=response.headers.get("Retry-After"))
        case _:
            return GraphAPIError(
                message=message,
                category=_STATUS_CATEGORIES.get(status, GraphErrorCategory.UNKNOWN),
                status_code=status,
                code=code if isinstance(code, str) else None,
            )


@dataclass(slots=True)
class GraphClientConfig:
    scopes: Sequence[str]
    user_agent: str = "IntuneAssignments-Python"
    api_version: GraphAPIVersion | str = GraphAPIVersion.V1
    page_size: int = 100
    timeout: float = 60.0


class GraphClientFactory:
    """Owns the shared HTTP client and exposes Graph-shaped read helpers."""

    def __init__(
        self,
        token_provider: TokenProvider,
        config: GraphClientConfig,
        *,
        limiter: RateLimiter | None = None,
    ) -> None:
        self._token_provider = token_provider
        self._config = config
        self._limiter = limiter
        self._api_version = _coerce_api_version(config.api_version)
        self._http: ThrottledAsyncClient | None = None

    def absolute_url(self, path: str, api_version: ApiVersionInput = None) -> str:
        if path.startswith(("http://", "https://")):
            return path
        version = (
            _coerce_api_version(api_version) if api_version is not None else self._api_version
        )
        relative = "/" + path.strip().strip("/")
        return f"{GRAPH_HOST}/{version}{relative.rstrip('/')}"

    async def request_json(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        api_version: ApiVersionInput = None,
    ) -> dict[str, Any]:
        response = await self._client().request(
            method,
            self.absolute_url(path, api_version),
            params=params,
            headers=headers,
        )
        try:
            payload = response.json()
        except ValueError as exc:
            raise GraphAPIError(
                message=(
                    f"Microsoft Graph returned a non-JSON body for {response.request.url}"
                ),
                category=GraphErrorCategory.VALIDATION,
                status_code=response.status_code,
                inner_error=exc,
            ) from exc
        if not isinstance(payload, dict):
            raise GraphAPIError(
                message=(
                    f"Microsoft Graph returned an unexpected body for {response.request.url}"
                ),
                category=GraphErrorCategory.VALIDATION,
                status_code=response.status_code,
            )
        return payload

    async def execute(self, request: GraphRequest) -> dict[str, Any]:
        return await self.request_json(
            request.method,
            request.url,
            params=request.params,
            headers=request.headers,
            api_version=request.api_version,
        )

    async def iter_collection(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        page_size: int | None = None,
        api_version: ApiVersionInput = None,
    ) -> AsyncIterator[dict[str, Any]]:
        """Yield every item of a collection, following ``@odata.nextLink``."""

        query: dict[str, Any] | None = dict(params or {})
        top = self._config.page_size if page_size is None else page_size
        if top:
            query.setdefault("$top", top)
        url: str | None = self.absolute_url(path, api_version)

        while url:
            page = await self.request_json(method, url, params=query, headers=headers)
            items = page.get("value")
            if not isinstance(items, list):
                yield page
                return
            for item in items:
                yield item if isinstance(item, dict) else {"value": item}
            url = page.get("@odata.nextLink")
            # nextLink already carries the query string.
            query = None

    async def close(self) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None

    async def __aenter__(self) -> GraphClientFactory:
        return self

    async def __aexit__(self, *_exc: object) -> None:
        await self.close()

    def _client(self) -> ThrottledAsyncClient:
        if self._http is None:

            def bearer_auth(request: httpx.Request) -> httpx.Request:
                token = self._token_provider(self._config.scopes)
                request.headers["Authorization"] = f"Bearer {token.token}"
                return request

            self._http = ThrottledAsyncClient(
                headers={"User-Agent": self._config.user_agent},
                auth=bearer_auth,
                limiter=self._limiter,
                timeout=httpx.Timeout(self._config.timeout, connect=10.0, pool=5.0),
            )
        return self._http


__all__ = [
    "ApiVersionInput",
    "GraphAPIVersion",
    "GraphClientConfig",
    "GraphClientFactory",
    "ThrottledAsyncClient",
    "error_from_response",
]
