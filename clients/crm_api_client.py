"""
Async HTTP client for the CRM API with transparent access-token refresh.

Every request carries the current access token. When a non-auth endpoint
answers 401, the client refreshes once (POST /auth/refresh, the refresh
token travels in the httpOnly cookie held by the cookie jar) and replays
the request. Concurrent 401s share a single in-flight refresh. If the
refresh fails the session is over: the token is dropped, on_logout is
invoked, and every waiting request raises SessionExpiredError.
"""

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable

import httpx

logger = logging.getLogger(__name__)

AUTH_PATH_MARKER = "/auth/"
REFRESH_COOKIE_NAME = "refreshToken"


class SessionExpiredError(Exception):
    """Refresh failed; the user must log in again."""


class CRMApiError(Exception):
    """An auth helper call was rejected by the server."""

    def __init__(self, status_code: int, code: str | None, message: str):
        self.status_code = status_code
        self.code = code
        super().__init__(message)


class CRMApiClient:
    """
    Browser-equivalent API client.

    Usage:
        async with CRMApiClient("https://crm.example.com", on_logout=show_login) as api:
            await api.login("user@example.com", "Secret123")
            deals = (await api.get("/api/deals")).json()
    """

    def __init__(
        self,
        base_url: str = "",
        on_logout: Callable[[], Awaitable[None] | None] | None = None,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ):
        """
        Args:
            base_url: API origin, used when http_client is not supplied
            on_logout: Called when a failed refresh ends the session
            http_client: Preconfigured client (tests pass a MockTransport)
            timeout: Per-request timeout in seconds
        """
        self._client = http_client or httpx.AsyncClient(base_url=base_url, timeout=timeout)
        self._on_logout = on_logout
        self._access_token: str | None = None
        self._refresh_task: asyncio.Task | None = None
        # Bumped on every logout; a refresh started under an older
        # generation must not resurrect the session
        self._session_generation = 0

    @property
    def access_token(self) -> str | None:
        return self._access_token

    def set_access_token(self, token: str | None) -> None:
        self._access_token = token

    async def __aenter__(self) -> "CRMApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    async def _send(self, method: str, path: str, token: str | None, **kwargs: Any) -> httpx.Response:
        headers = dict(kwargs.pop("headers", None) or {})
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return await self._client.request(method, path, headers=headers, **kwargs)

    async def request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        """
        Send a request, refreshing and replaying once on 401.

        Raises:
            SessionExpiredError: The refresh failed or the session ended
                while it was in flight.
        """
        generation = self._session_generation
        token = self._access_token
        response = await self._send(method, path, token, **kwargs)

        if response.status_code != 401 or AUTH_PATH_MARKER in path:
            return response

        if generation != self._session_generation and self._access_token is None:
            # Logged out (or forced out) while this request was in flight
            raise SessionExpiredError("Session ended while the request was in flight")

        if self._access_token is not None and self._access_token != token:
            # Another request already refreshed while this one was in flight
            logger.debug(f"Replaying {method} {path} with token refreshed elsewhere")
        else:
            await self._refresh_access_token()

        return await self._send(method, path, self._access_token, **kwargs)

    async def get(self, path: str, **kwargs: Any) -> httpx.Response:
        return await self.request("GET", path, **kwargs)

    async def post(self, path: str, **kwargs: Any) -> httpx.Response:
        return await self.request("POST", path, **kwargs)

    async def put(self, path: str, **kwargs: Any) -> httpx.Response:
        return await self.request("PUT", path, **kwargs)

    async def patch(self, path: str, **kwargs: Any) -> httpx.Response:
        return await self.request("PATCH", path, **kwargs)

    async def delete(self, path: str, **kwargs: Any) -> httpx.Response:
        return await self.request("DELETE", path, **kwargs)

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------

    async def _refresh_access_token(self) -> str:
        """Join the in-flight refresh, or start one."""
        task = self._refresh_task
        if task is None:
            task = asyncio.create_task(self._run_refresh(self._session_generation))
            self._refresh_task = task
        # Shielded so one cancelled waiter does not abort the shared refresh
        return await asyncio.shield(task)

    async def _run_refresh(self, generation: int) -> str:
        try:
            try:
                response = await self._client.post("/auth/refresh")
            except httpx.HTTPError as e:
                logger.warning(f"Token refresh request failed: {e}")
                await self._end_session(generation)
                raise SessionExpiredError("Session expired") from e

            if generation != self._session_generation:
                logger.info("Discarding refresh result; session ended while it was in flight")
                # The response already wrote its rotated cookie into the jar
                self._client.cookies.delete(REFRESH_COOKIE_NAME)
                raise SessionExpiredError("Session ended during refresh")

            if response.status_code != 200:
                logger.info(f"Token refresh rejected with status {response.status_code}")
                await self._end_session(generation)
                raise SessionExpiredError("Session expired")

            self._access_token = response.json()["data"]["accessToken"]
            return self._access_token
        finally:
            if self._refresh_task is asyncio.current_task():
                self._refresh_task = None

    async def _end_session(self, generation: int) -> None:
        """Forced logout after a failed refresh.

        Runs at most once per session generation: requests that were in
        flight when it ran raise SessionExpiredError without refreshing.
        """
        if generation != self._session_generation:
            return
        self._clear_session()
        if self._on_logout is not None:
            result = self._on_logout()
            if inspect.isawaitable(result):
                await result

    def _clear_session(self) -> None:
        self._access_token = None
        self._session_generation += 1
        self._client.cookies.clear()

    # ------------------------------------------------------------------
    # Auth helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _raise_for_error(response: httpx.Response) -> dict[str, Any]:
        try:
            body = response.json()
        except ValueError:
            body = {}
        if response.is_success and body.get("success", True):
            return body
        raise CRMApiError(
            response.status_code,
            body.get("code"),
            body.get("message") or f"Request failed with status {response.status_code}",
        )

    async def login(self, email: str, password: str) -> dict[str, Any]:
        """
        Log in and keep the access token. Returns the public user.

        Raises:
            CRMApiError: Carries the server's error code (e.g. ACCOUNT_LOCKED).
        """
        response = await self._client.post("/auth/login", json={"email": email, "password": password})
        data = self._raise_for_error(response)["data"]
        self._access_token = data["accessToken"]
        return data["user"]

    async def register(self, first_name: str, last_name: str, email: str, password: str) -> dict[str, Any]:
        response = await self._client.post(
            "/auth/register",
            json={"firstName": first_name, "lastName": last_name, "email": email, "password": password},
        )
        data = self._raise_for_error(response)["data"]
        self._access_token = data["accessToken"]
        return data["user"]

    async def logout(self) -> None:
        """
        End the session locally and on the server.

        A refresh in flight is left to finish but its token is discarded.
        Server errors are logged; the local session ends regardless.
        """
        token = self._access_token
        self._access_token = None
        self._session_generation += 1
        try:
            await self._send("POST", "/auth/logout", token)
        except httpx.HTTPError as e:
            logger.warning(f"Logout request failed: {e}")
        finally:
            self._client.cookies.clear()
