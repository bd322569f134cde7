"""Supabase adapters over httpx.

``SupabaseIdentityProvider`` talks to the GoTrue REST API and persists the
session in the key-value store. ``SupabaseUserDataGateway`` checks the
``users`` and ``usage`` rows through PostgREST and asks the backend to create
them when missing.
"""

import asyncio
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime, timedelta
import json
import logging
from typing import Any

import httpx

from confluency.core.decorators import log_execution
from confluency.core.exceptions import (
    EmailNotVerifiedError,
    ProviderError,
    RetryExhaustedError,
    SessionMissingError,
    StorageError,
)
from confluency.core.resilience import RetryPolicy, SleepFn, retry_async
from confluency.models.auth import AuthChangeEvent, AuthSession, Identity
from confluency.ports.auth_ports import AuthStateCallback, IdentityProvider, Unsubscribe
from confluency.ports.data_ports import UserDataInitializer, UserDataVerifier
from confluency.ports.storage import KeyValueStore

logger = logging.getLogger(__name__)

SESSION_STORAGE_KEY = "confluency.auth.session"
# Refresh a session this many seconds before it expires
EXPIRY_MARGIN_SECONDS = 60

TokenSource = Callable[[], Awaitable[str | None]]


def _error_from_response(response: httpx.Response, email: str | None = None) -> Exception:
    """Translate a GoTrue / PostgREST error response."""
    try:
        body = response.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}

    code = body.get("error_code") or body.get("code") or body.get("error")
    message = (
        body.get("msg")
        or body.get("message")
        or body.get("error_description")
        or response.text
        or f"HTTP {response.status_code}"
    )
    code = str(code) if code is not None else None

    if code == "email_not_confirmed" or "email not confirmed" in str(message).lower():
        return EmailNotVerifiedError(email)
    if code in {"session_not_found", "refresh_token_not_found"}:
        return SessionMissingError()
    return ProviderError(str(message), code=code, status=response.status_code)


class SupabaseIdentityProvider(IdentityProvider):
    """GoTrue REST identity provider.

    Args:
        supabase_url: Project URL
        anon_key: Public anon key
        kv_store: Session persistence
        email_redirect_url: Link target of confirmation emails
        client: Preconfigured ``httpx.AsyncClient``
    """

    def __init__(
        self,
        supabase_url: str,
        anon_key: str,
        kv_store: KeyValueStore,
        email_redirect_url: str | None = None,
        client: httpx.AsyncClient | None = None,
        timeout: float = 15.0,
    ) -> None:
        self.auth_url = f"{supabase_url.rstrip('/')}/auth/v1"
        self.anon_key = anon_key
        self.kv_store = kv_store
        self.email_redirect_url = email_redirect_url
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._session: AuthSession | None = None
        self._session_loaded = False
        self._listeners: list[AuthStateCallback] = []
        self._refresh_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # HTTP plumbing
    # ------------------------------------------------------------------

    def _headers(self, access_token: str | None = None) -> dict[str, str]:
        headers = {"apikey": self.anon_key, "Content-Type": "application/json"}
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json_body: dict[str, Any] | None = None,
        params: dict[str, str] | None = None,
        access_token: str | None = None,
        email: str | None = None,
    ) -> dict[str, Any]:
        try:
            response = await self._client.request(
                method,
                f"{self.auth_url}{path}",
                json=json_body,
                params=params,
                headers=self._headers(access_token),
            )
        except httpx.HTTPError as e:
            logger.error("Auth request %s %s failed: %s", method, path, e)
            msg = f"Network request failed: {e}"
            raise ProviderError(msg, code="network_error") from e

        if response.is_error:
            raise _error_from_response(response, email)
        if not response.content:
            return {}
        return response.json()

    # ------------------------------------------------------------------
    # Session persistence and change events
    # ------------------------------------------------------------------

    async def _load_session(self) -> AuthSession | None:
        if self._session_loaded:
            return self._session
        self._session_loaded = True
        try:
            raw = await self.kv_store.get(SESSION_STORAGE_KEY)
        except StorageError as e:
            logger.warning("Failed to read persisted auth session: %s", e)
            return None
        if raw:
            try:
                self._session = AuthSession.model_validate_json(raw)
            except ValueError:
                logger.warning("Discarding unreadable persisted auth session")
        return self._session

    async def _store_session(self, session: AuthSession | None) -> None:
        self._session = session
        self._session_loaded = True
        try:
            if session is None:
                await self.kv_store.remove(SESSION_STORAGE_KEY)
            else:
                await self.kv_store.set(SESSION_STORAGE_KEY, session.model_dump_json())
        except StorageError as e:
            logger.warning("Failed to persist auth session: %s", e)

    def _emit(self, event: AuthChangeEvent, session: AuthSession | None) -> None:
        for listener in list(self._listeners):
            try:
                listener(event, session)
            except Exception:
                logger.exception("Auth state listener failed for %s", event)

    @staticmethod
    def _session_from_payload(payload: dict[str, Any]) -> AuthSession:
        if "expires_at" not in payload and "expires_in" in payload:
            payload = {
                **payload,
                "expires_at": int(datetime.now(UTC).timestamp()) + int(payload["expires_in"]),
            }
        return AuthSession.from_provider_payload(payload)

    async def _refresh(self, session: AuthSession) -> AuthSession | None:
        if not session.refresh_token:
            return None
        try:
            payload = await self._request(
                "POST",
                "/token",
                params={"grant_type": "refresh_token"},
                json_body={"refresh_token": session.refresh_token},
            )
        except (ProviderError, SessionMissingError) as e:
            if isinstance(e, ProviderError) and e.code == "network_error":
                raise
            logger.info("Session refresh rejected; signing out locally: %s", e)
            await self._store_session(None)
            self._emit(AuthChangeEvent.SIGNED_OUT, None)
            return None
        refreshed = self._session_from_payload(payload)
        await self._store_session(refreshed)
        self._emit(AuthChangeEvent.TOKEN_REFRESHED, refreshed)
        return refreshed

    async def get_access_token(self) -> str | None:
        session = await self.get_session()
        return session.access_token if session else None

    # ------------------------------------------------------------------
    # IdentityProvider
    # ------------------------------------------------------------------

    async def sign_up(
        self, email: str, password: str, profile: dict[str, Any] | None = None
    ) -> Identity | None:
        params = {"redirect_to": self.email_redirect_url} if self.email_redirect_url else None
        payload = await self._request(
            "POST",
            "/signup",
            json_body={"email": email, "password": password, "data": profile or {}},
            params=params,
            email=email,
        )
        user_payload = payload.get("user") if "access_token" in payload else payload
        if not user_payload or "id" not in user_payload:
            return None
        return Identity.from_provider_payload(user_payload)

    async def sign_in_with_password(self, email: str, password: str) -> AuthSession:
        payload = await self._request(
            "POST",
            "/token",
            params={"grant_type": "password"},
            json_body={"email": email, "password": password},
            email=email,
        )
        session = self._session_from_payload(payload)
        await self._store_session(session)
        self._emit(AuthChangeEvent.SIGNED_IN, session)
        return session

    async def sign_out(self) -> None:
        session = await self._load_session()
        if session is not None:
            try:
                await self._request("POST", "/logout", access_token=session.access_token)
            except SessionMissingError:
                logger.debug("Session already gone on the server")
        await self._store_session(None)
        self._emit(AuthChangeEvent.SIGNED_OUT, None)

    async def get_session(self) -> AuthSession | None:
        session = await self._load_session()
        if session is None:
            return None
        now = int(datetime.now(UTC).timestamp())
        if session.expires_at is not None and session.expires_at - EXPIRY_MARGIN_SECONDS <= now:
            async with self._refresh_lock:
                if self._session is session:
                    return await self._refresh(session)
                return self._session
        return session

    async def get_user(self) -> Identity | None:
        session = await self.get_session()
        if session is None:
            raise SessionMissingError("Auth session missing!")
        try:
            payload = await self._request("GET", "/user", access_token=session.access_token)
        except ProviderError as e:
            if e.status == 401:
                raise SessionMissingError("Auth session missing!") from e
            raise
        return Identity.from_provider_payload(payload)

    def on_auth_state_change(self, callback: AuthStateCallback) -> Unsubscribe:
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    async def resend_verification_email(self, email: str) -> None:
        body: dict[str, Any] = {"type": "signup", "email": email}
        if self.email_redirect_url:
            body["options"] = {"email_redirect_to": self.email_redirect_url}
        await self._request("POST", "/resend", json_body=body, email=email)

    async def update_user(self, fields: dict[str, Any]) -> Identity:
        session = await self.get_session()
        if session is None:
            raise SessionMissingError("Auth session missing!")
        payload = await self._request(
            "PUT", "/user", json_body=fields, access_token=session.access_token
        )
        user = Identity.from_provider_payload(payload)
        updated = session.model_copy(update={"user": user})
        await self._store_session(updated)
        self._emit(AuthChangeEvent.USER_UPDATED, updated)
        return user

    async def reset_password_for_email(self, email: str) -> None:
        await self._request("POST", "/recover", json_body={"email": email}, email=email)

    async def aclose(self) -> None:
        await self._client.aclose()


class SupabaseUserDataGateway(UserDataVerifier, UserDataInitializer):
    """Backing-data checks over PostgREST and creation through the backend.

    Args:
        supabase_url: Project URL
        anon_key: Public anon key
        backend_url: API that owns user initialization
        token_source: Returns the caller's access token, if signed in
        retry_policy: Bound and backoff for initialization attempts
        sleep: Awaitable sleep between attempts
        client: Preconfigured ``httpx.AsyncClient``
    """

    def __init__(
        self,
        supabase_url: str,
        anon_key: str,
        backend_url: str,
        token_source: TokenSource | None = None,
        retry_policy: RetryPolicy | None = None,
        sleep: SleepFn = asyncio.sleep,
        client: httpx.AsyncClient | None = None,
        timeout: float = 15.0,
    ) -> None:
        self.rest_url = f"{supabase_url.rstrip('/')}/rest/v1"
        self.backend_url = backend_url.rstrip("/")
        self.anon_key = anon_key
        self._token_source = token_source
        self._retry_policy = retry_policy or RetryPolicy(
            max_attempts=3, base_delay=1.0, multiplier=2.0, exponential=True
        )
        self._sleep = sleep
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def _token(self) -> str | None:
        if self._token_source is None:
            return None
        return await self._token_source()

    async def _row_exists(self, table: str, user_id: str) -> bool:
        token = await self._token()
        try:
            response = await self._client.get(
                f"{self.rest_url}/{table}",
                params={"select": "user_id", "user_id": f"eq.{user_id}", "limit": "1"},
                headers={
                    "apikey": self.anon_key,
                    "Authorization": f"Bearer {token or self.anon_key}",
                    "Accept": "application/json",
                },
            )
        except httpx.HTTPError as e:
            msg = f"Checking {table} failed: {e}"
            raise ProviderError(msg, code="network_error") from e
        if response.is_error:
            raise _error_from_response(response)
        return bool(response.json())

    @log_execution()
    async def user_data_exists(self, user_id: str) -> bool:
        users = await self._row_exists("users", user_id)
        usage = await self._row_exists("usage", user_id)
        if not (users and usage):
            logger.info(
                "User data incomplete for %s (users=%s, usage=%s)", user_id, users, usage
            )
        return users and usage

    @log_execution()
    async def initialize_user_data(self, user_id: str) -> bool:
        try:
            return await retry_async(
                lambda: self._initialize_once(user_id),
                self._retry_policy,
                retry_on=(ProviderError,),
                sleep=self._sleep,
                operation_name="User data initialization",
            )
        except RetryExhaustedError as e:
            logger.error("User data initialization gave up for %s: %s", user_id, e.last_error)
            return False

    async def _initialize_once(self, user_id: str) -> bool:
        if await self._row_exists("users", user_id) and await self._row_exists("usage", user_id):
            logger.info("User data already present for %s", user_id)
            return True

        now = datetime.now(UTC)
        start = int(now.timestamp())
        body = {
            "user_id": user_id,
            "subscription_tier": "free",
            "subscription_start": start,
            "billing_cycle_start": start,
            "billing_cycle_end": int((now + timedelta(days=30)).timestamp()),
        }
        headers = {
            "Content-Type": "application/json",
            "X-Initialize-User": "true",
            "X-User-Id": user_id,
        }
        token = await self._token()
        if token:
            headers["Authorization"] = f"Bearer {token}"

        try:
            response = await self._client.post(
                f"{self.backend_url}/user/initialize-user",
                content=json.dumps(body),
                headers=headers,
            )
        except httpx.HTTPError as e:
            msg = f"Initialization request failed: {e}"
            raise ProviderError(msg, code="network_error") from e

        if response.status_code >= 500:
            msg = f"Initialization endpoint responded {response.status_code}"
            raise ProviderError(msg, status=response.status_code)
        if response.is_error:
            logger.error(
                "Initialization rejected for %s: HTTP %d", user_id, response.status_code
            )
            return False
        logger.info("Backend initialized user data for %s", user_id)
        return True
