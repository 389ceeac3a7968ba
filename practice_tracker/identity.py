"""
Identity provider client.

Talks to the hosted auth service (GoTrue REST API) for password sign-in,
sign-up, sign-out and token refresh. The current authentication session is
persisted to durable storage so it survives restarts, and every change to
it is broadcast to subscribers.
"""

import time
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

import httpx
from loguru import logger
from pydantic import BaseModel, ConfigDict, ValidationError

from practice_tracker.storage import AUTH_SESSION_KEY, DurableStorage


# Refresh tokens this many seconds before they actually expire
EXPIRY_MARGIN_SECONDS = 60


class AuthEvent(str, Enum):
    """Authentication state transitions broadcast to subscribers."""
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"


class AuthUser(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    email: Optional[str] = None
    identities: Optional[List[Dict[str, Any]]] = None


class AuthSession(BaseModel):
    """Access/refresh token pair for a signed-in user."""

    model_config = ConfigDict(extra="ignore")

    access_token: str
    refresh_token: Optional[str] = None
    token_type: str = "bearer"
    expires_in: Optional[int] = None
    expires_at: Optional[int] = None
    user: AuthUser

    def is_expired(self, now: Optional[float] = None) -> bool:
        if self.expires_at is None:
            return False
        now = time.time() if now is None else now
        return self.expires_at - EXPIRY_MARGIN_SECONDS <= now


class AuthError(BaseModel):
    message: str
    status_code: Optional[int] = None


class AuthResponse(BaseModel):
    user: Optional[AuthUser] = None
    session: Optional[AuthSession] = None
    error: Optional[AuthError] = None


AuthCallback = Callable[[AuthEvent, Optional[AuthSession]], None]


class Subscription:
    """Handle returned by `on_auth_state_change`."""

    def __init__(self, provider: "IdentityProvider", callback: AuthCallback):
        self._provider = provider
        self.callback = callback

    def unsubscribe(self) -> None:
        self._provider._remove_subscriber(self)


def _auth_error(response: httpx.Response) -> AuthError:
    try:
        body = response.json()
    except ValueError:
        body = None

    message = None
    if isinstance(body, dict):
        message = (
            body.get("msg")
            or body.get("error_description")
            or body.get("message")
            or body.get("error")
        )
    return AuthError(
        message=str(message or response.text or response.reason_phrase),
        status_code=response.status_code,
    )


class IdentityProvider:
    """
    GoTrue client with a persisted session.

    Callers only ever see `AuthResponse`/`AuthError` values; token plumbing
    stays inside this class and the gateway's token provider.
    """

    def __init__(
        self,
        base_url: str,
        anon_key: str,
        storage: DurableStorage,
        client: Optional[httpx.Client] = None,
    ):
        """
        Initialize the identity client.

        Args:
            base_url: Service URL (without the `/auth/v1` suffix)
            anon_key: Public anonymous key
            storage: Durable storage holding the persisted session
            client: Optional pre-configured httpx client
        """
        self.base_url = base_url.rstrip("/")
        self.anon_key = anon_key
        self.storage = storage
        self.client = client or httpx.Client(timeout=10.0)
        self._session: Optional[AuthSession] = None
        self._subscribers: List[Subscription] = []

    # ===== Subscription =====

    def on_auth_state_change(self, callback: AuthCallback) -> Subscription:
        subscription = Subscription(self, callback)
        self._subscribers.append(subscription)
        return subscription

    def _remove_subscriber(self, subscription: Subscription) -> None:
        if subscription in self._subscribers:
            self._subscribers.remove(subscription)

    def _notify(self, event: AuthEvent, session: Optional[AuthSession]) -> None:
        logger.debug(f"Auth state change: {event.value}")
        for subscription in list(self._subscribers):
            subscription.callback(event, session)

    # ===== Session storage =====

    @property
    def access_token(self) -> Optional[str]:
        return self._session.access_token if self._session else None

    def _save_session(self, session: AuthSession) -> None:
        self._session = session
        self.storage.set(AUTH_SESSION_KEY, session.model_dump(mode="json"))

    def _clear_session(self) -> None:
        self._session = None
        self.storage.remove(AUTH_SESSION_KEY)

    def _load_stored_session(self) -> Optional[AuthSession]:
        raw = self.storage.get(AUTH_SESSION_KEY)
        if not raw:
            return None
        try:
            return AuthSession(**raw)
        except (TypeError, ValidationError) as e:
            logger.warning(f"Discarding malformed stored session: {e}")
            self.storage.remove(AUTH_SESSION_KEY)
            return None

    # ===== HTTP =====

    def _post(self, path: str, payload: dict, params: Optional[dict] = None,
              token: Optional[str] = None) -> httpx.Response:
        headers = {
            "apikey": self.anon_key,
            "Authorization": f"Bearer {token or self.anon_key}",
            "Content-Type": "application/json",
        }
        return self.client.post(
            f"{self.base_url}/auth/v1/{path}",
            params=params,
            headers=headers,
            json=payload,
        )

    def _session_response(self, response: httpx.Response) -> AuthResponse:
        """Parse a token-grant or sign-up body into user/session."""
        try:
            body = response.json()
        except ValueError:
            return AuthResponse(error=AuthError(message="Malformed auth response", status_code=response.status_code))

        if not isinstance(body, dict):
            return AuthResponse(error=AuthError(message="Malformed auth response", status_code=response.status_code))

        try:
            if body.get("access_token"):
                session = AuthSession(**body)
                if session.expires_at is None and session.expires_in is not None:
                    session = session.model_copy(update={"expires_at": int(time.time()) + session.expires_in})
                return AuthResponse(user=session.user, session=session)
            if body.get("id"):
                return AuthResponse(user=AuthUser(**body))
            if isinstance(body.get("user"), dict):
                return AuthResponse(user=AuthUser(**body["user"]))
        except ValidationError as e:
            return AuthResponse(error=AuthError(message=f"Malformed auth response: {e}", status_code=response.status_code))

        return AuthResponse(error=AuthError(message="Malformed auth response", status_code=response.status_code))

    # ===== Operations =====

    def get_session(self) -> Optional[AuthSession]:
        """
        Current session, restored from storage on first use.

        An expired session is refreshed silently; one that cannot be
        refreshed is discarded.
        """
        if self._session is None:
            self._session = self._load_stored_session()
        if self._session is None:
            return None

        if self._session.is_expired():
            result = self._refresh(self._session, notify=False)
            if result.session is None:
                reason = result.error.message if result.error else "no session returned"
                logger.info(f"Stored session could not be refreshed: {reason}")
                self._clear_session()
                return None
        return self._session

    def sign_in_with_password(self, email: str, password: str) -> AuthResponse:
        try:
            response = self._post(
                "token",
                {"email": email, "password": password},
                params={"grant_type": "password"},
            )
        except httpx.RequestError as e:
            return AuthResponse(error=AuthError(message=str(e)))

        if not response.is_success:
            return AuthResponse(error=_auth_error(response))

        result = self._session_response(response)
        if result.session is not None:
            self._save_session(result.session)
            self._notify(AuthEvent.SIGNED_IN, result.session)
        return result

    def sign_up(self, email: str, password: str) -> AuthResponse:
        try:
            response = self._post("signup", {"email": email, "password": password})
        except httpx.RequestError as e:
            return AuthResponse(error=AuthError(message=str(e)))

        if not response.is_success:
            return AuthResponse(error=_auth_error(response))

        result = self._session_response(response)
        if result.session is not None:
            self._save_session(result.session)
            self._notify(AuthEvent.SIGNED_IN, result.session)
        return result

    def sign_out(self) -> Optional[AuthError]:
        """End the session locally and on the server; local state is cleared either way."""
        session = self.get_session()
        error = None
        if session is not None:
            try:
                response = self._post("logout", {}, token=session.access_token)
                if not response.is_success and response.status_code != 401:
                    error = _auth_error(response)
            except httpx.RequestError as e:
                error = AuthError(message=str(e))

        if error is not None:
            logger.warning(f"Server sign-out failed: {error.message}")

        self._clear_session()
        self._notify(AuthEvent.SIGNED_OUT, None)
        return error

    def refresh_session(self) -> AuthResponse:
        session = self.get_session()
        if session is None:
            return AuthResponse(error=AuthError(message="Auth session missing!"))
        return self._refresh(session, notify=True)

    def _refresh(self, session: AuthSession, notify: bool) -> AuthResponse:
        if not session.refresh_token:
            return AuthResponse(error=AuthError(message="No refresh token"))
        try:
            response = self._post(
                "token",
                {"refresh_token": session.refresh_token},
                params={"grant_type": "refresh_token"},
            )
        except httpx.RequestError as e:
            return AuthResponse(error=AuthError(message=str(e)))

        if not response.is_success:
            return AuthResponse(error=_auth_error(response))

        result = self._session_response(response)
        if result.session is not None:
            self._save_session(result.session)
            if notify:
                self._notify(AuthEvent.TOKEN_REFRESHED, result.session)
        return result

    def close(self) -> None:
        self.client.close()
