"""
Session/identity manager.

Owns the signed-in user and the Profile it maps to. State is an immutable
`AccountState` that is replaced (never mutated) on every change; listeners
registered with `add_listener` receive each new state.

A profile that cannot be fetched degrades the account to the free tier
instead of blocking the application.
"""

import datetime as dt
from typing import Callable, List, Optional

from loguru import logger
from pydantic import BaseModel, ConfigDict, ValidationError

from practice_tracker.gateway import GatewayTransportError, RemoteDataGateway, eq
from practice_tracker.identity import AuthEvent, AuthSession, AuthUser, IdentityProvider
from practice_tracker.schemas import Profile
from practice_tracker.tier import Entitlement


PROFILE_FETCH_TIMEOUT_SECONDS = 5.0

DUPLICATE_ACCOUNT_MESSAGE = "An account with this email already exists. Try signing in instead."
CONFIRMATION_PENDING_MESSAGE = "Check your email for a confirmation link!"


class AccountState(BaseModel):
    """Who is signed in and what their profile says."""

    model_config = ConfigDict(frozen=True)

    user: Optional[AuthUser] = None
    profile: Optional[Profile] = None
    loading: bool = True

    @property
    def signed_in(self) -> bool:
        return self.user is not None

    def entitlement(self, now: Optional[dt.datetime] = None) -> Entitlement:
        """Evaluate the tier policy against the current profile."""
        return Entitlement.from_profile(self.profile, now)


class SignUpOutcome(BaseModel):
    error: Optional[str] = None
    confirmation_pending: bool = False


StateListener = Callable[[AccountState], None]


class IdentityManager:
    """
    Lifecycle owner of the account state.

    Usage:
        manager = IdentityManager(provider, gateway)
        manager.start()
        ...
        manager.close()
    """

    def __init__(self, provider: IdentityProvider, gateway: RemoteDataGateway):
        self.provider = provider
        self.gateway = gateway
        self._state = AccountState()
        self._listeners: List[StateListener] = []
        self._subscription = None

    @property
    def state(self) -> AccountState:
        return self._state

    def add_listener(self, listener: StateListener) -> Callable[[], None]:
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    def _replace(self, **changes) -> AccountState:
        self._state = self._state.model_copy(update=changes)
        for listener in list(self._listeners):
            listener(self._state)
        return self._state

    # ===== Lifecycle =====

    def start(self) -> AccountState:
        """Subscribe to auth changes, restore any session, and load its profile."""
        if self._subscription is None:
            self._subscription = self.provider.on_auth_state_change(self._on_auth_change)

        session = self.provider.get_session()
        if session is None:
            return self._replace(user=None, profile=None, loading=False)

        self._replace(user=session.user)
        self.fetch_profile(session.user.id)
        return self._state

    def close(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None

    def _on_auth_change(self, event: AuthEvent, session: Optional[AuthSession]) -> None:
        if session is not None:
            self._replace(user=session.user)
            self.fetch_profile(session.user.id)
        else:
            self._replace(user=None, profile=None, loading=False)

    # ===== Profile =====

    def fetch_profile(self, user_id: str) -> Profile:
        """
        Fetch the profile row for `user_id` with a 5-second timeout.

        Never raises: any failure (error status, timeout, malformed body,
        missing row) yields the free-tier default profile.

        Args:
            user_id: Auth user identifier

        Returns:
            The fetched profile, or `Profile.free_default(user_id)`
        """
        profile = Profile.free_default(user_id)
        try:
            result = self.gateway.select(
                "profiles",
                [eq("id", user_id)],
                single=True,
                deadline=PROFILE_FETCH_TIMEOUT_SECONDS,
            )
            if result.error is not None:
                logger.warning(f"Profile fetch failed for {user_id}: {result.error.message}")
            elif result.data:
                profile = Profile(**result.data)
            else:
                logger.info(f"No profile row for {user_id}; using free tier")
        except GatewayTransportError as e:
            logger.warning(f"Profile fetch for {user_id} did not complete: {e}")
        except (TypeError, ValidationError) as e:
            logger.warning(f"Malformed profile for {user_id}: {e}")

        self._replace(profile=profile, loading=False)
        return profile

    def refresh_profile(self) -> Optional[Profile]:
        """Re-read the profile, e.g. after the upgrade flow completes."""
        if self._state.user is None:
            return None
        return self.fetch_profile(self._state.user.id)

    # ===== Auth actions =====

    def sign_in(self, email: str, password: str) -> Optional[str]:
        """Returns an error message, or None on success."""
        result = self.provider.sign_in_with_password(email, password)
        return result.error.message if result.error else None

    def sign_up(self, email: str, password: str) -> SignUpOutcome:
        result = self.provider.sign_up(email, password)
        if result.error is not None:
            return SignUpOutcome(error=result.error.message)

        # Zero identities is how the provider reports an already-registered email
        if result.user is not None and result.user.identities is not None and len(result.user.identities) == 0:
            return SignUpOutcome(error=DUPLICATE_ACCOUNT_MESSAGE)

        if result.user is not None and result.session is None:
            return SignUpOutcome(confirmation_pending=True)

        return SignUpOutcome()

    def sign_out(self) -> None:
        error = self.provider.sign_out()
        if error is not None:
            logger.info(f"Signed out locally; server reported: {error.message}")
