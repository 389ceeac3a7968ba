"""
Component wiring.

`TrackerContext` is the single owner of the gateway, identity client,
account manager and store: it creates them at startup, hands the account
state to whoever needs it, and disposes of them at shutdown.
"""

from typing import Optional

import httpx

from practice_tracker.account import AccountState, IdentityManager
from practice_tracker.config import Settings
from practice_tracker.gateway import RemoteDataGateway
from practice_tracker.identity import IdentityProvider
from practice_tracker.storage import DurableStorage
from practice_tracker.store import PracticeStore
from practice_tracker.tier import Entitlement


class TrackerContext:
    """Application components for one run."""

    def __init__(
        self,
        settings: Settings,
        client: Optional[httpx.Client] = None,
        storage: Optional[DurableStorage] = None,
    ):
        """
        Build every component from settings.

        Args:
            settings: Loaded configuration
            client: Optional shared httpx client (tests pass one with a mock transport)
            storage: Optional storage override; defaults to the configured file
        """
        self.settings = settings
        self.storage = storage or DurableStorage(settings.storage_path)
        self.identity = IdentityProvider(
            settings.supabase_url,
            settings.supabase_anon_key,
            self.storage,
            client=client,
        )
        self.gateway = RemoteDataGateway(
            settings.supabase_url,
            settings.supabase_anon_key,
            token_provider=lambda: self.identity.access_token,
            client=client,
        )
        self.account = IdentityManager(self.identity, self.gateway)
        self.store = PracticeStore(self.gateway, self.storage)

    @property
    def account_state(self) -> AccountState:
        return self.account.state

    def entitlement(self) -> Entitlement:
        """Fresh tier evaluation against the latest profile."""
        return self.account.state.entitlement()

    def start(self) -> AccountState:
        return self.account.start()

    def close(self) -> None:
        self.account.close()
        self.identity.close()
        self.gateway.close()

    def __enter__(self) -> "TrackerContext":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
