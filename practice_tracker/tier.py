"""
Tier policy.

Whether an account has Pro entitlements is derived from the latest fetched
Profile every time it is needed. The `Entitlement` value object is computed
once per operation and passed into the store, so a single action never
mixes two evaluations.
"""

import datetime as dt
from typing import Optional

from pydantic import BaseModel, ConfigDict

from practice_tracker.schemas import Profile


FREE_ATHLETE_LIMIT = 1
PRO_ATHLETE_LIMIT = 10
FREE_GOAL_LIMIT = 1
PRO_GOAL_LIMIT = 3


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def _as_aware(value: dt.datetime) -> dt.datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=dt.timezone.utc)
    return value


def is_entitled(profile: Optional[Profile], now: Optional[dt.datetime] = None) -> bool:
    """
    Pro flag set and not expired.

    Args:
        profile: Latest fetched profile (None when signed out)
        now: Evaluation instant, defaults to the current UTC time

    Returns:
        True if the account currently has Pro entitlements
    """
    if profile is None or not profile.is_pro:
        return False
    if profile.pro_expires_at is None:
        return True
    now = _as_aware(now or _utcnow())
    return _as_aware(profile.pro_expires_at) > now


class Entitlement(BaseModel):
    """Feature gates for one evaluation of the tier policy."""

    model_config = ConfigDict(frozen=True)

    is_pro: bool = False

    @classmethod
    def from_profile(cls, profile: Optional[Profile], now: Optional[dt.datetime] = None) -> "Entitlement":
        return cls(is_pro=is_entitled(profile, now))

    @classmethod
    def free(cls) -> "Entitlement":
        return cls(is_pro=False)

    @classmethod
    def pro(cls) -> "Entitlement":
        return cls(is_pro=True)

    @property
    def athlete_limit(self) -> int:
        return PRO_ATHLETE_LIMIT if self.is_pro else FREE_ATHLETE_LIMIT

    @property
    def goal_limit(self) -> int:
        return PRO_GOAL_LIMIT if self.is_pro else FREE_GOAL_LIMIT

    @property
    def can_log_drills(self) -> bool:
        return self.is_pro

    @property
    def can_view_drill_frequency(self) -> bool:
        return self.is_pro

    @property
    def can_view_charts(self) -> bool:
        return self.is_pro

    @property
    def can_export(self) -> bool:
        return self.is_pro

    @property
    def can_switch_athletes(self) -> bool:
        return self.is_pro

    @property
    def label(self) -> str:
        return "✨ Pro" if self.is_pro else "Free"
