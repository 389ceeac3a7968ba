"""
Pydantic models for practice tracker data validation.

This module defines the core data structures for:
- Profiles: Parent accounts carrying the Pro entitlement flag
- Athletes: Child profiles that practices are logged against
- Sessions: Logged practices (backend row shape and display shape)
- Goals: Free-text objectives, one slot per focus area
- Drill frequency: Pre-aggregated drill usage (Pro only)
"""

import datetime as dt
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


NOTE_MAX_LENGTH = 200
ATHLETE_NAME_MAX_LENGTH = 50
DEFAULT_DURATION_MINUTES = 30


# ============================================================================
# Enumerations
# ============================================================================

class FocusArea(str, Enum):
    """Skill emphasis of a practice. Also the skill tag of a goal."""
    HITTING = "hitting"
    PITCHING = "pitching"
    FIELDING = "fielding"
    CONDITIONING = "conditioning"


class DrillDifficulty(str, Enum):
    """Difficulty rating of a catalog drill."""
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


# ============================================================================
# Backend Rows
# ============================================================================

class Profile(BaseModel):
    """
    Parent account record.

    Created at registration and mutated only by the billing flow; this
    client never writes it.
    """

    model_config = ConfigDict(extra="ignore")

    id: str = Field(..., description="Account identifier (matches the auth user id)")
    is_pro: bool = Field(default=False, description="Paid-tier flag")
    pro_expires_at: Optional[dt.datetime] = Field(
        None, description="When the Pro entitlement lapses (absent = no expiry)"
    )
    stripe_customer_id: Optional[str] = Field(None, description="Billing customer reference")
    created_at: Optional[dt.datetime] = None

    @classmethod
    def free_default(cls, user_id: str) -> "Profile":
        """Profile used whenever the real one cannot be fetched."""
        return cls(id=user_id, is_pro=False)


class Athlete(BaseModel):
    """Child profile under a parent account. First name only."""

    model_config = ConfigDict(extra="ignore")

    id: str
    profile_id: Optional[str] = None
    name: str
    created_at: Optional[dt.datetime] = None
    archived_at: Optional[dt.datetime] = None


class SessionRow(BaseModel):
    """A `sessions` row exactly as the backend returns it."""

    model_config = ConfigDict(extra="ignore")

    id: str
    athlete_id: Optional[str] = None
    date: dt.date
    duration_minutes: int
    focus: List[FocusArea]
    note: Optional[str] = None
    reflection: Optional[str] = None
    created_at: Optional[dt.datetime] = None

    def to_display(self) -> "PracticeSession":
        """Map to the display shape (renamed duration, empty-string text)."""
        return PracticeSession(
            id=self.id,
            date=self.date,
            duration=self.duration_minutes,
            focus=list(self.focus),
            note=self.note or "",
            reflection=self.reflection or "",
        )


class GoalRow(BaseModel):
    """A `goals` row."""

    model_config = ConfigDict(extra="ignore")

    id: str
    athlete_id: Optional[str] = None
    skill: FocusArea
    text: str
    is_active: bool = True
    linked_drill_id: Optional[str] = None
    created_at: Optional[dt.datetime] = None


class DrillFrequency(BaseModel):
    """Row of the read-only `drill_frequency` view."""

    model_config = ConfigDict(extra="ignore")

    athlete_id: Optional[str] = None
    drill_id: str
    times_used: int = Field(..., ge=0)


# ============================================================================
# Display Shapes
# ============================================================================

class PracticeSession(BaseModel):
    """A logged practice as the presentation layer sees it."""

    model_config = ConfigDict(frozen=True)

    id: str
    date: dt.date
    duration: int
    focus: List[FocusArea]
    note: str = ""
    reflection: str = ""


class GoalSlot(BaseModel):
    """The goal held for one skill."""

    model_config = ConfigDict(frozen=True)

    id: str
    text: str
    is_active: bool = True


def empty_goal_map() -> Dict[FocusArea, Optional[GoalSlot]]:
    """One entry per focus area, all empty."""
    return {area: None for area in FocusArea}


# ============================================================================
# Forms
# ============================================================================

class QuickLogForm(BaseModel):
    """
    Fields of the practice logging form.

    Note and reflection are clipped to 200 characters the same way the
    input controls clip them while typing.
    """

    model_config = ConfigDict(frozen=True)

    date: dt.date = Field(default_factory=dt.date.today)
    duration: int = Field(default=DEFAULT_DURATION_MINUTES, gt=0)
    focus: List[FocusArea] = Field(default_factory=list)
    note: str = ""
    reflection: str = ""
    drills: List[str] = Field(default_factory=list)

    @field_validator("note", "reflection")
    @classmethod
    def clip_text(cls, v: str) -> str:
        return (v or "")[:NOTE_MAX_LENGTH]

    @field_validator("focus", "drills")
    @classmethod
    def drop_duplicates(cls, v: list) -> list:
        seen = []
        for item in v:
            if item not in seen:
                seen.append(item)
        return seen

    @property
    def is_submittable(self) -> bool:
        """Logging requires at least one focus tag."""
        return len(self.focus) > 0

    def to_row(self, athlete_id: str) -> dict:
        """Insert payload for the `sessions` collection."""
        return {
            "athlete_id": athlete_id,
            "date": self.date.isoformat(),
            "duration_minutes": self.duration,
            "focus": [f.value for f in self.focus],
            "note": self.note or None,
            "reflection": self.reflection or None,
        }
