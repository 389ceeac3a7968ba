"""
Figures derived from the store for display.

Covers the free dashboard (week summary, last practice, goal display) and
the Pro charts:
- Weekly totals over recent weeks
- Focus-area distribution
- Minutes per day over the last 30 days
- Drill frequency bars
"""

import datetime as dt
from typing import Dict, List, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict

from practice_tracker.catalog import find_drill
from practice_tracker.schemas import DrillFrequency, FocusArea, GoalSlot, PracticeSession
from practice_tracker.tier import Entitlement


class WeekSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    week_start: dt.date
    practices: int
    minutes: int
    badge_emoji: str
    badge_label: str


class WeeklyTotal(BaseModel):
    model_config = ConfigDict(frozen=True)

    week_start: dt.date
    practices: int
    minutes: int


class FocusShare(BaseModel):
    model_config = ConfigDict(frozen=True)

    focus: FocusArea
    count: int
    percent: float


class DayActivity(BaseModel):
    model_config = ConfigDict(frozen=True)

    day: dt.date
    practices: int
    minutes: int


class DrillBar(BaseModel):
    model_config = ConfigDict(frozen=True)

    drill_id: str
    name: str
    times_used: int
    percent: int


def start_of_week(today: dt.date) -> dt.date:
    """Weeks start on Sunday."""
    return today - dt.timedelta(days=(today.weekday() + 1) % 7)


def practice_badge(practices: int) -> Tuple[str, str]:
    if practices >= 3:
        return "🔥", "on fire!"
    if practices >= 1:
        return "👍", "good start"
    return "—", "let's go!"


def week_summary(sessions: Sequence[PracticeSession], today: Optional[dt.date] = None) -> WeekSummary:
    today = today or dt.date.today()
    week_start = start_of_week(today)
    this_week = [s for s in sessions if s.date >= week_start]
    practices = len(this_week)
    emoji, label = practice_badge(practices)
    return WeekSummary(
        week_start=week_start,
        practices=practices,
        minutes=sum(s.duration for s in this_week),
        badge_emoji=emoji,
        badge_label=label,
    )


def last_session(sessions: Sequence[PracticeSession]) -> Optional[PracticeSession]:
    return sessions[0] if sessions else None


# ============================================================================
# Goals
# ============================================================================

def _active(goals: Dict[FocusArea, Optional[GoalSlot]]) -> List[Tuple[FocusArea, GoalSlot]]:
    return [(skill, slot) for skill, slot in goals.items() if slot is not None and slot.is_active]


def goals_for_display(
    goals: Dict[FocusArea, Optional[GoalSlot]], entitlement: Entitlement
) -> List[Tuple[FocusArea, GoalSlot]]:
    """One goal on the free tier, up to three on Pro."""
    return _active(goals)[: entitlement.goal_limit]


def remaining_goal_slots(goals: Dict[FocusArea, Optional[GoalSlot]], entitlement: Entitlement) -> int:
    return max(0, entitlement.goal_limit - len(_active(goals)))


def first_unused_skill(goals: Dict[FocusArea, Optional[GoalSlot]]) -> FocusArea:
    for skill in FocusArea:
        slot = goals.get(skill)
        if slot is None or not slot.is_active:
            return skill
    return FocusArea.HITTING


def can_create_goal(
    goals: Dict[FocusArea, Optional[GoalSlot]], skill: FocusArea, entitlement: Entitlement
) -> bool:
    """
    Whether the goal editor may save a new goal for `skill`.

    Free accounts can always set one (it replaces the current goal); Pro
    accounts stop at three active goals.
    """
    slot = goals.get(skill)
    if slot is not None and slot.is_active:
        return True
    if not entitlement.is_pro:
        return True
    return remaining_goal_slots(goals, entitlement) > 0


# ============================================================================
# Pro charts
# ============================================================================

def weekly_totals(
    sessions: Sequence[PracticeSession], weeks: int = 8, today: Optional[dt.date] = None
) -> List[WeeklyTotal]:
    """Practices and minutes per week, oldest week first."""
    today = today or dt.date.today()
    current = start_of_week(today)
    starts = [current - dt.timedelta(weeks=i) for i in range(weeks - 1, -1, -1)]

    totals = []
    for week_start in starts:
        week_end = week_start + dt.timedelta(days=7)
        in_week = [s for s in sessions if week_start <= s.date < week_end]
        totals.append(WeeklyTotal(
            week_start=week_start,
            practices=len(in_week),
            minutes=sum(s.duration for s in in_week),
        ))
    return totals


def focus_distribution(sessions: Sequence[PracticeSession]) -> List[FocusShare]:
    """How often each focus area was tagged, as a share of all tags."""
    counts = {area: 0 for area in FocusArea}
    for session in sessions:
        for focus in session.focus:
            counts[focus] += 1

    total = sum(counts.values())
    return [
        FocusShare(
            focus=area,
            count=count,
            percent=round(count / total * 100, 1) if total else 0.0,
        )
        for area, count in counts.items()
    ]


def activity_last_days(
    sessions: Sequence[PracticeSession], days: int = 30, today: Optional[dt.date] = None
) -> List[DayActivity]:
    """One entry per day, oldest first, ending today."""
    today = today or dt.date.today()
    first = today - dt.timedelta(days=days - 1)

    by_day: Dict[dt.date, List[PracticeSession]] = {}
    for session in sessions:
        if first <= session.date <= today:
            by_day.setdefault(session.date, []).append(session)

    activity = []
    for offset in range(days):
        day = first + dt.timedelta(days=offset)
        on_day = by_day.get(day, [])
        activity.append(DayActivity(
            day=day,
            practices=len(on_day),
            minutes=sum(s.duration for s in on_day),
        ))
    return activity


def drill_bars(rows: Sequence[DrillFrequency], top: int = 5) -> List[DrillBar]:
    """Most-used drills scaled against the most-used one."""
    if not rows:
        return []
    max_count = rows[0].times_used or 1

    bars = []
    for row in rows[:top]:
        drill = find_drill(row.drill_id)
        bars.append(DrillBar(
            drill_id=row.drill_id,
            name=drill.name if drill else row.drill_id,
            times_used=row.times_used,
            percent=round(row.times_used / max_count * 100),
        ))
    return bars
