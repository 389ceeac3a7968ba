"""
Store state and its transition functions.

Each function takes the current `StoreState` plus the result of a
completed gateway call and returns the next state. They do no I/O, so every
mutation the store performs can be tested by feeding synthetic results.
"""

from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from practice_tracker.catalog import find_drill
from practice_tracker.schemas import (
    Athlete,
    DrillFrequency,
    FocusArea,
    GoalRow,
    GoalSlot,
    PracticeSession,
    QuickLogForm,
    empty_goal_map,
)


class StoreState(BaseModel):
    """Everything the presentation layer renders for the signed-in user."""

    model_config = ConfigDict(frozen=True)

    athletes: List[Athlete] = Field(default_factory=list)
    current_athlete_id: Optional[str] = None
    sessions: List[PracticeSession] = Field(default_factory=list)
    goals: Dict[FocusArea, Optional[GoalSlot]] = Field(default_factory=empty_goal_map)
    drill_frequency: List[DrillFrequency] = Field(default_factory=list)
    log_form: QuickLogForm = Field(default_factory=QuickLogForm)

    needs_athlete: bool = False
    loading: bool = False
    saving: bool = False
    error: Optional[str] = None

    @property
    def current_athlete(self) -> Optional[Athlete]:
        for athlete in self.athletes:
            if athlete.id == self.current_athlete_id:
                return athlete
        return None

    @property
    def active_goals(self) -> Dict[FocusArea, GoalSlot]:
        """Active goals in focus-area order."""
        return {
            skill: slot
            for skill, slot in self.goals.items()
            if slot is not None and slot.is_active
        }


# ============================================================================
# Generic
# ============================================================================

def loading_started(state: StoreState) -> StoreState:
    return state.model_copy(update={"loading": True, "error": None})


def saving_started(state: StoreState) -> StoreState:
    return state.model_copy(update={"saving": True, "error": None})


def failed(state: StoreState, message: str) -> StoreState:
    """Surface an error and end any in-flight loading/saving."""
    return state.model_copy(update={"error": message, "loading": False, "saving": False})


def finished(state: StoreState) -> StoreState:
    return state.model_copy(update={"loading": False, "saving": False})


def error_dismissed(state: StoreState) -> StoreState:
    return state.model_copy(update={"error": None})


# ============================================================================
# Loading
# ============================================================================

def athletes_loaded(state: StoreState, athletes: List[Athlete]) -> StoreState:
    return state.model_copy(update={"athletes": list(athletes), "needs_athlete": len(athletes) == 0})


def athlete_selected(state: StoreState, athlete_id: str) -> StoreState:
    return state.model_copy(update={"current_athlete_id": athlete_id, "needs_athlete": False})


def sessions_loaded(state: StoreState, sessions: List[PracticeSession]) -> StoreState:
    return state.model_copy(update={"sessions": list(sessions)})


def goals_loaded(state: StoreState, rows: Iterable[GoalRow]) -> StoreState:
    goals = empty_goal_map()
    for row in rows:
        goals[row.skill] = GoalSlot(id=row.id, text=row.text, is_active=True)
    return state.model_copy(update={"goals": goals})


def drill_frequency_loaded(state: StoreState, rows: List[DrillFrequency]) -> StoreState:
    return state.model_copy(update={"drill_frequency": list(rows)})


def athlete_data_cleared(state: StoreState) -> StoreState:
    return state.model_copy(update={
        "sessions": [],
        "goals": empty_goal_map(),
        "drill_frequency": [],
    })


# ============================================================================
# Log form
# ============================================================================

def form_edited(state: StoreState, **changes) -> StoreState:
    data = state.log_form.model_dump()
    data.update(changes)
    return state.model_copy(update={"log_form": QuickLogForm(**data)})


def focus_toggled(state: StoreState, focus: FocusArea) -> StoreState:
    form = state.log_form
    if focus in form.focus:
        focus_list = [f for f in form.focus if f != focus]
        # Drills under a deselected focus area go with it
        drills = [
            d for d in form.drills
            if (find_drill(d) is None or find_drill(d).focus != focus)
        ]
    else:
        focus_list = form.focus + [focus]
        drills = form.drills
    return form_edited(state, focus=focus_list, drills=drills)


def drill_toggled(state: StoreState, drill_id: str) -> StoreState:
    drills = state.log_form.drills
    if drill_id in drills:
        drills = [d for d in drills if d != drill_id]
    else:
        drills = drills + [drill_id]
    return form_edited(state, drills=drills)


def form_reset(state: StoreState) -> StoreState:
    return state.model_copy(update={"log_form": QuickLogForm()})


# ============================================================================
# Mutations
# ============================================================================

def session_logged(state: StoreState, session: PracticeSession) -> StoreState:
    """Prepend a confirmed session; no re-fetch."""
    return state.model_copy(update={"sessions": [session] + list(state.sessions)})


def goal_deleted(state: StoreState, skill: FocusArea) -> StoreState:
    goals = dict(state.goals)
    goals[skill] = None
    return state.model_copy(update={"goals": goals})


def goal_text_updated(state: StoreState, skill: FocusArea, text: str) -> StoreState:
    goals = dict(state.goals)
    existing = goals.get(skill)
    if existing is None:
        return state
    goals[skill] = existing.model_copy(update={"text": text})
    return state.model_copy(update={"goals": goals})


def goals_deactivated(state: StoreState, skills: Iterable[FocusArea]) -> StoreState:
    goals = dict(state.goals)
    for skill in skills:
        slot = goals.get(skill)
        if slot is not None:
            goals[skill] = slot.model_copy(update={"is_active": False})
    return state.model_copy(update={"goals": goals})


def goal_created(state: StoreState, row: GoalRow) -> StoreState:
    goals = dict(state.goals)
    goals[row.skill] = GoalSlot(id=row.id, text=row.text, is_active=True)
    return state.model_copy(update={"goals": goals})


def athlete_created(state: StoreState, athlete: Athlete) -> StoreState:
    """Append to the roster and make it current; a new athlete has no data yet."""
    next_state = state.model_copy(update={"athletes": list(state.athletes) + [athlete]})
    next_state = athlete_selected(next_state, athlete.id)
    return athlete_data_cleared(next_state)
