"""
Athlete/session/goal store.

Loads the signed-in user's roster, recent practices, active goals and
(Pro only) drill frequency, and performs every mutation against the
gateway. Local state only changes after the backend confirms; any error
aborts the operation and is kept in `state.error` for display.

Entitlement is passed into each operation rather than read from a shared
profile, so one action always sees a single tier evaluation.
"""

from typing import Iterable, List, Optional, Type, TypeVar

from loguru import logger
from pydantic import BaseModel, ValidationError

from practice_tracker import state as transitions
from practice_tracker.gateway import (
    GatewayResult,
    GatewayTransportError,
    Order,
    RemoteDataGateway,
    eq,
    is_null,
)
from practice_tracker.schemas import (
    Athlete,
    DrillFrequency,
    FocusArea,
    GoalRow,
    PracticeSession,
    QuickLogForm,
    SessionRow,
)
from practice_tracker.state import StoreState
from practice_tracker.storage import SELECTED_ATHLETE_KEY, DurableStorage
from practice_tracker.tier import Entitlement


RECENT_SESSION_LIMIT = 50
DRILL_FREQUENCY_LIMIT = 10

ModelT = TypeVar("ModelT", bound=BaseModel)


class StoreOperationError(Exception):
    """Internal signal that aborts the current operation with a message."""


def _parse_rows(model: Type[ModelT], data: Optional[Iterable[dict]]) -> List[ModelT]:
    try:
        return [model(**row) for row in (data or [])]
    except (TypeError, ValidationError) as e:
        raise StoreOperationError(f"Malformed {model.__name__} data: {e}") from e


def _parse_row(model: Type[ModelT], data: Optional[dict]) -> ModelT:
    if not isinstance(data, dict):
        raise StoreOperationError(f"Backend returned no {model.__name__} row")
    return _parse_rows(model, [data])[0]


def _check(result: GatewayResult) -> GatewayResult:
    if result.error is not None:
        raise StoreOperationError(result.error.message)
    return result


class PracticeStore:
    """
    In-memory cache of the signed-in user's practice data.

    Every public method returns the resulting `StoreState`. Client-side
    precondition failures are silent no-ops that return the state unchanged.
    """

    def __init__(
        self,
        gateway: RemoteDataGateway,
        storage: DurableStorage,
        state: Optional[StoreState] = None,
    ):
        self.gateway = gateway
        self.storage = storage
        self._state = state or StoreState()

    @property
    def state(self) -> StoreState:
        return self._state

    def _set(self, state: StoreState) -> StoreState:
        self._state = state
        return state

    def _fail(self, operation: str, message: str) -> StoreState:
        logger.error(f"Error {operation}: {message}")
        return self._set(transitions.failed(self._state, message))

    def dismiss_error(self) -> StoreState:
        return self._set(transitions.error_dismissed(self._state))

    # ===== Loading =====

    def load_data(self, entitlement: Entitlement) -> StoreState:
        """
        Load the roster, pick the current athlete, then load that athlete's data.

        With no athletes the state switches to `needs_athlete` and nothing
        else is fetched.
        """
        self._set(transitions.loading_started(self._state))
        try:
            result = _check(self.gateway.select(
                "athletes",
                [is_null("archived_at")],
                order=Order(column="created_at", ascending=True),
                limit=entitlement.athlete_limit,
            ))
            athletes = _parse_rows(Athlete, result.data)
        except (StoreOperationError, GatewayTransportError) as e:
            return self._fail("loading data", str(e))

        self._set(transitions.athletes_loaded(self._state, athletes))
        if not athletes:
            logger.info("No athletes yet; prompting to add one")
            return self._set(transitions.finished(self._state))

        remembered = self.storage.get(SELECTED_ATHLETE_KEY)
        current = next((a for a in athletes if a.id == remembered), athletes[0])
        self.storage.set(SELECTED_ATHLETE_KEY, current.id)
        self._set(transitions.athlete_selected(self._state, current.id))

        return self.load_athlete_data(current.id, entitlement)

    def load_athlete_data(self, athlete_id: str, entitlement: Entitlement) -> StoreState:
        """
        Fetch sessions, active goals and (Pro only) drill frequency.

        A failing fetch stops the load; what earlier steps loaded is kept.
        """
        self._set(transitions.loading_started(self._state))
        try:
            result = _check(self.gateway.select(
                "sessions",
                [eq("athlete_id", athlete_id)],
                order=Order(column="date", ascending=False),
                limit=RECENT_SESSION_LIMIT,
            ))
            sessions = [row.to_display() for row in _parse_rows(SessionRow, result.data)]
            self._set(transitions.sessions_loaded(self._state, sessions))

            result = _check(self.gateway.select(
                "goals",
                [eq("athlete_id", athlete_id), eq("is_active", True)],
            ))
            self._set(transitions.goals_loaded(self._state, _parse_rows(GoalRow, result.data)))

            if entitlement.can_view_drill_frequency:
                result = _check(self.gateway.select(
                    "drill_frequency",
                    [eq("athlete_id", athlete_id)],
                    order=Order(column="times_used", ascending=False),
                    limit=DRILL_FREQUENCY_LIMIT,
                ))
                frequency = _parse_rows(DrillFrequency, result.data)
            else:
                frequency = []
            self._set(transitions.drill_frequency_loaded(self._state, frequency))
        except (StoreOperationError, GatewayTransportError) as e:
            return self._fail("loading athlete data", str(e))

        return self._set(transitions.finished(self._state))

    def switch_athlete(self, athlete_id: str, entitlement: Entitlement) -> StoreState:
        """Make another roster athlete current (Pro only) and load their data."""
        if not entitlement.can_switch_athletes:
            logger.debug("Athlete switching requires Pro")
            return self._state
        if not any(a.id == athlete_id for a in self._state.athletes):
            logger.warning(f"Athlete {athlete_id} is not in the loaded roster")
            return self._state

        self.storage.set(SELECTED_ATHLETE_KEY, athlete_id)
        next_state = transitions.athlete_selected(self._state, athlete_id)
        self._set(transitions.athlete_data_cleared(next_state))
        return self.load_athlete_data(athlete_id, entitlement)

    # ===== Log form =====

    def edit_log_form(self, **changes) -> StoreState:
        return self._set(transitions.form_edited(self._state, **changes))

    def toggle_focus(self, focus: FocusArea) -> StoreState:
        return self._set(transitions.focus_toggled(self._state, focus))

    def toggle_drill(self, drill_id: str) -> StoreState:
        return self._set(transitions.drill_toggled(self._state, drill_id))

    # ===== Mutations =====

    def handle_quick_log(self, entitlement: Entitlement, form: Optional[QuickLogForm] = None) -> StoreState:
        """
        Save the logging form as a new practice.

        Drill rows (Pro only) are inserted one at a time after the session.
        If one fails, the session and the drills already inserted stay;
        the session is still shown and the error is surfaced.
        """
        if form is not None:
            self._set(self._state.model_copy(update={"log_form": form}))
        form = self._state.log_form
        athlete = self._state.current_athlete

        if not form.is_submittable or athlete is None:
            logger.debug("Quick log ignored: no focus selected or no athlete")
            return self._state

        self._set(transitions.saving_started(self._state))
        session: Optional[PracticeSession] = None
        try:
            result = _check(self.gateway.insert("sessions", form.to_row(athlete.id)))
            row = _parse_row(SessionRow, result.data)
            session = row.to_display()

            if entitlement.can_log_drills:
                for drill_id in form.drills:
                    _check(self.gateway.insert(
                        "session_drills",
                        {"session_id": row.id, "drill_id": drill_id},
                        return_representation=False,
                    ))
        except (StoreOperationError, GatewayTransportError) as e:
            if session is not None:
                self._set(transitions.session_logged(self._state, session))
            return self._fail("saving session", str(e))

        next_state = transitions.session_logged(self._state, session)
        next_state = transitions.form_reset(next_state)
        return self._set(transitions.finished(next_state))

    def save_goal(self, skill: FocusArea, text: str, entitlement: Entitlement) -> StoreState:
        """
        Create, update or delete the goal for `skill`.

        Empty text deletes the existing goal (no-op when there is none).
        Creating a goal on the free tier first deactivates every other
        active goal, one request each.
        """
        athlete = self._state.current_athlete
        if athlete is None:
            return self._state

        text = (text or "").strip()
        existing = self._state.active_goals.get(skill)

        if not text and existing is None:
            return self._state

        self._set(transitions.saving_started(self._state))
        deactivated: List[FocusArea] = []
        try:
            if not text:
                _check(self.gateway.delete("goals", [eq("id", existing.id)]))
                self._set(transitions.goal_deleted(self._state, skill))
            elif existing is not None:
                _check(self.gateway.update("goals", {"text": text}, [eq("id", existing.id)]))
                self._set(transitions.goal_text_updated(self._state, skill, text))
            else:
                if not entitlement.is_pro:
                    for other_skill, slot in self._state.active_goals.items():
                        if other_skill == skill:
                            continue
                        _check(self.gateway.update("goals", {"is_active": False}, [eq("id", slot.id)]))
                        deactivated.append(other_skill)

                result = _check(self.gateway.insert("goals", {
                    "athlete_id": athlete.id,
                    "skill": skill.value,
                    "text": text,
                    "is_active": True,
                }))
                row = _parse_row(GoalRow, result.data)
                next_state = transitions.goals_deactivated(self._state, deactivated)
                self._set(transitions.goal_created(next_state, row))
        except (StoreOperationError, GatewayTransportError) as e:
            if deactivated:
                self._set(transitions.goals_deactivated(self._state, deactivated))
            return self._fail("saving goal", str(e))

        return self._set(transitions.finished(self._state))

    def create_athlete(self, name: str, owner_id: str, entitlement: Entitlement) -> StoreState:
        """Add an athlete to the roster and make them current."""
        name = (name or "").strip()
        if not name:
            return self._state
        if len(self._state.athletes) >= entitlement.athlete_limit:
            logger.info(f"Athlete limit ({entitlement.athlete_limit}) reached; not creating another")
            return self._state

        self._set(transitions.saving_started(self._state))
        try:
            result = _check(self.gateway.insert("athletes", {"profile_id": owner_id, "name": name}))
            athlete = _parse_row(Athlete, result.data)
        except (StoreOperationError, GatewayTransportError) as e:
            return self._fail("creating athlete", str(e))

        self.storage.set(SELECTED_ATHLETE_KEY, athlete.id)
        next_state = transitions.athlete_created(self._state, athlete)
        return self._set(transitions.finished(next_state))
