"""
Static drill catalog and focus-area options.

Drills are not database entities: `session_drills.drill_id` and
`drill_frequency.drill_id` reference the ids below.
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict

from practice_tracker.schemas import DrillDifficulty, FocusArea


class Drill(BaseModel):
    """One named exercise within a focus area."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    difficulty: DrillDifficulty
    focus: FocusArea


class FocusOption(BaseModel):
    """Label and emoji shown for a focus area."""

    model_config = ConfigDict(frozen=True)

    id: FocusArea
    label: str
    emoji: str


def _drills(focus: FocusArea, *entries) -> List[Drill]:
    return [
        Drill(id=drill_id, name=name, difficulty=DrillDifficulty(level), focus=focus)
        for drill_id, name, level in entries
    ]


# Softball-focused catalog
DRILL_CATALOG: Dict[FocusArea, List[Drill]] = {
    FocusArea.HITTING: _drills(
        FocusArea.HITTING,
        ("tee-work", "Tee Work", "beginner"),
        ("soft-toss", "Soft Toss", "beginner"),
        ("front-toss", "Front Toss", "intermediate"),
        ("live-bp", "Live BP", "intermediate"),
        ("machine-bp", "Machine BP", "intermediate"),
        ("bunting", "Bunting", "beginner"),
    ),
    FocusArea.PITCHING: _drills(
        FocusArea.PITCHING,
        ("warmup-throws", "Warmup Throws", "beginner"),
        ("fastball-spots", "Fastball Spots", "intermediate"),
        ("changeup-work", "Changeup Work", "intermediate"),
        ("rise-ball", "Rise Ball", "advanced"),
        ("drop-ball", "Drop Ball", "advanced"),
        ("full-bullpen", "Full Bullpen", "intermediate"),
    ),
    FocusArea.FIELDING: _drills(
        FocusArea.FIELDING,
        ("ground-balls", "Ground Balls", "beginner"),
        ("fly-balls", "Fly Balls", "beginner"),
        ("throwing", "Throwing Accuracy", "beginner"),
        ("double-plays", "Double Plays", "intermediate"),
        ("backhand", "Backhand Plays", "intermediate"),
        ("first-base", "First Base Footwork", "intermediate"),
    ),
    FocusArea.CONDITIONING: _drills(
        FocusArea.CONDITIONING,
        ("warmup", "Dynamic Warmup", "beginner"),
        ("sprints", "Sprint Work", "beginner"),
        ("agility", "Agility Drills", "intermediate"),
        ("base-running", "Base Running", "beginner"),
        ("cooldown", "Cooldown Stretch", "beginner"),
    ),
}

FOCUS_OPTIONS: List[FocusOption] = [
    FocusOption(id=FocusArea.HITTING, label="Hitting", emoji="🏏"),
    FocusOption(id=FocusArea.PITCHING, label="Pitching", emoji="🥎"),
    FocusOption(id=FocusArea.FIELDING, label="Fielding", emoji="🧤"),
    FocusOption(id=FocusArea.CONDITIONING, label="Conditioning", emoji="🏃‍♀️"),
]

DURATION_PRESETS = [15, 30, 45, 60, 90]


def find_drill(drill_id: str) -> Optional[Drill]:
    """Look up a drill by id across every focus area."""
    for drills in DRILL_CATALOG.values():
        for drill in drills:
            if drill.id == drill_id:
                return drill
    return None


def focus_option(focus: FocusArea) -> FocusOption:
    return next(opt for opt in FOCUS_OPTIONS if opt.id == focus)


def focus_label(focus: FocusArea) -> str:
    return focus_option(focus).label
