"""
Command-line interface for the practice tracker.

Provides commands for:
- Account access (sign in, sign up, sign out, upgrade check)
- Logging practices and editing goals
- Managing athletes
- Pro charts, drill frequency and export
"""

import datetime as dt
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional

import typer
from loguru import logger
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm, Prompt
from rich.table import Table

from practice_tracker import stats
from practice_tracker.account import CONFIRMATION_PENDING_MESSAGE
from practice_tracker.app import TrackerContext
from practice_tracker.catalog import DRILL_CATALOG, DURATION_PRESETS, FOCUS_OPTIONS, find_drill, focus_option
from practice_tracker.config import ConfigurationError, load_settings
from practice_tracker.export import save_export
from practice_tracker.logger import setup_logger
from practice_tracker.schemas import ATHLETE_NAME_MAX_LENGTH, FocusArea
from practice_tracker.state import StoreState
from practice_tracker.tier import Entitlement

# Initialize Typer app and Rich console
app = typer.Typer(
    help="Practice Tracker - log practices, set goals, and track progress"
)
console = Console()

PRO_FEATURES = [
    "Track specific drills in each session",
    "See which drills you practice most",
    "Set up to 3 goals at once",
    "Charts and CSV/PDF export",
]


# ===== CONTEXT HELPERS =====


def open_context() -> TrackerContext:
    """Load configuration and build the application components."""
    settings = load_settings()
    setup_logger(level=settings.log_level, log_file=settings.log_file)
    return TrackerContext(settings)


@contextmanager
def _running(require_user: bool = True) -> Iterator[TrackerContext]:
    """Start the app for one command and always shut it down."""
    try:
        context = open_context()
    except ConfigurationError as e:
        console.print(f"[red]✗ {e}[/red]")
        raise typer.Exit(1)

    try:
        context.start()
        if require_user and not context.account_state.signed_in:
            console.print("[yellow]Not signed in. Run `practice-tracker login` first.[/yellow]")
            raise typer.Exit(1)
        yield context
    finally:
        context.close()


def _load(context: TrackerContext) -> StoreState:
    """Load the store and print any error banner."""
    state = context.store.load_data(context.entitlement())
    _display_error(state)
    return state


def _require_athlete(state: StoreState) -> None:
    if state.current_athlete is None:
        if state.needs_athlete:
            console.print("[yellow]No athlete yet. Add one with `practice-tracker add-athlete <first name>`.[/yellow]")
        raise typer.Exit(1)


def _require_pro(entitlement: Entitlement, feature: str) -> None:
    if not entitlement.is_pro:
        console.print(f"[violet]{feature} is a Pro feature.[/violet] Run `practice-tracker upgrade` to learn more.")
        raise typer.Exit(1)


def _parse_focus(values: List[str]) -> List[FocusArea]:
    focus = []
    for value in values:
        try:
            focus.append(FocusArea(value.lower()))
        except ValueError:
            console.print(f"[red]✗ Unknown focus area: {value}[/red]")
            raise typer.Exit(1)
    return focus


def _format_day(day: dt.date, today: Optional[dt.date] = None) -> str:
    today = today or dt.date.today()
    if day == today:
        return "Today"
    if day == today - dt.timedelta(days=1):
        return "Yesterday"
    return f"{day:%a, %b} {day.day}"


def _focus_text(focus: List[FocusArea]) -> str:
    return ", ".join(f"{focus_option(f).emoji} {focus_option(f).label}" for f in focus)


# ===== DISPLAY HELPER FUNCTIONS =====


def _display_error(state: StoreState) -> None:
    if state.error:
        console.print(Panel(state.error, title="Error", border_style="red"))


def _display_dashboard(context: TrackerContext, state: StoreState) -> None:
    """Header, week stats, last practice, goals and history."""
    entitlement = context.entitlement()
    athlete = state.current_athlete

    tier_color = "violet" if entitlement.is_pro else "white"
    console.print(
        f"\n[bold]{athlete.name}'s Practice[/bold]  "
        f"[{tier_color}]{entitlement.label}[/{tier_color}]"
    )
    today = dt.date.today()
    console.print(f"[dim]{today:%A, %B} {today.day}[/dim]\n")

    # Quick stats
    summary = stats.week_summary(state.sessions)
    table = Table(box=box.ROUNDED, show_header=True, header_style="bold cyan")
    table.add_column("This week", justify="center")
    table.add_column("Minutes", justify="center")
    table.add_column("", justify="center")
    table.add_row(
        str(summary.practices),
        str(summary.minutes),
        f"{summary.badge_emoji} {summary.badge_label}",
    )
    console.print(table)

    # Last practice
    last = stats.last_session(state.sessions)
    if last:
        console.print(f"\n[bold]Last practice:[/bold] {_format_day(last.date)} · {last.duration} min")
        console.print(f"  {_focus_text(last.focus)}")
        if last.note:
            console.print(f"  [dim]\"{last.note}\"[/dim]")

    _display_goals(state, entitlement)
    _display_history(state, limit=5)

    if entitlement.can_view_drill_frequency:
        _display_drill_bars(state)
    else:
        console.print("\n[violet]✨ Unlock drill tracking and progress trends with Pro[/violet]")


def _display_goals(state: StoreState, entitlement: Entitlement) -> None:
    title = "Goals" if entitlement.is_pro else "Current Goal"
    console.print(f"\n[bold]{title}[/bold]" + (" [violet](up to 3)[/violet]" if entitlement.is_pro else ""))

    shown = stats.goals_for_display(state.goals, entitlement)
    if not shown:
        console.print("  [dim]No goal set. Add one with `practice-tracker goal <skill> \"<text>\"`.[/dim]")
        return

    for skill, slot in shown:
        console.print(f"  {focus_option(skill).emoji} {slot.text}")

    remaining = stats.remaining_goal_slots(state.goals, entitlement)
    if entitlement.is_pro and remaining > 0:
        suggestion = stats.first_unused_skill(state.goals)
        console.print(f"  [dim]Add another goal ({remaining} remaining), e.g. {suggestion.value}[/dim]")


def _display_history(state: StoreState, limit: int) -> None:
    console.print("\n[bold]Recent[/bold]")
    if not state.sessions:
        console.print("  [dim]No practices logged yet.[/dim]")
        return

    table = Table(box=box.SIMPLE)
    table.add_column("Date", style="cyan")
    table.add_column("Min", justify="right")
    table.add_column("Focus")
    table.add_column("Note", style="dim")
    for session in state.sessions[:limit]:
        table.add_row(
            _format_day(session.date),
            str(session.duration),
            ", ".join(focus_option(f).label for f in session.focus),
            session.note,
        )
    console.print(table)


def _display_drill_bars(state: StoreState) -> None:
    bars = stats.drill_bars(state.drill_frequency)
    if not bars:
        return
    console.print("\n[bold]Most practiced drills[/bold]")
    for bar in bars:
        filled = max(1, bar.percent // 5)
        console.print(f"  {bar.name:<22} [violet]{'█' * filled}[/violet] {bar.times_used}")


# ===== CLI COMMANDS =====


@app.command()
def login(
    email: str = typer.Option(..., "--email", "-e", prompt=True, help="Account email"),
    password: str = typer.Option(..., "--password", prompt=True, hide_input=True, help="Account password"),
):
    """
    Sign in with email and password.
    """
    with _running(require_user=False) as context:
        error = context.account.sign_in(email, password)
        if error:
            console.print(f"[red]✗ {error}[/red]")
            raise typer.Exit(1)
        console.print(f"✓ Signed in as [green]{email}[/green] ({context.entitlement().label})")


@app.command()
def signup(
    email: str = typer.Option(..., "--email", "-e", prompt=True, help="Account email"),
    password: str = typer.Option(
        ..., "--password", prompt=True, hide_input=True, confirmation_prompt=True,
        help="Password (at least 6 characters)",
    ),
):
    """
    Create an account.
    """
    if len(password) < 6:
        console.print("[red]✗ Password must be at least 6 characters[/red]")
        raise typer.Exit(1)

    with _running(require_user=False) as context:
        outcome = context.account.sign_up(email, password)
        if outcome.error:
            console.print(f"[red]✗ {outcome.error}[/red]")
            raise typer.Exit(1)
        if outcome.confirmation_pending:
            console.print(f"[yellow]{CONFIRMATION_PENDING_MESSAGE}[/yellow]")
            return
        console.print(f"✓ Account created for [green]{email}[/green]")


@app.command()
def logout():
    """
    Sign out.
    """
    with _running(require_user=False) as context:
        if context.account_state.signed_in:
            context.account.sign_out()
        console.print("✓ Signed out")


@app.command()
def status():
    """
    Show this week's stats, goals and recent practices.
    """
    with _running() as context:
        state = _load(context)
        _require_athlete(state)
        _display_dashboard(context, state)
        console.print()


@app.command()
def log(
    focus: Optional[List[str]] = typer.Option(
        None, "--focus", "-f",
        help="Focus area (hitting, pitching, fielding, conditioning); repeat for more",
    ),
    duration: Optional[int] = typer.Option(None, "--duration", "-d", min=1, help="Minutes practiced"),
    on: Optional[str] = typer.Option(None, "--date", help="Practice date (YYYY-MM-DD), default today"),
    note: str = typer.Option("", "--note", "-n", help="Quick note (max 200 characters)"),
    reflection: str = typer.Option("", "--reflection", "-r", help="What felt better today?"),
    drill: Optional[List[str]] = typer.Option(None, "--drill", help="Drill id (Pro); repeat for more"),
):
    """
    Log a practice.

    Prompts for anything not given on the command line.
    """
    with _running() as context:
        state = _load(context)
        _require_athlete(state)
        entitlement = context.entitlement()

        focus_values = list(focus or [])
        if not focus_values:
            choices = ", ".join(opt.id.value for opt in FOCUS_OPTIONS)
            answer = Prompt.ask(f"Focus areas ({choices}; comma separated)")
            focus_values = [v.strip() for v in answer.split(",") if v.strip()]
        focus_areas = _parse_focus(focus_values)

        if duration is None:
            preset = Prompt.ask(
                "Duration (minutes)",
                choices=[str(d) for d in DURATION_PRESETS],
                default="30",
            )
            duration = int(preset)

        try:
            practice_date = dt.date.fromisoformat(on) if on else dt.date.today()
        except ValueError:
            console.print(f"[red]✗ Invalid date: {on}[/red]")
            raise typer.Exit(1)

        drills = list(drill or [])
        if drills and not entitlement.can_log_drills:
            console.print("[yellow]Drill tracking is a Pro feature; drills were not saved.[/yellow]")
        for drill_id in drills:
            if find_drill(drill_id) is None:
                console.print(f"[red]✗ Unknown drill: {drill_id}[/red]")
                raise typer.Exit(1)

        context.store.edit_log_form(
            date=practice_date,
            duration=duration,
            focus=focus_areas,
            note=note,
            reflection=reflection,
            drills=drills,
        )
        if not context.store.state.log_form.is_submittable:
            console.print("[red]✗ Pick at least one focus area[/red]")
            raise typer.Exit(1)

        state = context.store.handle_quick_log(entitlement)
        if state.error:
            _display_error(state)
            raise typer.Exit(1)

        logged = state.sessions[0]
        console.print(
            f"✓ Logged [green]{logged.duration} min[/green] of {_focus_text(logged.focus)} "
            f"for {state.current_athlete.name} ({_format_day(logged.date)})"
        )


@app.command()
def history(
    limit: int = typer.Option(20, "--limit", "-l", min=1, max=50, help="Number of practices to show"),
):
    """
    List recent practices.
    """
    with _running() as context:
        state = _load(context)
        _require_athlete(state)
        _display_history(state, limit=limit)
        console.print()


@app.command()
def goal(
    skill: str = typer.Argument(..., help="Skill: hitting, pitching, fielding or conditioning"),
    text: Optional[str] = typer.Argument(None, help="Goal text; leave empty to remove the goal"),
):
    """
    Set, change or remove the goal for a skill.
    """
    skill_area = _parse_focus([skill])[0]

    with _running() as context:
        state = _load(context)
        _require_athlete(state)
        entitlement = context.entitlement()

        if text is None:
            current = state.goals.get(skill_area)
            text = Prompt.ask(
                "What are you working on? (empty to remove)",
                default=current.text if current and current.is_active else "",
                show_default=False,
            )

        if text.strip() and not stats.can_create_goal(state.goals, skill_area, entitlement):
            console.print("[yellow]You already have 3 goals. Remove one first.[/yellow]")
            raise typer.Exit(1)

        if text.strip() and not entitlement.is_pro:
            others = [s for s in state.active_goals if s != skill_area]
            if others and not Confirm.ask("Free accounts have one goal at a time. Replace your current goal?", default=True):
                raise typer.Exit(0)

        state = context.store.save_goal(skill_area, text, entitlement)
        if state.error:
            _display_error(state)
            raise typer.Exit(1)

        _display_goals(state, entitlement)
        console.print()


@app.command()
def athletes():
    """
    List your athletes.
    """
    with _running() as context:
        state = _load(context)
        if not state.athletes:
            console.print("[yellow]No athletes yet. Add one with `practice-tracker add-athlete <first name>`.[/yellow]")
            return

        table = Table(title="Athletes", box=box.ROUNDED)
        table.add_column("", width=2)
        table.add_column("Name", style="cyan")
        table.add_column("ID", style="dim")
        for athlete in state.athletes:
            marker = "▶" if athlete.id == state.current_athlete_id else ""
            table.add_row(marker, athlete.name, athlete.id)
        console.print(table)


@app.command("add-athlete")
def add_athlete(
    name: str = typer.Argument(..., help="Athlete's first name"),
):
    """
    Add an athlete (one on Free, several on Pro).
    """
    name = name[:ATHLETE_NAME_MAX_LENGTH].strip()
    if not name:
        console.print("[red]✗ Enter a first name[/red]")
        raise typer.Exit(1)

    with _running() as context:
        state = _load(context)
        entitlement = context.entitlement()

        if len(state.athletes) >= entitlement.athlete_limit:
            if entitlement.is_pro:
                console.print(f"[yellow]You already have {entitlement.athlete_limit} athletes.[/yellow]")
            else:
                console.print("[violet]Multiple athletes is a Pro feature.[/violet]")
            raise typer.Exit(1)

        user = context.account_state.user
        state = context.store.create_athlete(name, user.id, entitlement)
        if state.error:
            _display_error(state)
            raise typer.Exit(1)

        console.print(f"✓ Added [green]{state.current_athlete.name}[/green]")


@app.command()
def switch(
    athlete: str = typer.Argument(..., help="Athlete name or id"),
):
    """
    Switch the current athlete (Pro).
    """
    with _running() as context:
        state = _load(context)
        entitlement = context.entitlement()
        _require_pro(entitlement, "Switching athletes")

        match = next(
            (a for a in state.athletes if a.id == athlete or a.name.lower() == athlete.lower()),
            None,
        )
        if match is None:
            console.print(f"[red]✗ No athlete named {athlete}[/red]")
            raise typer.Exit(1)

        state = context.store.switch_athlete(match.id, entitlement)
        if state.error:
            _display_error(state)
            raise typer.Exit(1)

        console.print(f"✓ Now tracking [green]{match.name}[/green]")


@app.command()
def drills(
    focus: Optional[str] = typer.Option(None, "--focus", "-f", help="Only show one focus area"),
):
    """
    Show the drill catalog.
    """
    areas = _parse_focus([focus]) if focus else list(FocusArea)

    table = Table(title="Drill Catalog", box=box.ROUNDED)
    table.add_column("Focus", style="cyan")
    table.add_column("Drill id")
    table.add_column("Name")
    table.add_column("Level", style="dim")
    for area in areas:
        for entry in DRILL_CATALOG[area]:
            table.add_row(focus_option(area).label, entry.id, entry.name, entry.difficulty.value)
    console.print(table)


@app.command()
def charts():
    """
    Weekly totals, focus distribution and 30-day activity (Pro).
    """
    with _running() as context:
        entitlement = context.entitlement()
        _require_pro(entitlement, "Charts")
        state = _load(context)
        _require_athlete(state)

        weekly = Table(title="Weekly Totals", box=box.ROUNDED)
        weekly.add_column("Week of", style="cyan")
        weekly.add_column("Practices", justify="right")
        weekly.add_column("Minutes", justify="right")
        weekly.add_column("")
        totals = stats.weekly_totals(state.sessions)
        peak = max((t.minutes for t in totals), default=0) or 1
        for total in totals:
            weekly.add_row(
                f"{total.week_start:%b} {total.week_start.day}",
                str(total.practices),
                str(total.minutes),
                "[green]" + "█" * round(total.minutes / peak * 20) + "[/green]",
            )
        console.print(weekly)

        focus_table = Table(title="Focus Distribution", box=box.ROUNDED)
        focus_table.add_column("Focus", style="cyan")
        focus_table.add_column("Practices", justify="right")
        focus_table.add_column("Share", justify="right")
        for share in stats.focus_distribution(state.sessions):
            option = focus_option(share.focus)
            focus_table.add_row(f"{option.emoji} {option.label}", str(share.count), f"{share.percent:.1f}%")
        console.print(focus_table)

        activity = stats.activity_last_days(state.sessions)
        strip = "".join("■" if day.practices else "·" for day in activity)
        active_days = sum(1 for day in activity if day.practices)
        console.print(f"\n[bold]Last 30 days[/bold] ({active_days} active days)")
        console.print(f"  [green]{strip}[/green]\n")


@app.command()
def export(
    format: str = typer.Option("csv", "--format", "-f", help="Export format (csv or html)"),
    output: Path = typer.Option(Path("exports"), "--output", "-o", help="Directory to write the export into"),
):
    """
    Export the practice log as CSV or printable HTML (Pro).
    """
    if format not in ("csv", "html"):
        console.print(f"[red]✗ Unsupported format: {format}[/red]")
        raise typer.Exit(1)

    with _running() as context:
        _require_pro(context.entitlement(), "Export")
        state = _load(context)
        _require_athlete(state)

        path = save_export(state.current_athlete.name, state.sessions, output, format=format)
        console.print(f"✓ Exported {len(state.sessions)} practices: [cyan]{path}[/cyan]")
        if format == "html":
            console.print("[dim]Open it in a browser and print to PDF.[/dim]")


@app.command()
def upgrade():
    """
    Show Pro features and re-check your plan after upgrading.
    """
    with _running() as context:
        if context.entitlement().is_pro:
            console.print("[violet]✨ You're on Pro.[/violet]")
            return

        content = ["Get deeper insights into your practice with drill tracking and progress trends.\n"]
        content.extend(f"  ✓ {feature}" for feature in PRO_FEATURES)
        console.print(Panel("\n".join(content), title="Upgrade to Pro", border_style="violet"))

        if Confirm.ask("Finished upgrading? Re-check your plan now", default=False):
            context.account.refresh_profile()
            logger.info("Profile refreshed after upgrade check")
            console.print(f"Plan: {context.entitlement().label}")


if __name__ == "__main__":
    app()
