"""
Tests for the command-line interface.

Each command runs against the in-memory backend; storage is shared between
invocations so a sign-in carries over like it would between real runs.
"""

import pytest
from typer.testing import CliRunner

from practice_tracker import cli
from practice_tracker.app import TrackerContext
from practice_tracker.config import load_settings
from conftest import ANON_KEY, BASE_URL


EMAIL = "parent@example.com"
PASSWORD = "secret1"

runner = CliRunner()


# Fixtures

@pytest.fixture(autouse=True)
def wired(backend, storage, monkeypatch, tmp_path):
    """Point every command at the fake backend."""
    monkeypatch.chdir(tmp_path)

    def open_context():
        settings = load_settings(supabase_url=BASE_URL, supabase_anon_key=ANON_KEY)
        return TrackerContext(settings, client=backend.client(), storage=storage)

    monkeypatch.setattr(cli, "open_context", open_context)


def invoke(*args, input=None):
    return runner.invoke(cli.app, list(args), input=input)


def sign_in(backend, is_pro=False, athlete=None):
    user_id = backend.add_user(EMAIL, PASSWORD, is_pro=is_pro)
    if athlete:
        backend.seed("athletes", profile_id=user_id, name=athlete)
    result = invoke("login", "--email", EMAIL, "--password", PASSWORD)
    assert result.exit_code == 0, result.output
    return user_id


# Test Cases

# Account


def test_login_success(backend):
    """Test that login reports the account and its plan."""
    backend.add_user(EMAIL, PASSWORD)

    result = invoke("login", "--email", EMAIL, "--password", PASSWORD)

    assert result.exit_code == 0
    assert f"Signed in as {EMAIL}" in result.output
    assert "Free" in result.output


def test_login_bad_password(backend):
    """Test that a wrong password exits with the backend's message."""
    backend.add_user(EMAIL, PASSWORD)

    result = invoke("login", "--email", EMAIL, "--password", "wrong")

    assert result.exit_code == 1
    assert "Invalid login credentials" in result.output


def test_signup_rejects_short_password():
    """Test that signup refuses passwords under six characters."""
    result = invoke("signup", "--email", EMAIL, "--password", "abc")

    assert result.exit_code == 1
    assert "at least 6 characters" in result.output


def test_signup_duplicate_account(backend):
    """Test that signing up with a taken email is reported as a duplicate."""
    backend.add_user(EMAIL, PASSWORD)

    result = invoke("signup", "--email", EMAIL, "--password", "another1")

    assert result.exit_code == 1
    assert "already exists" in result.output


def test_signup_confirmation_pending(backend):
    """Test that signup asks the user to confirm their email when required."""
    backend.confirm_email = True

    result = invoke("signup", "--email", "new@example.com", "--password", PASSWORD)

    assert result.exit_code == 0
    assert "Check your email" in result.output


def test_commands_require_sign_in():
    """Test that data commands refuse to run without a session."""
    result = invoke("status")

    assert result.exit_code == 1
    assert "Not signed in" in result.output


def test_logout_forgets_session(backend):
    """Test that logout clears the stored session."""
    sign_in(backend, athlete="Maya")

    assert invoke("logout").exit_code == 0
    assert invoke("status").exit_code == 1


def test_missing_configuration_is_fatal(monkeypatch, tmp_path):
    """Test that missing backend settings stop the command."""
    monkeypatch.undo()
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("SUPABASE_URL", raising=False)
    monkeypatch.delenv("SUPABASE_ANON_KEY", raising=False)

    result = invoke("status")

    assert result.exit_code == 1
    assert "Missing SUPABASE_URL" in result.output


# Athletes and logging


def test_first_athlete_flow(backend):
    """Test that a new account is prompted for, then creates, its first athlete."""
    sign_in(backend)

    prompt = invoke("status")
    assert prompt.exit_code == 1
    assert "No athlete yet" in prompt.output

    added = invoke("add-athlete", "Maya")
    assert added.exit_code == 0
    assert "Added Maya" in added.output
    assert backend.rows("athletes")[0]["name"] == "Maya"


def test_free_tier_cannot_add_second_athlete(backend):
    """Test that a free account is limited to one athlete."""
    sign_in(backend, athlete="Maya")

    result = invoke("add-athlete", "Jo")

    assert result.exit_code == 1
    assert "Pro feature" in result.output
    assert len(backend.rows("athletes")) == 1


def test_log_then_history(backend):
    """Test that a logged practice is saved and shows up in history."""
    sign_in(backend, athlete="Maya")

    logged = invoke("log", "-f", "hitting", "-f", "fielding", "-d", "45", "--date", "2026-03-04",
                    "--note", "Tee work")
    assert logged.exit_code == 0, logged.output
    assert "Logged 45 min" in logged.output

    row = backend.rows("sessions")[0]
    assert row["focus"] == ["hitting", "fielding"]
    assert row["date"] == "2026-03-04"

    shown = invoke("history")
    assert shown.exit_code == 0
    assert "Tee work" in shown.output


def test_log_prompts_for_missing_values(backend):
    """Test that log prompts for focus and duration when they are not given."""
    sign_in(backend, athlete="Maya")

    result = invoke("log", input="pitching, conditioning\n60\n")

    assert result.exit_code == 0, result.output
    row = backend.rows("sessions")[0]
    assert row["focus"] == ["pitching", "conditioning"]
    assert row["duration_minutes"] == 60


def test_log_rejects_unknown_focus(backend):
    """Test that an unknown focus area is rejected before anything is sent."""
    sign_in(backend, athlete="Maya")

    result = invoke("log", "-f", "bowling", "-d", "30")

    assert result.exit_code == 1
    assert "Unknown focus area" in result.output
    assert backend.rows("sessions") == []


def test_free_log_drops_drills(backend):
    """Test that free accounts save the session but not its drills."""
    sign_in(backend, athlete="Maya")

    result = invoke("log", "-f", "hitting", "-d", "30", "--drill", "tee-work")

    assert result.exit_code == 0
    assert "Pro feature" in result.output
    assert len(backend.rows("sessions")) == 1
    assert backend.rows("session_drills") == []


def test_pro_log_saves_drills(backend):
    """Test that Pro accounts save drills in the order given."""
    sign_in(backend, is_pro=True, athlete="Maya")

    result = invoke("log", "-f", "hitting", "-d", "30", "--drill", "tee-work", "--drill", "soft-toss")

    assert result.exit_code == 0, result.output
    assert [r["drill_id"] for r in backend.rows("session_drills")] == ["tee-work", "soft-toss"]


# Goals


def test_free_goal_replaces_current(backend):
    """Test that a confirmed new goal replaces a free account's only goal."""
    sign_in(backend, athlete="Maya")
    assert invoke("goal", "hitting", "Level swing").exit_code == 0

    result = invoke("goal", "pitching", "Hit spots", input="y\n")

    assert result.exit_code == 0, result.output
    active = backend.rows("goals", is_active=True)
    assert [g["text"] for g in active] == ["Hit spots"]


def test_free_goal_replacement_declined(backend):
    """Test that declining the replacement keeps the current goal."""
    sign_in(backend, athlete="Maya")
    invoke("goal", "hitting", "Level swing")

    result = invoke("goal", "pitching", "Hit spots", input="n\n")

    assert result.exit_code == 0
    assert [g["text"] for g in backend.rows("goals", is_active=True)] == ["Level swing"]


def test_pro_goal_cap(backend):
    """Test that Pro accounts stop at three active goals."""
    sign_in(backend, is_pro=True, athlete="Maya")
    for skill in ("hitting", "pitching", "fielding"):
        assert invoke("goal", skill, f"{skill} goal").exit_code == 0

    result = invoke("goal", "conditioning", "Sprints")

    assert result.exit_code == 1
    assert "already have 3 goals" in result.output
    assert len(backend.rows("goals", is_active=True)) == 3


# Pro features


def test_charts_require_pro(backend):
    """Test that charts are refused on the free plan."""
    sign_in(backend, athlete="Maya")

    result = invoke("charts")

    assert result.exit_code == 1
    assert "Pro feature" in result.output


def test_charts_for_pro(backend):
    """Test that Pro accounts see the weekly and monthly charts."""
    sign_in(backend, is_pro=True, athlete="Maya")
    invoke("log", "-f", "hitting", "-d", "30")

    result = invoke("charts")

    assert result.exit_code == 0, result.output
    assert "Weekly Totals" in result.output
    assert "Last 30 days" in result.output


def test_export_for_pro(backend, tmp_path):
    """Test that export writes a file named after the athlete."""
    sign_in(backend, is_pro=True, athlete="Maya")
    invoke("log", "-f", "hitting", "-d", "30")

    result = invoke("export", "--format", "csv", "--output", str(tmp_path / "out"))

    assert result.exit_code == 0, result.output
    files = list((tmp_path / "out").glob("practice_log_maya_*.csv"))
    assert len(files) == 1


def test_profile_timeout_withholds_pro_features(backend, tmp_path):
    """Test that a Pro account whose profile lookup times out gets free-tier commands."""
    sign_in(backend, is_pro=True, athlete="Maya")
    assert invoke("log", "-f", "hitting", "-d", "30", "--drill", "tee-work").exit_code == 0
    backend.timeout_on("GET", "profiles")

    charts = invoke("charts")
    assert charts.exit_code == 1
    assert "Pro feature" in charts.output

    export = invoke("export", "--format", "csv", "--output", str(tmp_path / "out"))
    assert export.exit_code == 1
    assert "Pro feature" in export.output
    assert not (tmp_path / "out").exists()

    frequency_fetches = len(backend.rest_requests("GET", "drill_frequency"))
    status = invoke("status")
    assert status.exit_code == 0, status.output
    assert "Unlock drill tracking" in status.output
    assert "Most practiced drills" not in status.output
    assert len(backend.rest_requests("GET", "drill_frequency")) == frequency_fetches


def test_switch_athlete_for_pro(backend, storage):
    """Test that switch selects another athlete and remembers the choice."""
    sign_in(backend, is_pro=True, athlete="Maya")
    second = backend.seed("athletes", profile_id="user-x", name="Jo")

    result = invoke("switch", "jo")

    assert result.exit_code == 0, result.output
    assert "Now tracking Jo" in result.output
    assert storage.get("selected_athlete_id") == second["id"]


def test_switch_athlete_load_failure_exits(backend):
    """Test that switch exits non-zero when the new athlete's data fails to load."""
    sign_in(backend, is_pro=True, athlete="Maya")
    backend.seed("athletes", profile_id="user-x", name="Jo")
    session_fetches = []

    def after_first_fetch(body):
        session_fetches.append(body)
        return len(session_fetches) > 1

    backend.fail_on("GET", "sessions", match=after_first_fetch, times=None)

    result = invoke("switch", "jo")

    assert result.exit_code == 1
    assert "permission denied" in result.output
    assert "Now tracking" not in result.output


def test_upgrade_recheck_picks_up_pro(backend, monkeypatch):
    """Test that finishing checkout and re-checking shows the Pro plan."""
    user_id = sign_in(backend, athlete="Maya")

    def finish_checkout(*args, **kwargs):
        backend.rows("profiles", id=user_id)[0]["is_pro"] = True
        return True

    monkeypatch.setattr(cli.Confirm, "ask", finish_checkout)

    result = invoke("upgrade")

    assert result.exit_code == 0, result.output
    assert "Upgrade to Pro" in result.output
    assert "Plan: ✨ Pro" in result.output


def test_drill_catalog():
    """Test that the drill catalog filters by focus area."""
    result = invoke("drills", "--focus", "pitching")

    assert result.exit_code == 0
    assert "Rise Ball" in result.output
    assert "Tee Work" not in result.output


# Dashboard


def test_status_dashboard_free(backend):
    """Test that the free dashboard shows the week and the Pro upsell."""
    sign_in(backend, athlete="Maya")
    invoke("log", "-f", "hitting", "-d", "30", "--note", "Tee work")

    result = invoke("status")

    assert result.exit_code == 0, result.output
    assert "Maya's Practice" in result.output
    assert "good start" in result.output
    assert "Unlock drill tracking" in result.output


def test_athletes_marks_current(backend):
    """Test that the athlete list marks the selected athlete."""
    sign_in(backend, is_pro=True, athlete="Maya")
    backend.seed("athletes", profile_id="user-x", name="Jo")

    result = invoke("athletes")

    assert result.exit_code == 0, result.output
    assert "Maya" in result.output
    assert "Jo" in result.output
    assert "▶" in result.output
