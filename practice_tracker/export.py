"""
Practice log export (Pro).

Two formats are produced:
- CSV with fixed columns (Date, Duration, Focus Areas, Note, Reflection)
- A standalone HTML document meant for the browser's print-to-PDF
"""

import csv
import datetime as dt
import io
from html import escape
from pathlib import Path
from typing import Optional, Sequence

from practice_tracker.catalog import focus_label
from practice_tracker.schemas import PracticeSession
from practice_tracker.stats import focus_distribution, week_summary


CSV_COLUMNS = ["Date", "Duration", "Focus Areas", "Note", "Reflection"]
HTML_ROW_LIMIT = 50


def _focus_text(session: PracticeSession) -> str:
    return ", ".join(focus_label(f) for f in session.focus)


def sessions_to_csv(sessions: Sequence[PracticeSession]) -> str:
    """
    Render sessions as CSV.

    Args:
        sessions: Sessions in display order (newest first)

    Returns:
        CSV text with a header row
    """
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(CSV_COLUMNS)
    for session in sessions:
        writer.writerow([
            session.date.isoformat(),
            session.duration,
            _focus_text(session),
            session.note,
            session.reflection,
        ])
    return buffer.getvalue()


def sessions_to_html(
    athlete_name: str,
    sessions: Sequence[PracticeSession],
    today: Optional[dt.date] = None,
) -> str:
    """
    Render a printable practice report.

    Summary stats cover every session passed in; the table shows at most
    50 rows and says so when it is cut short.
    """
    today = today or dt.date.today()
    summary = week_summary(sessions, today)
    total_minutes = sum(s.duration for s in sessions)
    shares = [share for share in focus_distribution(sessions) if share.count]

    lines = []
    lines.append("<!DOCTYPE html>")
    lines.append("<html>")
    lines.append("<head>")
    lines.append('<meta charset="utf-8">')
    lines.append(f"<title>{escape(athlete_name)}'s Practice Log</title>")
    lines.append("<style>")
    lines.append("body { font-family: -apple-system, sans-serif; color: #1c1917; margin: 32px; }")
    lines.append("table { border-collapse: collapse; width: 100%; font-size: 12px; }")
    lines.append("th, td { border-bottom: 1px solid #e7e5e4; padding: 6px 8px; text-align: left; }")
    lines.append(".stats { display: flex; gap: 24px; margin-bottom: 24px; }")
    lines.append(".note { color: #78716c; font-size: 11px; }")
    lines.append("@media print { body { margin: 0; } }")
    lines.append("</style>")
    lines.append("</head>")
    lines.append("<body>")
    lines.append(f"<h1>{escape(athlete_name)}'s Practice Log</h1>")
    lines.append(f'<p class="note">Generated {today.strftime("%B %d, %Y")}</p>')

    # Summary
    lines.append('<div class="stats">')
    lines.append(f"<div><strong>{len(sessions)}</strong> practices</div>")
    lines.append(f"<div><strong>{total_minutes}</strong> total minutes</div>")
    lines.append(f"<div><strong>{summary.practices}</strong> this week ({summary.minutes} min)</div>")
    lines.append("</div>")

    if shares:
        focus_summary = ", ".join(f"{focus_label(s.focus)} {s.percent:.0f}%" for s in shares)
        lines.append(f"<p>Focus: {escape(focus_summary)}</p>")

    # Practice table
    lines.append("<table>")
    lines.append("<thead><tr>" + "".join(f"<th>{c}</th>" for c in CSV_COLUMNS) + "</tr></thead>")
    lines.append("<tbody>")
    for session in sessions[:HTML_ROW_LIMIT]:
        cells = [
            session.date.isoformat(),
            f"{session.duration} min",
            _focus_text(session),
            session.note,
            session.reflection,
        ]
        lines.append("<tr>" + "".join(f"<td>{escape(str(c))}</td>" for c in cells) + "</tr>")
    lines.append("</tbody>")
    lines.append("</table>")

    if len(sessions) > HTML_ROW_LIMIT:
        lines.append(
            f'<p class="note">Showing the {HTML_ROW_LIMIT} most recent of {len(sessions)} practices. '
            "Export CSV for the full log.</p>"
        )

    lines.append("</body>")
    lines.append("</html>")
    return "\n".join(lines)


def save_export(
    athlete_name: str,
    sessions: Sequence[PracticeSession],
    output_dir: Path,
    format: str = "csv",
    today: Optional[dt.date] = None,
) -> Path:
    """
    Write an export file.

    Args:
        athlete_name: Shown in the report and used in the filename
        sessions: Sessions to export
        output_dir: Directory to write into (created if missing)
        format: "csv" or "html"
        today: Date stamped on the file

    Returns:
        Path to the saved file

    Raises:
        ValueError: If the format is not supported
    """
    today = today or dt.date.today()
    if format == "csv":
        content = sessions_to_csv(sessions)
    elif format == "html":
        content = sessions_to_html(athlete_name, sessions, today)
    else:
        raise ValueError(f"Unsupported export format: {format}")

    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    slug = "".join(ch for ch in athlete_name.lower() if ch.isalnum()) or "athlete"
    filepath = output_dir / f"practice_log_{slug}_{today.strftime('%Y%m%d')}.{format}"

    with open(filepath, "w", newline="", encoding="utf-8") as f:
        f.write(content)

    return filepath
