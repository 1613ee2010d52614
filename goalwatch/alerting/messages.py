"""Telegram message bodies (legacy Markdown parse mode)."""

from datetime import datetime
from typing import Optional

from goalwatch.models import TrackedMatch
from goalwatch.tracking.observations import LineObservation

TEST_MESSAGE = "🤖 Goal line monitor bot is online and working!"

_MARKDOWN_SPECIALS = ("_", "*", "`", "[")


def escape_markdown(text) -> str:
    """Escape the characters legacy Markdown treats as entity delimiters."""
    text = "" if text is None else str(text)
    for ch in _MARKDOWN_SPECIALS:
        text = text.replace(ch, f"\\{ch}")
    return text


def _fmt_time(value: Optional[datetime]) -> str:
    return value.strftime("%Y-%m-%d %H:%M:%S UTC") if value else "N/A"


def _fmt_line(value: Optional[float]) -> str:
    return "N/A" if value is None else f"{value:g}"


def format_detection(
    match: TrackedMatch,
    league_name: str,
    observation: LineObservation,
    target_line: float,
    score: Optional[str],
) -> str:
    target = _fmt_line(target_line)
    return (
        f"🚨 *TARGET GOAL LINE {target} DETECTED!* 🚨\n"
        f"\n"
        f"📋 *League:* {escape_markdown(league_name)}\n"
        f"⚽ *Match:* {escape_markdown(match.home_team)} vs {escape_markdown(match.away_team)}\n"
        f"🎯 *Current Score:* {escape_markdown(score or match.current_score or 'N/A')}\n"
        f"\n"
        f"📊 *Asian Goal Line:* {_fmt_line(observation.line)}\n"
        f"   ⬆️ Over {target}: {escape_markdown(observation.over_odds)}\n"
        f"   ⬇️ Under {target}: {escape_markdown(observation.under_odds)}\n"
        f"\n"
        f"🕐 *Detection Time:* {_fmt_time(match.detection_time)}\n"
        f"🆔 Match ID: `{match.match_id}`"
    )


def format_result(match: TrackedMatch, league_name: str) -> str:
    home = "?" if match.final_score_home is None else match.final_score_home
    away = "?" if match.final_score_away is None else match.final_score_away
    return (
        f"✅ *RESULT: Match Finished*\n"
        f"\n"
        f"📋 *League:* {escape_markdown(league_name)}\n"
        f"⚽ *Match:* {escape_markdown(match.home_team)} vs {escape_markdown(match.away_team)}\n"
        f"🏆 *Final Score:* {home} - {away}\n"
        f"🕐 *End Time:* {_fmt_time(match.finished_at)}\n"
        f"📊 *Asian Line at Detection:* {_fmt_line(match.detected_line)}\n"
        f"\n"
        f"🆔 Match ID: `{match.match_id}`"
    )
