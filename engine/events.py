"""
Event classification and narrative context.

Maps a recorded scoring action to exactly one EventType and assembles the
match context (score line, run rates, phase, chase situation) that both the
prompt builders and the fallback templates read from.
"""

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Dict, Optional

from engine.match_state import BALLS_PER_OVER, MAX_WICKETS, MatchState


class EventType(str, Enum):
    RUNS_SCORED = "RUNS_SCORED"
    FOUR = "FOUR"
    SIX = "SIX"
    WICKET = "WICKET"
    WIDE = "WIDE"
    NO_BALL = "NO_BALL"
    DOT_BALL = "DOT_BALL"
    INNINGS_END = "INNINGS_END"
    MATCH_START = "MATCH_START"
    MATCH_END = "MATCH_END"

    @classmethod
    def parse(cls, value):
        """Return the member for ``value`` or None if it is not a known event type."""
        try:
            return cls(str(value).upper())
        except ValueError:
            return None


HIGH_IMPACT_EVENTS = frozenset({EventType.SIX, EventType.FOUR, EventType.WICKET})

PRIORITY = {
    EventType.SIX: "high",
    EventType.FOUR: "high",
    EventType.WICKET: "critical",
    EventType.INNINGS_END: "critical",
    EventType.MATCH_END: "critical",
    EventType.RUNS_SCORED: "medium",
    EventType.NO_BALL: "medium",
    EventType.MATCH_START: "medium",
    EventType.DOT_BALL: "low",
    EventType.WIDE: "low",
}


def determine_priority(event_type):
    return PRIORITY.get(event_type, "medium")


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------

def classify_runs(runs):
    if runs == 6:
        return EventType.SIX
    if runs == 4:
        return EventType.FOUR
    if runs == 0:
        return EventType.DOT_BALL
    return EventType.RUNS_SCORED


def classify_extra(extra_type):
    if extra_type == "wide":
        return EventType.WIDE
    if extra_type == "noball":
        return EventType.NO_BALL
    # byes and leg-byes read as ordinary runs
    return EventType.RUNS_SCORED


def classify_wicket():
    return EventType.WICKET


# ---------------------------------------------------------------------------
# Context
# ---------------------------------------------------------------------------

def get_match_phase(balls, total_overs):
    """Phase by share of the innings' balls already bowled."""
    max_balls = max(total_overs * BALLS_PER_OVER, 1)
    progress = balls / max_balls
    if progress < 0.2:
        return "powerplay"
    if progress < 0.5:
        return "middle"
    if progress < 0.8:
        return "death"
    return "final"


def get_match_situation(innings, runs_needed, wickets):
    if innings == 1:
        return "setting_target"
    if runs_needed is None:
        return "chasing"
    if runs_needed <= 0:
        return "won"
    if wickets >= MAX_WICKETS:
        return "lost"
    if runs_needed < 20:
        return "tight_finish"
    if runs_needed < 50:
        return "close_chase"
    if runs_needed > 100:
        return "difficult_chase"
    return "chasing"


def required_run_rate(runs_needed, balls_remaining):
    if runs_needed is None or balls_remaining is None or runs_needed <= 0 or balls_remaining <= 0:
        return None
    return round(runs_needed / balls_remaining * BALLS_PER_OVER, 2)


@dataclass
class CommentaryContext:
    batting_team: str
    bowling_team: str
    current_score: str
    runs: int
    wickets: int
    overs: str
    balls: int
    run_rate: float
    innings: int
    total_overs: int
    match_phase: str
    situation: str
    batter_name: Optional[str] = None
    bowler_name: Optional[str] = None
    target: Optional[int] = None
    runs_needed: Optional[int] = None
    balls_remaining: Optional[int] = None
    required_run_rate: Optional[float] = None
    wickets_left: Optional[int] = None

    @property
    def is_chasing(self):
        return self.target is not None and self.runs_needed is not None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def build_context(state: MatchState, event_data: Dict[str, Any], team_names: Dict[str, str],
                  innings: Optional[int] = None) -> CommentaryContext:
    """Assemble the narrative context for one event.

    ``innings`` defaults to the match's current innings; INNINGS_END passes the
    innings that just closed.
    """
    innings = innings or event_data.get("innings") or state.current_innings
    score = state.score_for(innings)
    batting_id = score.batting_team_id
    bowling_id = state.bowling_team_id(innings)

    chasing = innings == 2 and score.target is not None
    return CommentaryContext(
        batting_team=event_data.get("battingTeam") or team_names.get(batting_id, "The batting side"),
        bowling_team=event_data.get("bowlingTeam") or team_names.get(bowling_id, "The fielding side"),
        current_score=score.score_line,
        runs=score.runs,
        wickets=score.wickets,
        overs=score.overs,
        balls=score.balls,
        run_rate=score.run_rate,
        innings=innings,
        total_overs=state.total_overs,
        match_phase=get_match_phase(score.balls, state.total_overs),
        situation=get_match_situation(innings, score.runs_needed, score.wickets),
        batter_name=event_data.get("batterName"),
        bowler_name=event_data.get("bowlerName") or score.current_bowler,
        target=score.target if chasing else None,
        runs_needed=score.runs_needed if chasing else None,
        balls_remaining=score.balls_remaining if chasing else None,
        required_run_rate=required_run_rate(score.runs_needed, score.balls_remaining) if chasing else None,
        wickets_left=MAX_WICKETS - score.wickets if chasing else None,
    )
