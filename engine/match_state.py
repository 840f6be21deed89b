"""
Match State Engine
==================

Owns the two innings records of one match and applies discrete scoring
actions to them. Everything here works on plain Python objects; loading,
locking and persisting are done by the caller (see engine/scoring_service.py).

Invariants kept by every operation
──────────────────────────────────
• exactly two InningsScore records (index 0 = innings 1, index 1 = innings 2)
• 0 <= wickets <= 10
• balls never decreases while an innings is open
• overs == f"{balls // 6}.{balls % 6}", run_rate == round(runs / balls * 6, 2)
• target == innings-1 runs + 1, written once when innings 2 begins
• status only moves setup -> live -> completed, current_innings only 1 -> 2
• a batter is never current and completed at the same time
"""

import copy
import logging
from datetime import datetime, timezone

from engine.errors import InvariantViolation, ScoringStateError, ValidationError

logger = logging.getLogger(__name__)

BALLS_PER_OVER = 6
MAX_WICKETS = 10
CURRENT_OVER_WINDOW = 6
WICKET_MARKER = "W"

STATUS_SETUP = "setup"
STATUS_LIVE = "live"
STATUS_COMPLETED = "completed"

EXTRA_TYPES = ("wide", "noball", "bye", "legbye")
# bye / leg-bye consume a legal delivery, wide / no-ball do not
LEGAL_EXTRA_TYPES = ("bye", "legbye")
_EXTRA_BUCKETS = {
    "wide": "wides",
    "noball": "noBalls",
    "bye": "byes",
    "legbye": "legByes",
}


def calculate_overs(balls):
    return f"{balls // BALLS_PER_OVER}.{balls % BALLS_PER_OVER}"


def calculate_run_rate(runs, balls):
    if balls <= 0:
        return 0
    return round(runs / balls * BALLS_PER_OVER, 2)


def _empty_extras():
    return {"wides": 0, "noBalls": 0, "byes": 0, "legByes": 0, "total": 0}


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------

class BatterEntry:
    """A batter's identity plus live per-innings stats."""

    def __init__(self, player_id, name, position=None, team_id=None,
                 runs=0, balls=0, fours=0, sixes=0,
                 dismissal_type=None, fielder_name=None):
        self.player_id = player_id
        self.name = name
        self.position = position
        self.team_id = team_id
        self.runs = runs
        self.balls = balls
        self.fours = fours
        self.sixes = sixes
        self.dismissal_type = dismissal_type
        self.fielder_name = fielder_name

    @property
    def strike_rate(self):
        if self.balls == 0:
            return 0
        return round(self.runs / self.balls * 100, 2)

    def to_dict(self):
        data = {
            "player": {
                "id": self.player_id,
                "playerName": self.name,
                "position": self.position,
                "teamId": self.team_id,
            },
            "stats": {
                "runs": self.runs,
                "balls": self.balls,
                "fours": self.fours,
                "sixes": self.sixes,
                "strikeRate": self.strike_rate,
            },
        }
        if self.dismissal_type is not None:
            data["dismissalType"] = self.dismissal_type
            data["fielderName"] = self.fielder_name
        return data

    @staticmethod
    def from_dict(data):
        player = data.get("player") or {}
        stats = data.get("stats") or {}
        return BatterEntry(
            player_id=str(player.get("id")),
            name=player.get("playerName"),
            position=player.get("position"),
            team_id=player.get("teamId"),
            runs=stats.get("runs", 0),
            balls=stats.get("balls", 0),
            fours=stats.get("fours", 0),
            sixes=stats.get("sixes", 0),
            dismissal_type=data.get("dismissalType"),
            fielder_name=data.get("fielderName"),
        )


class InningsScore:
    """One innings record. ``overs`` and ``run_rate`` are always derived from balls/runs."""

    def __init__(self, innings, batting_team_id):
        self.innings = innings
        self.batting_team_id = batting_team_id
        self.runs = 0
        self.wickets = 0
        self.balls = 0
        self.fours = 0
        self.sixes = 0
        self.current_over_balls = []
        self.extras = _empty_extras()
        self.target = None
        self.runs_needed = None
        self.balls_remaining = None
        self.current_bowler = None
        self.current_batter = None
        self.completed_batters = []

    @property
    def overs(self):
        return calculate_overs(self.balls)

    @property
    def run_rate(self):
        return calculate_run_rate(self.runs, self.balls)

    @property
    def score_line(self):
        return f"{self.runs}/{self.wickets}"

    def has_batted(self, player_id):
        player_id = str(player_id)
        return any(b.player_id == player_id for b in self.completed_batters)

    def push_delivery(self, outcome):
        """Sliding window of the last six deliveries, used for display only."""
        self.current_over_balls.append(outcome)
        if len(self.current_over_balls) > CURRENT_OVER_WINDOW:
            self.current_over_balls = self.current_over_balls[-CURRENT_OVER_WINDOW:]

    def refresh_chase(self, total_overs):
        if self.innings == 2 and self.target is not None:
            self.runs_needed = self.target - self.runs
            self.balls_remaining = max(total_overs * BALLS_PER_OVER - self.balls, 0)

    def team_stats(self):
        return {
            "runs": self.runs,
            "wickets": self.wickets,
            "balls": self.balls,
            "overs": self.overs,
            "runRate": self.run_rate,
            "fours": self.fours,
            "sixes": self.sixes,
            "extras": dict(self.extras),
            "currentOver": list(self.current_over_balls),
            "target": self.target,
            "runsNeeded": self.runs_needed,
            "ballsRemaining": self.balls_remaining,
        }

    def to_dict(self):
        return {
            "innings": self.innings,
            "battingTeamId": self.batting_team_id,
            "runs": self.runs,
            "wickets": self.wickets,
            "balls": self.balls,
            "fours": self.fours,
            "sixes": self.sixes,
            "overs": self.overs,
            "runRate": self.run_rate,
            "currentOver": list(self.current_over_balls),
            "extras": dict(self.extras),
            "target": self.target,
            "runsNeeded": self.runs_needed,
            "ballsRemaining": self.balls_remaining,
            "currentBowler": self.current_bowler,
            "currentPlayer": self.current_batter.to_dict() if self.current_batter else None,
            "completedPlayers": [b.to_dict() for b in self.completed_batters],
        }

    @staticmethod
    def from_dict(data):
        score = InningsScore(data.get("innings"), data.get("battingTeamId"))
        score.runs = data.get("runs", 0)
        score.wickets = data.get("wickets", 0)
        score.balls = data.get("balls", 0)
        score.fours = data.get("fours", 0)
        score.sixes = data.get("sixes", 0)
        score.current_over_balls = list(data.get("currentOver") or [])
        score.extras = {**_empty_extras(), **(data.get("extras") or {})}
        score.target = data.get("target")
        score.runs_needed = data.get("runsNeeded")
        score.balls_remaining = data.get("ballsRemaining")
        score.current_bowler = data.get("currentBowler")
        current = data.get("currentPlayer")
        score.current_batter = BatterEntry.from_dict(current) if current else None
        score.completed_batters = [BatterEntry.from_dict(b) for b in data.get("completedPlayers") or []]
        return score


class InningsEndCheck:
    """Advisory end-of-innings flags. The caller decides whether to call end_innings."""

    def __init__(self, reasons, remaining_players=None):
        self.reasons = reasons
        self.remaining_players = remaining_players

    @property
    def should_end(self):
        return bool(self.reasons)

    @property
    def reason(self):
        return self.reasons[0] if self.reasons else None

    def to_dict(self):
        return {
            "shouldEndInnings": self.should_end,
            "reason": self.reason,
            "reasons": list(self.reasons),
            "remainingPlayers": self.remaining_players,
        }


class MatchResult:
    def __init__(self, text, winner_id=None, margin=None, margin_type=None):
        self.text = text
        self.winner_id = winner_id
        self.margin = margin
        self.margin_type = margin_type  # 'runs', 'wickets' or 'tie'

    def to_dict(self):
        return {
            "text": self.text,
            "winnerId": self.winner_id,
            "margin": self.margin,
            "marginType": self.margin_type,
        }


# ---------------------------------------------------------------------------
# Match
# ---------------------------------------------------------------------------

class MatchState:
    def __init__(self, match_id, team1_id, team2_id, batting_first_id, fielding_first_id,
                 status=STATUS_SETUP, current_innings=1, total_overs=20, scores=None,
                 result_text=None, winner_id=None, completed_at=None):
        self.match_id = match_id
        self.team1_id = team1_id
        self.team2_id = team2_id
        self.batting_first_id = batting_first_id
        self.fielding_first_id = fielding_first_id
        self.status = status
        self.current_innings = current_innings
        self.total_overs = total_overs
        self.result_text = result_text
        self.winner_id = winner_id
        self.completed_at = completed_at

        if scores is None:
            self.scores = [
                InningsScore(1, batting_first_id),
                InningsScore(2, fielding_first_id),
            ]
        else:
            self.scores = [
                s if isinstance(s, InningsScore) else InningsScore.from_dict(s)
                for s in scores
            ]

    @classmethod
    def new(cls, match_id, team1_id, team2_id, batting_first_id, total_overs=20):
        if batting_first_id not in (team1_id, team2_id):
            raise ValidationError("Batting-first team must be one of the two teams")
        fielding_first_id = team2_id if batting_first_id == team1_id else team1_id
        return cls(match_id, team1_id, team2_id, batting_first_id, fielding_first_id,
                   total_overs=total_overs)

    # ------------------------------------------------------------------ #
    #  Accessors
    # ------------------------------------------------------------------ #

    @property
    def max_balls(self):
        return self.total_overs * BALLS_PER_OVER

    def score_for(self, innings):
        if len(self.scores) != 2:
            raise InvariantViolation(
                f"Match {self.match_id} has {len(self.scores)} innings records, expected 2"
            )
        score = self.scores[innings - 1]
        if score is None or score.innings != innings:
            raise InvariantViolation(f"Innings {innings} record missing for match {self.match_id}")
        return score

    @property
    def active_score(self):
        return self.score_for(self.current_innings)

    def bowling_team_id(self, innings=None):
        score = self.score_for(innings or self.current_innings)
        return self.team2_id if score.batting_team_id == self.team1_id else self.team1_id

    def scores_to_list(self):
        return [s.to_dict() for s in self.scores]

    def snapshot(self):
        """Detached copy for background work; later mutations don't leak into it."""
        return copy.deepcopy(self)

    # ------------------------------------------------------------------ #
    #  Guards
    # ------------------------------------------------------------------ #

    def _require_open(self):
        if self.status == STATUS_COMPLETED:
            raise ScoringStateError("Match is already completed")

    def _start_if_setup(self):
        if self.status == STATUS_SETUP:
            self.status = STATUS_LIVE
            logger.info(f"[Match {self.match_id}] First delivery recorded, match is live")

    def _require_batter(self, score):
        if score.current_batter is None:
            raise ScoringStateError("No batter selected", error_code="NO_CURRENT_BATTER")

    # ------------------------------------------------------------------ #
    #  Scoring actions
    # ------------------------------------------------------------------ #

    def select_batter(self, player_id, name, position=None, team_id=None):
        self._require_open()
        score = self.active_score
        player_id = str(player_id)

        if score.has_batted(player_id):
            raise ValidationError(
                "This player has already batted in this innings", error_code="ALREADY_BATTED"
            )
        if score.current_batter is not None and score.current_batter.player_id == player_id:
            return score.current_batter

        if score.current_batter is not None:
            logger.info(
                f"[Match {self.match_id}] Replacing current batter "
                f"{score.current_batter.name} with {name}"
            )
        score.current_batter = BatterEntry(player_id, name, position=position, team_id=team_id)
        return score.current_batter

    def record_runs(self, runs, bowler_name=None):
        if isinstance(runs, bool) or not isinstance(runs, int) or not 0 <= runs <= 6:
            raise ValidationError("runs must be an integer between 0 and 6")
        self._require_open()
        score = self.active_score
        self._require_batter(score)
        self._start_if_setup()

        batter = score.current_batter
        batter.runs += runs
        batter.balls += 1
        score.runs += runs
        score.balls += 1
        if runs == 4:
            batter.fours += 1
            score.fours += 1
        elif runs == 6:
            batter.sixes += 1
            score.sixes += 1

        if bowler_name:
            score.current_bowler = bowler_name
        score.push_delivery(runs)
        score.refresh_chase(self.total_overs)
        return score

    def record_extra(self, extra_type, runs=1, bowler_name=None):
        if extra_type not in EXTRA_TYPES:
            raise ValidationError(f"Extra type must be one of: {', '.join(EXTRA_TYPES)}")
        if runs is None:
            runs = 1
        if isinstance(runs, bool) or not isinstance(runs, int) or not 1 <= runs <= 7:
            raise ValidationError("Extra runs must be an integer between 1 and 7")
        self._require_open()
        score = self.active_score
        self._start_if_setup()

        score.runs += runs
        bucket = _EXTRA_BUCKETS[extra_type]
        score.extras[bucket] += runs
        score.extras["total"] += runs
        if extra_type in LEGAL_EXTRA_TYPES:
            score.balls += 1

        if bowler_name:
            score.current_bowler = bowler_name
        score.push_delivery(runs)
        score.refresh_chase(self.total_overs)
        return score

    def record_wicket(self, dismissal_type, fielder_name=None, bowler_name=None):
        if not isinstance(dismissal_type, str) or not dismissal_type.strip():
            raise ValidationError("dismissalType is required")
        dismissal_type = dismissal_type.strip()
        self._require_open()
        score = self.active_score
        self._require_batter(score)
        if score.wickets >= MAX_WICKETS:
            raise ScoringStateError("All ten wickets have already fallen")
        self._start_if_setup()

        batter = score.current_batter
        batter.balls += 1
        batter.dismissal_type = dismissal_type
        batter.fielder_name = fielder_name or None
        score.completed_batters.append(batter)
        score.current_batter = None

        score.wickets += 1
        score.balls += 1
        if bowler_name:
            score.current_bowler = bowler_name
        score.push_delivery(WICKET_MARKER)
        score.refresh_chase(self.total_overs)
        return batter

    # ------------------------------------------------------------------ #
    #  End of innings / match
    # ------------------------------------------------------------------ #

    def check_innings_end(self, roster_size=None):
        """Evaluate every end-of-innings condition for the active innings."""
        score = self.active_score
        reasons = []

        if score.wickets >= MAX_WICKETS:
            reasons.append("All out - 10 wickets fallen")

        if self.current_innings == 2:
            first = self.score_for(1)
            if score.runs > first.runs:
                reasons.append("Target achieved")

        remaining = None
        if roster_size is not None:
            remaining = roster_size - len(score.completed_batters)
            if remaining <= 0:
                reasons.append("No more players available")

        if score.balls >= self.max_balls:
            reasons.append("Overs completed")

        return InningsEndCheck(reasons, remaining_players=remaining)

    def end_innings(self, team_names=None, now=None):
        """Close the active innings.

        Innings 1 -> opens a clean innings 2 with its target. Innings 2 ->
        computes the result and completes the match. Returns the new innings
        number or the MatchResult.
        """
        self._require_open()
        now = now or datetime.now(timezone.utc)

        if self.current_innings == 1:
            first = self.score_for(1)
            second = self.score_for(2)
            if second.target is not None:
                raise InvariantViolation(f"Target already set for match {self.match_id}")

            fresh = InningsScore(2, second.batting_team_id or self.fielding_first_id)
            fresh.target = first.runs + 1
            fresh.refresh_chase(self.total_overs)
            self.scores[1] = fresh
            self.status = STATUS_LIVE
            self.current_innings = 2
            logger.info(
                f"[Match {self.match_id}] Innings 1 closed at {first.score_line} "
                f"({first.overs} ov), target {fresh.target}"
            )
            return 2

        result = self.compute_result(team_names)
        self.status = STATUS_COMPLETED
        self.result_text = result.text
        self.winner_id = result.winner_id
        self.completed_at = now
        logger.info(f"[Match {self.match_id}] Match completed: {result.text}")
        return result

    def compute_result(self, team_names=None):
        """Decide the winner from actual batting order, not team1/team2 position."""
        team_names = team_names or {}
        first = next((s for s in self.scores if s.batting_team_id == self.batting_first_id), None)
        second = next((s for s in self.scores if s.batting_team_id == self.fielding_first_id), None)
        if first is None or second is None or first is second:
            raise InvariantViolation(f"Cannot resolve batting order for match {self.match_id}")

        first_name = team_names.get(self.batting_first_id, "Team batting first")
        second_name = team_names.get(self.fielding_first_id, "Team batting second")

        if first.runs > second.runs:
            margin = first.runs - second.runs
            unit = "run" if margin == 1 else "runs"
            return MatchResult(f"{first_name} wins by {margin} {unit}",
                               winner_id=self.batting_first_id, margin=margin, margin_type="runs")
        if second.runs > first.runs:
            margin = MAX_WICKETS - second.wickets
            unit = "wicket" if margin == 1 else "wickets"
            return MatchResult(f"{second_name} wins by {margin} {unit}",
                               winner_id=self.fielding_first_id, margin=margin, margin_type="wickets")
        return MatchResult("Match Tied!", winner_id=None, margin=0, margin_type="tie")
