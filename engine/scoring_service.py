"""
Synchronous scoring path.

Each action runs as one unit under the match's lock: load the owned Match
row, rebuild the MatchState, apply the action, write the state back and
commit. Only after the commit does the service broadcast the score frame and
hand commentary to the background pipeline, so a failure there can never
undo or delay the recorded ball.
"""

import logging
import uuid

from sqlalchemy.orm.exc import StaleDataError

from database import db
from database.models import Match, Player, Team
from engine.commentary_pipeline import CommentaryJob
from engine.errors import NotFoundOrForbidden, ScoringStateError, ValidationError
from engine.events import EventType, classify_extra, classify_runs, classify_wicket
from engine.match_locks import MatchLockRegistry
from engine.match_state import MatchResult, MatchState

logger = logging.getLogger(__name__)

COIN_RESULTS = ("heads", "tails")
TOSS_CHOICES = ("batting", "fielding")
MAX_TOTAL_OVERS = 50


def _require_int(data, key, default=None):
    value = data.get(key)
    if value is None:
        value = default
    if value is None:
        raise ValidationError(f"{key} is required")
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be an integer")
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        value = int(value)
    if not isinstance(value, int):
        raise ValidationError(f"{key} must be an integer")
    return value


class ScoringService:
    def __init__(self, hub, pipeline, locks=None):
        self.hub = hub
        self.pipeline = pipeline
        self.locks = locks or MatchLockRegistry()

    # ------------------------------------------------------------------ #
    #  Loading / ownership
    # ------------------------------------------------------------------ #

    def load_owned_match(self, match_id, user_id):
        match = (
            Match.query.filter_by(id=match_id, created_by=user_id)
            .populate_existing()
            .first()
        )
        if match is None:
            raise NotFoundOrForbidden("Match not found")
        return match

    def _load_owned_team(self, team_id, user_id):
        team = Team.query.filter_by(id=team_id, user_id=user_id).first() if team_id else None
        if team is None:
            raise NotFoundOrForbidden("Team not found")
        return team

    def _roster_size(self, team_id):
        count = Player.query.filter_by(team_id=team_id).count()
        return count or None

    # ------------------------------------------------------------------ #
    #  Match creation
    # ------------------------------------------------------------------ #

    def create_match(self, user_id, data):
        team1 = self._load_owned_team(data.get("team1Id"), user_id)
        team2 = self._load_owned_team(data.get("team2Id"), user_id)
        if team1.id == team2.id:
            raise ValidationError("A match needs two different teams")

        toss_winner_id = data.get("tossWinnerId")
        if toss_winner_id not in (team1.id, team2.id):
            raise ValidationError("tossWinnerId must be one of the two teams")
        coin_result = str(data.get("coinResult", "")).lower()
        if coin_result not in COIN_RESULTS:
            raise ValidationError("coinResult must be 'heads' or 'tails'")
        toss_choice = str(data.get("tossChoice", "")).lower()
        if toss_choice not in TOSS_CHOICES:
            raise ValidationError("tossChoice must be 'batting' or 'fielding'")
        total_overs = _require_int(data, "totalOvers", default=20)
        if not 1 <= total_overs <= MAX_TOTAL_OVERS:
            raise ValidationError(f"totalOvers must be between 1 and {MAX_TOTAL_OVERS}")

        other_id = team2.id if toss_winner_id == team1.id else team1.id
        batting_first_id = toss_winner_id if toss_choice == "batting" else other_id

        match_id = str(uuid.uuid4())
        state = MatchState.new(match_id, team1.id, team2.id, batting_first_id, total_overs=total_overs)
        match = Match(
            id=match_id,
            created_by=user_id,
            team1_id=team1.id,
            team2_id=team2.id,
            toss_winner_id=toss_winner_id,
            coin_result=coin_result,
            toss_choice=toss_choice,
            batting_first_id=state.batting_first_id,
            fielding_first_id=state.fielding_first_id,
            status=state.status,
            current_innings=state.current_innings,
            total_overs=state.total_overs,
            scores=state.scores_to_list(),
        )
        db.session.add(match)
        db.session.commit()
        logger.info(f"[Match {match_id}] Created by {user_id}: {team1.name} vs {team2.name}, "
                    f"{total_overs} overs")
        return match

    # ------------------------------------------------------------------ #
    #  Read -> mutate -> persist
    # ------------------------------------------------------------------ #

    def _mutate(self, match_id, user_id, action):
        """Run ``action(state, match)`` and persist it, all under the match lock."""
        with self.locks.hold(match_id):
            match = self.load_owned_match(match_id, user_id)
            state = match.to_state()
            result = action(state, match)
            match.apply_state(state)
            try:
                db.session.commit()
            except StaleDataError:
                db.session.rollback()
                logger.warning(f"[Match {match_id}] Concurrent update detected, action rejected")
                raise ScoringStateError("Match was updated by another request, please retry",
                                        error_code="STALE_MATCH")
        return match, state, result

    def _event_names(self, state, match):
        names = match.team_names()
        score = state.active_score
        return {
            "battingTeam": names.get(score.batting_team_id),
            "bowlingTeam": names.get(state.bowling_team_id()),
            "innings": state.current_innings,
        }

    def _score_frame(self, frame_type, match_id, event_type, score, event_data):
        return {
            "type": frame_type,
            "matchId": match_id,
            "eventType": event_type.value,
            "score": {
                "runs": score.runs,
                "wickets": score.wickets,
                "overs": score.overs,
                "runRate": score.run_rate,
            },
            "eventData": event_data,
        }

    def _schedule(self, match, state, event_type, event_data, innings=None):
        job = CommentaryJob(match.id, event_type, state.snapshot(), match.team_names(),
                            event_data, innings=innings)
        self.pipeline.submit(job)

    # ------------------------------------------------------------------ #
    #  Scoring actions
    # ------------------------------------------------------------------ #

    def select_batter(self, match_id, user_id, data):
        batter_id = data.get("batterId")
        if not batter_id:
            raise ValidationError("batterId is required")

        def action(state, match):
            batting_team_id = state.active_score.batting_team_id
            player = Player.query.filter_by(id=str(batter_id), team_id=batting_team_id).first()
            if player is None:
                raise NotFoundOrForbidden("Player not found in the batting team")
            return state.select_batter(player.id, player.name, position=player.position,
                                       team_id=player.team_id)

        match, state, batter = self._mutate(match_id, user_id, action)
        logger.info(f"[Match {match_id}] {batter.name} is now batting")
        return {
            "success": True,
            "message": f"{batter.name} is now batting",
            "currentPlayer": batter.to_dict(),
            "match": match.to_dict(),
        }

    def record_runs(self, match_id, user_id, data):
        runs = _require_int(data, "runs")
        bowler_name = data.get("bowlerName")

        def action(state, match):
            score = state.record_runs(runs, bowler_name=bowler_name)
            roster = self._roster_size(score.batting_team_id)
            return state.check_innings_end(roster_size=roster)

        match, state, check = self._mutate(match_id, user_id, action)
        score = state.active_score
        batter = score.current_batter
        event_type = classify_runs(runs)

        event_data = {
            **self._event_names(state, match),
            "runs": runs,
            "batterName": batter.name,
            "bowlerName": score.current_bowler,
        }
        self.hub.publish(match_id, self._score_frame("score_update", match_id, event_type, score, event_data))
        self._schedule(match, state, event_type, event_data)

        return {
            "success": True,
            "eventType": event_type.value,
            "teamStats": score.team_stats(),
            "playerStats": batter.to_dict(),
            "inningsEnd": check.to_dict(),
            "match": match.to_dict(),
        }

    def record_extra(self, match_id, user_id, data):
        extra_type = data.get("type") or data.get("extraType")
        runs = _require_int(data, "runs", default=1)
        bowler_name = data.get("bowlerName")

        def action(state, match):
            score = state.record_extra(extra_type, runs=runs, bowler_name=bowler_name)
            roster = self._roster_size(score.batting_team_id)
            return state.check_innings_end(roster_size=roster)

        match, state, check = self._mutate(match_id, user_id, action)
        score = state.active_score
        event_type = classify_extra(extra_type)

        event_data = {
            **self._event_names(state, match),
            "extraType": extra_type,
            "runs": runs,
            "batterName": score.current_batter.name if score.current_batter else None,
            "bowlerName": score.current_bowler,
        }
        self.hub.publish(match_id, self._score_frame("extra_scored", match_id, event_type, score, event_data))
        self._schedule(match, state, event_type, event_data)

        return {
            "success": True,
            "eventType": event_type.value,
            "teamStats": score.team_stats(),
            "inningsEnd": check.to_dict(),
            "match": match.to_dict(),
        }

    def record_wicket(self, match_id, user_id, data):
        dismissal_type = data.get("dismissalType")
        fielder_name = data.get("fielderName")
        bowler_name = data.get("bowlerName")

        def action(state, match):
            batter = state.record_wicket(dismissal_type, fielder_name=fielder_name,
                                         bowler_name=bowler_name)
            roster = self._roster_size(state.active_score.batting_team_id)
            return batter, state.check_innings_end(roster_size=roster)

        match, state, (batter, check) = self._mutate(match_id, user_id, action)
        score = state.active_score
        event_type = classify_wicket()

        event_data = {
            **self._event_names(state, match),
            "batterName": batter.name,
            "batterRuns": batter.runs,
            "batterBalls": batter.balls,
            "dismissalType": batter.dismissal_type,
            "fielderName": batter.fielder_name,
            "bowlerName": score.current_bowler,
        }
        self.hub.publish(match_id, self._score_frame("wicket", match_id, event_type, score, event_data))
        self._schedule(match, state, event_type, event_data)

        return {
            "success": True,
            "message": f"{batter.name} is out ({batter.dismissal_type})",
            "eventType": event_type.value,
            "teamStats": score.team_stats(),
            "playerStats": batter.to_dict(),
            "inningsEnd": check.to_dict(),
            "match": match.to_dict(),
        }

    def end_innings(self, match_id, user_id):
        def action(state, match):
            return state.end_innings(team_names=match.team_names())

        match, state, outcome = self._mutate(match_id, user_id, action)
        names = match.team_names()

        if isinstance(outcome, MatchResult):
            first, second = state.score_for(1), state.score_for(2)
            winner = {"id": outcome.winner_id, "name": names.get(outcome.winner_id)} if outcome.winner_id else None
            self.hub.publish(match_id, {
                "type": "match_end",
                "matchId": match_id,
                "result": outcome.text,
                "winner": winner,
                "innings1": first.team_stats(),
                "innings2": second.team_stats(),
            })
            event_data = {
                "innings": 2,
                "result": outcome.text,
                "battingTeam": names.get(second.batting_team_id),
                "bowlingTeam": names.get(first.batting_team_id),
            }
            self._schedule(match, state, EventType.MATCH_END, event_data, innings=2)
            return {
                "success": True,
                "message": outcome.text,
                "result": outcome.to_dict(),
                "match": match.to_dict(),
            }

        first, second = state.score_for(1), state.score_for(2)
        first_name = names.get(first.batting_team_id)
        chasing_name = names.get(second.batting_team_id)
        message = f"Innings 1 complete. {chasing_name} need {second.target} runs to win"
        self.hub.publish(match_id, {
            "type": "innings_end",
            "matchId": match_id,
            "newInnings": outcome,
            "target": second.target,
            "innings1Summary": first.team_stats(),
            "message": message,
        })
        event_data = {"innings": 1, "battingTeam": first_name, "bowlingTeam": chasing_name}
        self._schedule(match, state, EventType.INNINGS_END, event_data, innings=1)
        return {
            "success": True,
            "message": message,
            "newInnings": outcome,
            "target": second.target,
            "match": match.to_dict(),
        }
