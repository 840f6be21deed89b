from datetime import datetime, timezone
from flask_login import UserMixin
from sqlalchemy.orm import relationship, synonym
from database import db
import uuid

from engine.match_state import MatchState


def _utcnow():
    return datetime.now(timezone.utc)


def _new_id():
    return str(uuid.uuid4())


class User(UserMixin, db.Model):
    """Scorer account

    NOTE: id is the email string; every match, team and commentary record is
    scoped to it through created_by/user_id.
    """
    __tablename__ = 'users'

    id = db.Column(db.String(120), primary_key=True)  # Email as ID
    email = synonym('id')
    password_hash = db.Column(db.String(200))
    display_name = db.Column(db.String(100))
    created_at = db.Column(db.DateTime, default=_utcnow)
    last_login = db.Column(db.DateTime)

    # Relationships, cascade so deleting a User removes all owned data
    teams = relationship('Team', backref='owner', lazy=True, cascade="all, delete-orphan")
    matches = relationship('Match', backref='owner', lazy=True, cascade="all, delete-orphan")


class Team(db.Model):
    """Cricket Team"""
    __tablename__ = 'teams'

    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    user_id = db.Column(db.String(120), db.ForeignKey('users.id'), nullable=False, index=True)
    name = db.Column(db.String(50), nullable=False)
    captain = db.Column(db.String(50))
    description = db.Column(db.String(200))
    logo = db.Column(db.String(255))
    created_at = db.Column(db.DateTime, default=_utcnow)

    players = relationship('Player', backref='team', lazy=True, cascade="all, delete-orphan")

    def to_dict(self, include_players=False):
        data = {
            "id": self.id,
            "name": self.name,
            "captain": self.captain,
            "description": self.description,
            "logo": self.logo,
            "playerCount": len(self.players),
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }
        if include_players:
            data["players"] = [p.to_dict() for p in self.players]
        return data


class Player(db.Model):
    """Roster entry. Only the identity and name are used by the scoring engine."""
    __tablename__ = 'players'

    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    team_id = db.Column(db.String(36), db.ForeignKey('teams.id'), nullable=False, index=True)
    name = db.Column(db.String(50), nullable=False)
    position = db.Column(db.String(30))  # Batsman, Bowler, All-rounder, Wicket-keeper
    created_at = db.Column(db.DateTime, default=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "teamId": self.team_id,
            "playerName": self.name,
            "position": self.position,
        }


class Match(db.Model):
    """Live match document.

    The two innings records live in the ``scores`` JSON column and are only
    ever written from a MatchState produced by the scoring engine. ``version``
    is bumped on every update so a write based on a stale read fails instead of
    overwriting a newer ball.
    """
    __tablename__ = 'matches'

    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    created_by = db.Column(db.String(120), db.ForeignKey('users.id'), nullable=False, index=True)

    team1_id = db.Column(db.String(36), db.ForeignKey('teams.id'), nullable=False)
    team2_id = db.Column(db.String(36), db.ForeignKey('teams.id'), nullable=False)

    # Toss Information
    toss_winner_id = db.Column(db.String(36), db.ForeignKey('teams.id'), nullable=False)
    coin_result = db.Column(db.String(10), nullable=False)  # 'heads' or 'tails'
    toss_choice = db.Column(db.String(10), nullable=False)  # 'batting' or 'fielding'
    batting_first_id = db.Column(db.String(36), db.ForeignKey('teams.id'), nullable=False)
    fielding_first_id = db.Column(db.String(36), db.ForeignKey('teams.id'), nullable=False)

    status = db.Column(db.String(20), nullable=False, default='setup', index=True)
    current_innings = db.Column(db.Integer, nullable=False, default=1)
    total_overs = db.Column(db.Integer, nullable=False, default=20)
    scores = db.Column(db.JSON, nullable=False)

    result_text = db.Column(db.String(200))
    winner_id = db.Column(db.String(36), db.ForeignKey('teams.id'), nullable=True)

    created_at = db.Column(db.DateTime, default=_utcnow, index=True)
    completed_at = db.Column(db.DateTime, nullable=True)

    version = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version}

    team1 = relationship('Team', foreign_keys=[team1_id])
    team2 = relationship('Team', foreign_keys=[team2_id])
    winner = relationship('Team', foreign_keys=[winner_id])
    commentary = relationship('Commentary', backref='match', lazy='dynamic', cascade="all, delete-orphan")

    def to_state(self):
        return MatchState(
            match_id=self.id,
            team1_id=self.team1_id,
            team2_id=self.team2_id,
            batting_first_id=self.batting_first_id,
            fielding_first_id=self.fielding_first_id,
            status=self.status,
            current_innings=self.current_innings,
            total_overs=self.total_overs,
            scores=self.scores,
            result_text=self.result_text,
            winner_id=self.winner_id,
            completed_at=self.completed_at,
        )

    def apply_state(self, state):
        """Copy engine-owned fields back onto the row."""
        self.status = state.status
        self.current_innings = state.current_innings
        self.scores = state.scores_to_list()
        self.result_text = state.result_text
        self.winner_id = state.winner_id
        self.completed_at = state.completed_at

    def team_names(self):
        return {
            self.team1_id: self.team1.name if self.team1 else "Team 1",
            self.team2_id: self.team2.name if self.team2 else "Team 2",
        }

    def to_dict(self):
        scores = self.scores or []
        return {
            "id": self.id,
            "team1": self.team1.to_dict() if self.team1 else None,
            "team2": self.team2.to_dict() if self.team2 else None,
            "tossWinnerId": self.toss_winner_id,
            "coinResult": self.coin_result,
            "tossChoice": self.toss_choice,
            "battingFirstId": self.batting_first_id,
            "fieldingFirstId": self.fielding_first_id,
            "status": self.status,
            "currentInnings": self.current_innings,
            "totalOvers": self.total_overs,
            "resultText": self.result_text,
            "winner": self.winner.to_dict() if self.winner else None,
            "innings1Score": scores[0] if len(scores) > 0 else None,
            "innings2Score": scores[1] if len(scores) > 1 else None,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "completedAt": self.completed_at.isoformat() if self.completed_at else None,
        }

    def to_summary(self):
        return {
            "id": self.id,
            "team1": {"id": self.team1_id, "name": self.team1.name if self.team1 else None},
            "team2": {"id": self.team2_id, "name": self.team2.name if self.team2 else None},
            "status": self.status,
            "resultText": self.result_text,
            "winnerId": self.winner_id,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "completedAt": self.completed_at.isoformat() if self.completed_at else None,
        }


class Commentary(db.Model):
    """Generated commentary line. Append-only; audio may be attached later."""
    __tablename__ = 'commentary'

    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    match_id = db.Column(db.String(36), db.ForeignKey('matches.id', ondelete='CASCADE'), nullable=False, index=True)
    event_type = db.Column(db.String(20), nullable=False, index=True)
    text = db.Column(db.String(1000), nullable=False)
    audio_url = db.Column(db.String(255))
    audio_duration = db.Column(db.Float)
    is_ai_generated = db.Column(db.Boolean, nullable=False, default=False)
    priority = db.Column(db.String(10), nullable=False, default='medium')  # low, medium, high, critical
    event_data = db.Column(db.JSON)
    context = db.Column(db.JSON)  # snapshot of the context the text was generated from
    created_at = db.Column(db.DateTime, default=_utcnow, index=True)

    __table_args__ = (
        db.Index('ix_commentary_match_created', 'match_id', 'created_at'),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "matchId": self.match_id,
            "eventType": self.event_type,
            "text": self.text,
            "audioUrl": self.audio_url,
            "audioDuration": self.audio_duration,
            "hasAudio": bool(self.audio_url),
            "isAIGenerated": self.is_ai_generated,
            "priority": self.priority,
            "eventData": self.event_data,
            "context": self.context,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }
