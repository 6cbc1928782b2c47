from carguessr import db
from datetime import datetime, timezone
import json
import string
import random

SCHEMA_VERSION = '2'


def utcnow():
    # Naive UTC, matching what SQLite hands back
    return datetime.now(timezone.utc).replace(tzinfo=None)


def format_timestamp(value):
    return value.strftime('%Y-%m-%d %H:%M:%S') if value else None


class LeaderboardEntry(db.Model):
    __tablename__ = 'leaderboard_entry'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(64), nullable=False)
    score = db.Column(db.Integer, nullable=False)
    game_mode = db.Column(db.String(16), nullable=False)
    difficulty = db.Column(db.String(16), nullable=False)
    session_id = db.Column(db.String(32), nullable=True)
    # Dedup key for rows imported from the legacy leaderboard.json
    legacy_key = db.Column(db.String(64), unique=True, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)

    __table_args__ = (
        db.Index('ix_leaderboard_mode_difficulty_score', 'game_mode', 'difficulty', 'score'),
    )

    def to_dict(self):
        return {
            'name': self.name,
            'score': self.score,
            'gameMode': self.game_mode,
            'difficulty': self.difficulty,
            'date': format_timestamp(self.created_at),
        }


class DatabaseMetadata(db.Model):
    __tablename__ = 'database_metadata'
    key = db.Column(db.String(64), primary_key=True)
    value = db.Column(db.Text, nullable=False)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    @classmethod
    def get_value(cls, key):
        row = db.session.get(cls, key)
        return row.value if row else None

    @classmethod
    def set_value(cls, key, value):
        """Stage a key/value write; the caller commits."""
        row = db.session.get(cls, key)
        if row is None:
            row = cls(key=key, value=value)
        else:
            row.value = value
        db.session.add(row)
        return row


def generate_challenge_code(length=6):
    """Generate a unique, short challenge code."""
    while True:
        code = ''.join(random.choices(string.ascii_uppercase + string.digits, k=length))
        if not FriendChallenge.query.filter_by(challenge_code=code).first():
            return code


class FriendChallenge(db.Model):
    __tablename__ = 'friend_challenge'
    id = db.Column(db.Integer, primary_key=True)
    challenge_code = db.Column(db.String(6), unique=True, index=True, nullable=False)
    title = db.Column(db.String(100), nullable=False)
    creator_name = db.Column(db.String(64), nullable=False)
    difficulty = db.Column(db.String(16), nullable=False)
    listing_ids = db.Column(db.Text, nullable=False)  # JSON-encoded list of listing ids, in play order
    max_participants = db.Column(db.Integer, nullable=False, default=10)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    expires_at = db.Column(db.DateTime, nullable=False)
    participants = db.relationship('ChallengeParticipant', back_populates='challenge', lazy='dynamic')

    def __init__(self, **kwargs):
        super(FriendChallenge, self).__init__(**kwargs)
        if not self.challenge_code:
            self.challenge_code = generate_challenge_code()

    @property
    def plan(self):
        return tuple(json.loads(self.listing_ids or '[]'))

    def is_expired(self, now=None):
        return (now or utcnow()) >= self.expires_at

    def to_dict(self):
        return {
            'challengeCode': self.challenge_code,
            'title': self.title,
            'creator': self.creator_name,
            'difficulty': self.difficulty,
            'maxParticipants': self.max_participants,
            'participantCount': self.participants.count(),
            'isActive': self.is_active and not self.is_expired(),
            'createdAt': format_timestamp(self.created_at),
            'expiresAt': format_timestamp(self.expires_at),
        }


class ChallengeParticipant(db.Model):
    __tablename__ = 'challenge_participant'
    id = db.Column(db.Integer, primary_key=True)
    challenge_id = db.Column(db.Integer, db.ForeignKey('friend_challenge.id'), nullable=False)
    name = db.Column(db.String(64), nullable=False)
    session_id = db.Column(db.String(32), nullable=False)
    final_score = db.Column(db.Integer, nullable=True)
    completed_at = db.Column(db.DateTime, nullable=True)
    joined_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    challenge = db.relationship('FriendChallenge', back_populates='participants')

    __table_args__ = (
        db.UniqueConstraint('challenge_id', 'name', name='uq_challenge_participant_name'),
    )

    @property
    def is_complete(self):
        return self.completed_at is not None

    def to_dict(self):
        return {
            'name': self.name,
            'sessionId': self.session_id,
            'finalScore': self.final_score,
            'isComplete': self.is_complete,
            'completedAt': format_timestamp(self.completed_at),
            'joinedAt': format_timestamp(self.joined_at),
        }
