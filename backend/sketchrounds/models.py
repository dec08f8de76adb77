from sketchrounds import db, bcrypt
from sketchrounds.services.timers.clock import now_ts, to_iso
from sketchrounds.services.timers.phases import GameStatus
from flask_login import UserMixin
import uuid


def _new_id():
    return str(uuid.uuid4())


class User(UserMixin, db.Model):
    __tablename__ = 'user'
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(64), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(256), nullable=False)

    def set_password(self, password):
        self.password_hash = bcrypt.generate_password_hash(password).decode('utf-8')

    def check_password(self, password):
        return bcrypt.check_password_hash(self.password_hash, password)

    def to_dict(self):
        return {
            'id': self.id,
            'username': self.username,
        }


class Game(db.Model):
    __tablename__ = 'game'
    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    status = db.Column(db.String(32), nullable=False, default=GameStatus.WAITING.value, index=True)
    prompt = db.Column(db.Text, nullable=True)
    # Per-game phase settings (seconds)
    round_duration = db.Column(db.Integer, nullable=False, default=60)
    voting_duration = db.Column(db.Integer, nullable=False, default=30)
    # Phase clock, epoch seconds; phase_expires_at is NULL when no timer runs
    phase_duration = db.Column(db.Integer, nullable=True)
    phase_started_at = db.Column(db.Float, nullable=True)
    phase_expires_at = db.Column(db.Float, nullable=True, index=True)
    # Set while the drawing phase sits in its grace window
    grace_started_at = db.Column(db.Float, nullable=True)
    created_at = db.Column(db.Float, nullable=False, default=now_ts)
    started_at = db.Column(db.Float, nullable=True)
    drawing_started_at = db.Column(db.Float, nullable=True)
    voting_started_at = db.Column(db.Float, nullable=True)
    completed_at = db.Column(db.Float, nullable=True)

    participants = db.relationship('Participant', back_populates='game', lazy='dynamic')
    submissions = db.relationship('Submission', backref='game', lazy='dynamic')

    def active_participants(self):
        return self.participants.filter(Participant.left_at.is_(None))

    def to_dict(self):
        return {
            'id': self.id,
            'status': self.status,
            'prompt': self.prompt,
            'round_duration': self.round_duration,
            'voting_duration': self.voting_duration,
            'phase_duration': self.phase_duration,
            'phase_started_at': to_iso(self.phase_started_at),
            'phase_expires_at': to_iso(self.phase_expires_at),
            'in_grace': self.grace_started_at is not None,
            'participants': [p.to_dict() for p in self.active_participants()],
            'submission_count': self.submissions.count(),
            'created_at': to_iso(self.created_at),
            'started_at': to_iso(self.started_at),
            'drawing_started_at': to_iso(self.drawing_started_at),
            'voting_started_at': to_iso(self.voting_started_at),
            'completed_at': to_iso(self.completed_at),
        }


class Participant(db.Model):
    __tablename__ = 'participant'
    __table_args__ = (db.UniqueConstraint('game_id', 'user_id', name='uq_participant_game_user'),)
    id = db.Column(db.Integer, primary_key=True)
    game_id = db.Column(db.String(36), db.ForeignKey('game.id'), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)
    joined_at = db.Column(db.Float, nullable=False, default=now_ts)
    left_at = db.Column(db.Float, nullable=True)
    game = db.relationship('Game', back_populates='participants')
    user = db.relationship('User')

    def to_dict(self):
        return {
            'user_id': self.user_id,
            'username': self.user.username if self.user else None,
            'joined_at': to_iso(self.joined_at),
        }


class Submission(db.Model):
    __tablename__ = 'submission'
    __table_args__ = (db.UniqueConstraint('game_id', 'user_id', name='uq_submission_game_user'),)
    id = db.Column(db.Integer, primary_key=True)
    game_id = db.Column(db.String(36), db.ForeignKey('game.id'), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    drawing_url = db.Column(db.Text, nullable=True)
    submitted_at = db.Column(db.Float, nullable=False, default=now_ts)


class PhaseTransition(db.Model):
    """Audit row written in the same commit as every status change."""
    __tablename__ = 'phase_transition'
    id = db.Column(db.Integer, primary_key=True)
    game_id = db.Column(db.String(36), db.ForeignKey('game.id'), nullable=False, index=True)
    from_status = db.Column(db.String(32), nullable=False)
    to_status = db.Column(db.String(32), nullable=False)
    triggered_by = db.Column(db.String(64), nullable=False, default='manual')
    execution_id = db.Column(db.String(64), nullable=True)
    created_at = db.Column(db.Float, nullable=False, default=now_ts)


class AdvisoryLockLease(db.Model):
    __tablename__ = 'advisory_lock'
    lock_key = db.Column(db.String(128), primary_key=True)
    acquired_at = db.Column(db.Float, nullable=False)
    acquired_by = db.Column(db.String(128), nullable=False, default='unknown')
    timeout_seconds = db.Column(db.Integer, nullable=False, default=300)
