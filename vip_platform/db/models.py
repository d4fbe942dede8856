from sqlalchemy import Column, Integer, String, Numeric, Boolean, DateTime, Text, JSON, UniqueConstraint, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime

from vip_platform.db.base import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(255), nullable=False, unique=True, index=True)
    email = Column(String(255), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=True)
    is_admin = Column(Boolean, default=False, nullable=False)

    # External affiliate identity mirrored by the profile sync
    goated_id = Column(String(64), nullable=True, unique=True, index=True)
    goated_username = Column(String(255), nullable=True)
    goated_account_linked = Column(Boolean, default=False, nullable=False)

    wager_today = Column(Numeric(18, 8), nullable=False, default=0)
    wager_week = Column(Numeric(18, 8), nullable=False, default=0)
    wager_month = Column(Numeric(18, 8), nullable=False, default=0)
    wager_all_time = Column(Numeric(18, 8), nullable=False, default=0)
    rank_daily = Column(Integer, nullable=True)
    rank_weekly = Column(Integer, nullable=True)
    rank_monthly = Column(Integer, nullable=True)
    rank_all_time = Column(Integer, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    last_active = Column(DateTime, nullable=True)


class LeaderboardUser(Base):
    """Cached wager totals per external uid; written only by the sync service."""
    __tablename__ = "leaderboard_users"

    id = Column(Integer, primary_key=True, index=True)
    uid = Column(String(64), nullable=False, unique=True, index=True)
    name = Column(String(255), nullable=False, default="")
    wager_today = Column(Numeric(18, 8), nullable=False, default=0)
    wager_week = Column(Numeric(18, 8), nullable=False, default=0)
    wager_month = Column(Numeric(18, 8), nullable=False, default=0)
    wager_all_time = Column(Numeric(18, 8), nullable=False, default=0)
    last_synced = Column(DateTime, nullable=False, default=datetime.utcnow)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class WagerOverride(Base):
    __tablename__ = "wager_overrides"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(255), nullable=False, index=True)
    goated_id = Column(String(64), nullable=True, index=True)
    today_override = Column(Numeric(20, 8), nullable=True)
    this_week_override = Column(Numeric(20, 8), nullable=True)
    this_month_override = Column(Numeric(20, 8), nullable=True)
    all_time_override = Column(Numeric(20, 8), nullable=True)
    active = Column(Boolean, default=True, nullable=False, index=True)
    expires_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    created_by = Column(String(255), nullable=True)
    notes = Column(Text, nullable=True)


class WagerRace(Base):
    __tablename__ = "wager_races"

    id = Column(Integer, primary_key=True, index=True)
    external_id = Column(String(16), nullable=False, index=True)  # YYYYMM
    title = Column(String(255), nullable=False)
    type = Column(String(20), nullable=False, default="monthly")
    status = Column(String(20), nullable=False, default="upcoming", index=True)
    prize_pool = Column(Numeric(19, 4), nullable=False, default=0)
    prize_mode = Column(String(20), nullable=False, default="percentage")
    prize_distribution = Column(JSON, nullable=False, default=dict)
    start_date = Column(DateTime, nullable=False)
    end_date = Column(DateTime, nullable=False)
    completed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    snapshots = relationship("WagerRaceParticipantSnapshot", back_populates="race")

    __table_args__ = (
        UniqueConstraint('type', 'start_date', name='uq_wager_race_type_start'),
    )


class WagerRaceParticipantSnapshot(Base):
    """Final standing of one participant; never modified after insert."""
    __tablename__ = "wager_race_participant_snapshots"

    id = Column(Integer, primary_key=True, index=True)
    race_id = Column(Integer, ForeignKey("wager_races.id"), nullable=False, index=True)
    uid = Column(String(64), nullable=False, index=True)
    username_at_race_end = Column(String(255), nullable=False)
    final_rank = Column(Integer, nullable=False)
    wagered_amount = Column(Numeric(20, 8), nullable=False)
    prize_won_amount = Column(Numeric(19, 4), nullable=False, default=0)
    snapshot_timestamp = Column(DateTime, default=datetime.utcnow, nullable=False)

    race = relationship("WagerRace", back_populates="snapshots")

    __table_args__ = (
        UniqueConstraint('race_id', 'uid', name='uq_snapshot_race_uid'),
    )


class TransformationLog(Base):
    """Append-only diagnostic log of pipeline runs."""
    __tablename__ = "transformation_logs"

    id = Column(Integer, primary_key=True, index=True)
    type = Column(String(20), nullable=False, index=True)
    message = Column(Text, nullable=False)
    payload = Column(JSON, nullable=True)
    duration_ms = Column(Numeric(12, 2), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    resolved = Column(Boolean, default=False, nullable=False)
    error_message = Column(Text, nullable=True)
