# SQLAlchemy data layer: profiles, daily results, streaks and the weekly
# reward ledger.
#
# Uniqueness is enforced by the database: one daily result per (fid, day) and
# one reward row per (fid, week). A duplicate insert surfaces as
# UniqueConstraintViolation so callers never inspect driver error codes.

from __future__ import annotations
from datetime import datetime, timezone
from typing import Dict, List, Optional

from sqlalchemy import (
    Boolean, Column, DateTime, Integer, String, UniqueConstraint, cast, create_engine, delete, func,
)
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool
from sqlalchemy.sql import select

from .errors import UpstreamFailure

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class UniqueConstraintViolation(Exception):
    """Insert collided with an existing row for the same natural key."""


class Profile(Base):
    __tablename__ = "profiles"
    fid = Column(Integer, primary_key=True)
    username = Column(String, nullable=True)
    wallet_address = Column(String, nullable=True)
    created_at = Column(DateTime, default=_utcnow, nullable=False)
    last_seen_at = Column(DateTime, default=_utcnow, nullable=False)


class DailyResult(Base):
    __tablename__ = "daily_results"
    __table_args__ = (UniqueConstraint("fid", "yyyymmdd", name="uq_daily_results_fid_day"),)
    id = Column(Integer, primary_key=True)
    fid = Column(Integer, index=True, nullable=False)
    yyyymmdd = Column(String(8), index=True, nullable=False)
    attempts = Column(Integer, nullable=False)
    won = Column(Boolean, nullable=False)
    score = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=_utcnow, nullable=False)


class Streak(Base):
    __tablename__ = "streaks"
    fid = Column(Integer, primary_key=True)
    current_streak = Column(Integer, nullable=False, default=0)
    max_streak = Column(Integer, nullable=False, default=0)
    last_played_yyyymmdd = Column(String(8), nullable=True)
    updated_at = Column(DateTime, default=_utcnow, nullable=False)


class WeeklyReward(Base):
    __tablename__ = "weekly_rewards"
    __table_args__ = (UniqueConstraint("fid", "week_start", name="uq_weekly_rewards_fid_week"),)
    id = Column(Integer, primary_key=True)
    fid = Column(Integer, index=True, nullable=False)
    week_start = Column(String(8), index=True, nullable=False)
    week_end = Column(String(8), nullable=False)
    rank = Column(Integer, nullable=False)
    amount_usd = Column(Integer, nullable=False)
    wallet_address = Column(String, nullable=False)
    status = Column(String, nullable=False, default="pending")  # "pending"/"sent"/"failed"
    tx_hash = Column(String, nullable=True)
    error = Column(String, nullable=True)
    created_at = Column(DateTime, default=_utcnow, nullable=False)
    updated_at = Column(DateTime, default=_utcnow, nullable=False)


def result_row(r: DailyResult, p: Optional[Profile]) -> Dict:
    return {
        "id": r.id,
        "fid": r.fid,
        "date": r.yyyymmdd,
        "attempts": int(r.attempts),
        "won": bool(r.won),
        "score": int(r.score or 0),
        "created_at": r.created_at,
        "username": p.username if p else None,
        "wallet_address": p.wallet_address if p else None,
    }


class Store:
    """Persistent store for everything that outlives a game session."""

    def __init__(self, url: str):
        kwargs = {}
        if url.startswith("sqlite"):
            kwargs["connect_args"] = {"check_same_thread": False}
            if url in ("sqlite://", "sqlite:///:memory:"):
                kwargs["poolclass"] = StaticPool
        self._engine = create_engine(url, echo=False, future=True, **kwargs)
        self._sessions = sessionmaker(bind=self._engine, autoflush=False, expire_on_commit=False, future=True)

    def _session(self):
        return self._sessions()

    def init_db(self) -> None:
        Base.metadata.create_all(self._engine)

    def clear(self) -> None:
        with self._session() as s:
            for model in (WeeklyReward, Streak, DailyResult, Profile):
                s.execute(delete(model))
            s.commit()

    # Profiles

    def get_or_create_profile(self, fid: int) -> Profile:
        try:
            with self._session() as s:
                p = s.get(Profile, fid)
                if p is None:
                    p = Profile(fid=fid)
                    s.add(p)
                else:
                    p.last_seen_at = _utcnow()
                s.commit()
                return p
        except IntegrityError:
            # Another request created it first
            with self._session() as s:
                return s.get(Profile, fid)
        except SQLAlchemyError as e:
            raise UpstreamFailure(f"Profile store unavailable: {e}") from e

    def update_profile(self, fid: int, username: Optional[str] = None,
                       wallet_address: Optional[str] = None) -> Profile:
        self.get_or_create_profile(fid)
        try:
            with self._session() as s:
                p = s.get(Profile, fid)
                if username is not None:
                    p.username = username
                if wallet_address is not None:
                    p.wallet_address = wallet_address
                s.commit()
                return p
        except SQLAlchemyError as e:
            raise UpstreamFailure(f"Profile store unavailable: {e}") from e

    # Daily results

    def get_daily_result(self, fid: int, yyyymmdd: str) -> Optional[DailyResult]:
        try:
            with self._session() as s:
                return s.execute(
                    select(DailyResult).where(DailyResult.fid == fid, DailyResult.yyyymmdd == yyyymmdd)
                ).scalar_one_or_none()
        except SQLAlchemyError as e:
            raise UpstreamFailure(f"Result store unavailable: {e}") from e

    def create_daily_result(self, fid: int, yyyymmdd: str, attempts: int, won: bool, score: int) -> DailyResult:
        row = DailyResult(fid=fid, yyyymmdd=yyyymmdd, attempts=attempts, won=won, score=score)
        try:
            with self._session() as s:
                s.add(row)
                s.commit()
                return row
        except IntegrityError as e:
            raise UniqueConstraintViolation(f"daily result exists for fid={fid} day={yyyymmdd}") from e
        except SQLAlchemyError as e:
            raise UpstreamFailure(f"Result store unavailable: {e}") from e

    def _results(self, *conditions) -> List[Dict]:
        stmt = (
            select(DailyResult, Profile)
            .join(Profile, Profile.fid == DailyResult.fid, isouter=True)
            .where(*conditions)
        )
        try:
            with self._session() as s:
                return [result_row(r, p) for r, p in s.execute(stmt).all()]
        except SQLAlchemyError as e:
            raise UpstreamFailure(f"Result store unavailable: {e}") from e

    def get_results_between(self, start: str, end: str) -> List[Dict]:
        return self._results(DailyResult.yyyymmdd >= start, DailyResult.yyyymmdd <= end)

    def get_all_results(self) -> List[Dict]:
        return self._results()

    def get_board_stats(self, yyyymmdd: str) -> Dict:
        stmt = select(
            func.count(DailyResult.id),
            func.sum(cast(DailyResult.won, Integer)),
            func.avg(DailyResult.attempts),
        ).where(DailyResult.yyyymmdd == yyyymmdd)
        try:
            with self._session() as s:
                total, won, avg = s.execute(stmt).one()
        except SQLAlchemyError as e:
            raise UpstreamFailure(f"Result store unavailable: {e}") from e
        total = int(total or 0)
        won = int(won or 0)
        return {
            "date": yyyymmdd,
            "total_players": total,
            "won_count": won,
            "lost_count": total - won,
            "average_attempts": round(float(avg or 0), 2),
        }

    # Streaks

    def get_or_create_streak(self, fid: int) -> Streak:
        try:
            with self._session() as s:
                st = s.get(Streak, fid)
                if st is None:
                    st = Streak(fid=fid, current_streak=0, max_streak=0, last_played_yyyymmdd=None)
                    s.add(st)
                    s.commit()
                return st
        except IntegrityError:
            with self._session() as s:
                return s.get(Streak, fid)
        except SQLAlchemyError as e:
            raise UpstreamFailure(f"Streak store unavailable: {e}") from e

    def update_streak(self, fid: int, current: int, maximum: int, yyyymmdd: str) -> Streak:
        self.get_or_create_streak(fid)
        try:
            with self._session() as s:
                st = s.get(Streak, fid)
                st.current_streak = current
                st.max_streak = maximum
                st.last_played_yyyymmdd = yyyymmdd
                st.updated_at = _utcnow()
                s.commit()
                return st
        except SQLAlchemyError as e:
            raise UpstreamFailure(f"Streak store unavailable: {e}") from e

    # Weekly reward ledger

    def get_weekly_reward(self, fid: int, week_start: str) -> Optional[WeeklyReward]:
        try:
            with self._session() as s:
                return s.execute(
                    select(WeeklyReward).where(WeeklyReward.fid == fid, WeeklyReward.week_start == week_start)
                ).scalar_one_or_none()
        except SQLAlchemyError as e:
            raise UpstreamFailure(f"Reward ledger unavailable: {e}") from e

    def get_weekly_rewards_for_week(self, week_start: str) -> List[WeeklyReward]:
        try:
            with self._session() as s:
                return list(s.execute(
                    select(WeeklyReward).where(WeeklyReward.week_start == week_start).order_by(WeeklyReward.rank)
                ).scalars().all())
        except SQLAlchemyError as e:
            raise UpstreamFailure(f"Reward ledger unavailable: {e}") from e

    def get_weekly_rewards_history(self, limit: int = 20) -> List[WeeklyReward]:
        try:
            with self._session() as s:
                return list(s.execute(
                    select(WeeklyReward)
                    .order_by(WeeklyReward.week_start.desc(), WeeklyReward.rank.asc())
                    .limit(limit)
                ).scalars().all())
        except SQLAlchemyError as e:
            raise UpstreamFailure(f"Reward ledger unavailable: {e}") from e

    def create_weekly_reward(self, fid: int, week_start: str, week_end: str, rank: int,
                             amount_usd: int, wallet_address: str) -> WeeklyReward:
        row = WeeklyReward(
            fid=fid, week_start=week_start, week_end=week_end, rank=rank,
            amount_usd=amount_usd, wallet_address=wallet_address, status="pending",
        )
        try:
            with self._session() as s:
                s.add(row)
                s.commit()
                return row
        except IntegrityError as e:
            raise UniqueConstraintViolation(f"reward exists for fid={fid} week={week_start}") from e
        except SQLAlchemyError as e:
            raise UpstreamFailure(f"Reward ledger unavailable: {e}") from e

    def update_weekly_reward_status(self, reward_id: int, status: str, tx_hash: Optional[str] = None,
                                    error: Optional[str] = None, **changes) -> WeeklyReward:
        try:
            with self._session() as s:
                row = s.get(WeeklyReward, reward_id)
                row.status = status
                row.tx_hash = tx_hash
                row.error = error
                for k, v in changes.items():
                    setattr(row, k, v)
                row.updated_at = _utcnow()
                s.commit()
                return row
        except SQLAlchemyError as e:
            raise UpstreamFailure(f"Reward ledger unavailable: {e}") from e
