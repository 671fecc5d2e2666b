# Pydantic models for API IO. Fields are snake_case in Python and camelCase
# on the wire.

from __future__ import annotations
import re
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from .payments import is_valid_address

TileMark = Literal["correct", "present", "absent"]

_USERNAME_RE = re.compile(r"^[A-Za-z0-9_.-]{1,32}$")


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class StartGameRequest(ApiModel):
    language: Literal["en", "tr"] = "en"


class StartGameResponse(ApiModel):
    session_id: str
    max_attempts: int
    is_practice_mode: bool


class GuessRequest(ApiModel):
    session_id: str = Field(..., min_length=1, description="Session token from start-game")
    guess: str = Field(..., description="5-letter guess")


class GuessResponse(ApiModel):
    feedback: List[TileMark]
    attempts_used: int
    won: bool
    remaining_attempts: int
    game_over: bool
    # Only once game_over is True; otherwise omitted
    solution: Optional[str] = None
    score: Optional[int] = None


class CompleteGameRequest(ApiModel):
    session_id: str = Field(..., min_length=1)
    tx_hash: str = Field(..., description="Transaction hash attesting the score (0x + 64 hex)")


class CompleteGameResponse(ApiModel):
    success: bool = True
    streak: int
    max_streak: int
    is_practice_mode: bool
    recorded: bool
    message: Optional[str] = None


class HintResponse(ApiModel):
    position: int
    letter: str
    hint: str


class MeResponse(ApiModel):
    fid: int
    username: Optional[str] = None
    wallet_address: Optional[str] = None
    streak: int
    max_streak: int
    last_played: Optional[str] = None
    today: str
    remaining_attempts: int
    has_completed_today: bool


class ProfileUpdateRequest(ApiModel):
    username: Optional[str] = None
    wallet_address: Optional[str] = None

    @field_validator("username")
    @classmethod
    def validate_username(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip()
        if not _USERNAME_RE.match(v):
            raise ValueError("username must be 1-32 characters of letters, digits, '_', '.' or '-'")
        return v

    @field_validator("wallet_address")
    @classmethod
    def validate_wallet(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip()
        if not is_valid_address(v):
            raise ValueError("wallet address must be 0x followed by 40 hex characters")
        return v


class ProfileResponse(ApiModel):
    fid: int
    username: Optional[str] = None
    wallet_address: Optional[str] = None


class BoardStats(ApiModel):
    date: str
    total_players: int
    won_count: int
    lost_count: int
    average_attempts: float


class LeaderboardEntry(ApiModel):
    fid: int
    username: Optional[str] = None
    wallet_address: Optional[str] = None
    score: int
    attempts: int
    won: bool
    date: str
    rank: int


class LeaderboardResponse(ApiModel):
    period: Literal["daily", "weekly", "all-time"]
    date: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    leaderboard: List[LeaderboardEntry]


class RewardWinner(LeaderboardEntry):
    amount_usd: int


class RewardPreviewResponse(ApiModel):
    start_date: str
    end_date: str
    winners: List[RewardWinner]
    missing_wallets: List[RewardWinner]
    already_distributed: bool


class RewardOutcomeEntry(ApiModel):
    fid: int
    rank: int
    amount_usd: int
    status: Literal["sent", "failed", "already_sent", "missing_wallet"]
    wallet_address: Optional[str] = None
    tx_hash: Optional[str] = None
    error: Optional[str] = None


class DistributeResponse(ApiModel):
    start_date: str
    end_date: str
    distributed: List[RewardOutcomeEntry]
    failed: List[RewardOutcomeEntry]
    skipped: List[RewardOutcomeEntry]


class RewardHistoryEntry(ApiModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    id: int
    fid: int
    week_start: str
    week_end: str
    rank: int
    amount_usd: int
    wallet_address: str
    status: Literal["pending", "sent", "failed"]
    tx_hash: Optional[str] = None
    error: Optional[str] = None


class RewardHistoryResponse(ApiModel):
    rewards: List[RewardHistoryEntry]


class WalletBalanceResponse(ApiModel):
    usdc_balance: str
