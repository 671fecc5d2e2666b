# Weekly prize distribution for the top three of last week's leaderboard.
#
# The reward ledger holds one row per (player, week). A row that reached
# "sent" is never paid again; "pending" and "failed" rows are reused when the
# distribution is retried, so a retry never creates a second row.

from __future__ import annotations
import logging
import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from .config import REWARD_AMOUNTS
from .db import Store, UniqueConstraintViolation, WeeklyReward
from .errors import UpstreamFailure
from .leaderboard import Leaderboard
from .payments import PaymentGateway

logger = logging.getLogger(__name__)

WINNER_COUNT = 3


@dataclass
class RewardPreview:
    start_date: str
    end_date: str
    winners: List[Dict] = field(default_factory=list)
    missing_wallets: List[Dict] = field(default_factory=list)
    already_distributed: bool = False


@dataclass
class RewardOutcome:
    fid: int
    rank: int
    amount_usd: int
    status: str  # "sent"|"failed"|"already_sent"|"missing_wallet"
    wallet_address: Optional[str] = None
    tx_hash: Optional[str] = None
    error: Optional[str] = None


class RewardDistributor:
    def __init__(self, store: Store, gateway: PaymentGateway, amounts: Optional[Dict[int, int]] = None):
        self.store = store
        self.gateway = gateway
        self.leaderboard = Leaderboard(store)
        self.amounts = amounts or REWARD_AMOUNTS
        # One distribution run at a time, so two runs cannot both pay a winner
        self._lock = threading.Lock()

    def _top(self, week: Tuple[str, str]) -> List[Dict]:
        start, end = week
        return self.leaderboard.weekly(start, end, limit=WINNER_COUNT)

    def preview_weekly_rewards(self, week: Tuple[str, str]) -> RewardPreview:
        start, end = week
        preview = RewardPreview(start_date=start, end_date=end)
        for entry in self._top(week):
            item = dict(entry, amount_usd=self.amounts.get(entry["rank"], 0))
            if entry.get("wallet_address"):
                preview.winners.append(item)
            else:
                preview.missing_wallets.append(item)
        preview.already_distributed = any(
            r.status == "sent" and 1 <= r.rank <= WINNER_COUNT
            for r in self.store.get_weekly_rewards_for_week(start)
        )
        return preview

    def _ledger_row(self, entry: Dict, week: Tuple[str, str], amount: int) -> WeeklyReward:
        start, end = week
        row = self.store.get_weekly_reward(entry["fid"], start)
        if row is None:
            try:
                return self.store.create_weekly_reward(
                    entry["fid"], start, end, entry["rank"], amount, entry["wallet_address"],
                )
            except UniqueConstraintViolation:
                row = self.store.get_weekly_reward(entry["fid"], start)
        if row.status == "sent":
            return row
        return self.store.update_weekly_reward_status(
            row.id, "pending", rank=entry["rank"], amount_usd=amount, wallet_address=entry["wallet_address"],
        )

    def distribute(self, week: Tuple[str, str]) -> List[RewardOutcome]:
        start, end = week
        outcomes: List[RewardOutcome] = []
        with self._lock:
            for entry in self._top(week):
                rank = entry["rank"]
                amount = self.amounts.get(rank, 0)
                wallet = entry.get("wallet_address")
                if not wallet:
                    outcomes.append(RewardOutcome(fid=entry["fid"], rank=rank, amount_usd=amount,
                                                  status="missing_wallet"))
                    continue

                row = self._ledger_row(entry, week, amount)
                if row.status == "sent":
                    logger.info("reward already sent fid=%s week=%s tx=%s", entry["fid"], start, row.tx_hash)
                    outcomes.append(RewardOutcome(fid=entry["fid"], rank=row.rank, amount_usd=row.amount_usd,
                                                  status="already_sent", wallet_address=row.wallet_address,
                                                  tx_hash=row.tx_hash))
                    continue

                memo = f"Wordcast weekly reward {start}-{end} rank {rank}"
                try:
                    result = self.gateway.submit_transfer(wallet, amount, memo)
                    tx_hash, error, ok = result.tx_hash, result.error, result.success
                except UpstreamFailure as e:
                    tx_hash, error, ok = None, e.message, False

                if ok:
                    self.store.update_weekly_reward_status(row.id, "sent", tx_hash=tx_hash)
                    outcomes.append(RewardOutcome(fid=entry["fid"], rank=rank, amount_usd=amount, status="sent",
                                                  wallet_address=wallet, tx_hash=tx_hash))
                else:
                    logger.warning("reward transfer failed fid=%s week=%s: %s", entry["fid"], start, error)
                    self.store.update_weekly_reward_status(row.id, "failed", error=error)
                    outcomes.append(RewardOutcome(fid=entry["fid"], rank=rank, amount_usd=amount, status="failed",
                                                  wallet_address=wallet, error=error))
        return outcomes

    def history(self, limit: int = 20) -> List[WeeklyReward]:
        return self.store.get_weekly_rewards_history(limit)
