# FastAPI server for the daily word game.
# Provides:
# - GET  /api/me: streak and today's status for the caller
# - POST /api/profile: set username / reward wallet
# - POST /api/start-game: open (or resume) today's session
# - POST /api/guess: submit a guess
# - POST /api/complete-game: attest a finished game with a transaction hash
# - GET  /api/hint?sessionId=...: reveal one letter of the solution
# - GET  /api/board, /api/leaderboard/{daily,weekly,best-scores}
# - /api/admin/...: sponsor balance, weekly reward preview/distribution/history
#
# The caller's identity comes from the x-farcaster-fid header.
#
# Run: uvicorn wordcast.main:app --host 0.0.0.0 --port 8000

from __future__ import annotations
import logging
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, Header, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from itsdangerous import BadSignature, SignatureExpired, TimestampSigner

from . import dates
from .config import (
    ADMIN_SECRET, ADMIN_TOKEN_MAX_AGE, CORS_ORIGINS, DATABASE_URL, DEV_FID, ENV, LOG_JSON, LOG_LEVEL,
    VERSION, validate_config,
)
from .db import Store
from .errors import AppError, Forbidden, Unauthenticated, ValidationError, app_error_handler, error_payload
from .game import GameService
from .leaderboard import Leaderboard
from .log import configure_logging
from .models import (
    BoardStats, CompleteGameRequest, CompleteGameResponse, DistributeResponse, GuessRequest, GuessResponse,
    HintResponse, LeaderboardResponse, MeResponse, ProfileResponse, ProfileUpdateRequest,
    RewardHistoryEntry, RewardHistoryResponse, RewardPreviewResponse, StartGameRequest, StartGameResponse,
    WalletBalanceResponse,
)
from .payments import PaymentGateway, gateway_from_config
from .rewards import RewardDistributor
from .sessions import SessionStore

logger = logging.getLogger(__name__)

_signer = TimestampSigner(ADMIN_SECRET)

router = APIRouter()


def issue_admin_token() -> str:
    return _signer.sign(b"admin").decode()


def verify_admin_token(token: str) -> bool:
    try:
        return _signer.unsign(token, max_age=ADMIN_TOKEN_MAX_AGE) == b"admin"
    except (BadSignature, SignatureExpired):
        return False


def current_fid(request: Request, x_farcaster_fid: Optional[str] = Header(None)) -> int:
    if x_farcaster_fid:
        try:
            fid = int(x_farcaster_fid.strip())
        except ValueError:
            raise Unauthenticated("Unauthorized: invalid Farcaster FID")
        if fid <= 0:
            raise Unauthenticated("Unauthorized: invalid Farcaster FID")
        return fid
    if request.app.state.env == "development":
        return DEV_FID
    raise Unauthenticated("Unauthorized: No Farcaster FID found")


def require_admin(x_admin_token: Optional[str] = Header(None)) -> None:
    if not x_admin_token:
        raise Unauthenticated("Admin token required")
    if not verify_admin_token(x_admin_token):
        raise Forbidden("Invalid admin token")


def game_service(request: Request) -> GameService:
    return request.app.state.game


def leaderboard(request: Request) -> Leaderboard:
    return request.app.state.leaderboard


def distributor(request: Request) -> RewardDistributor:
    return request.app.state.rewards


def _date_param(value: Optional[str]) -> str:
    if value is None:
        return dates.today()
    if not dates.is_date_string(value):
        raise ValidationError("date must be YYYYMMDD")
    return value


@router.get("/api/me", response_model=MeResponse)
def api_me(fid: int = Depends(current_fid), game: GameService = Depends(game_service)):
    return game.get_me(fid, dates.today())


@router.post("/api/profile", response_model=ProfileResponse)
def api_profile(req: ProfileUpdateRequest, fid: int = Depends(current_fid),
                game: GameService = Depends(game_service)):
    p = game.store.update_profile(fid, username=req.username, wallet_address=req.wallet_address)
    return ProfileResponse(fid=p.fid, username=p.username, wallet_address=p.wallet_address)


@router.post("/api/start-game", response_model=StartGameResponse)
def api_start_game(req: Optional[StartGameRequest] = None, fid: int = Depends(current_fid),
                   game: GameService = Depends(game_service)):
    language = req.language if req else "en"
    result = game.start_game(fid, language, dates.today())
    return StartGameResponse(session_id=result.session_id, max_attempts=result.max_attempts,
                             is_practice_mode=result.is_practice_mode)


@router.post("/api/guess", response_model=GuessResponse, response_model_exclude_none=True)
def api_guess(req: GuessRequest, fid: int = Depends(current_fid), game: GameService = Depends(game_service)):
    r = game.submit_guess(req.session_id, fid, req.guess)
    return GuessResponse(
        feedback=r.feedback,
        attempts_used=r.attempts_used,
        won=r.won,
        remaining_attempts=r.remaining_attempts,
        game_over=r.game_over,
        solution=r.solution,
        score=r.score,
    )


@router.post("/api/complete-game", response_model=CompleteGameResponse, response_model_exclude_none=True)
def api_complete_game(req: CompleteGameRequest, fid: int = Depends(current_fid),
                      game: GameService = Depends(game_service)):
    r = game.complete_game(req.session_id, fid, req.tx_hash, dates.today())
    message = None
    if not r.recorded:
        message = "Practice game, score not recorded" if r.is_practice_mode else "Score already saved (idempotent)"
    return CompleteGameResponse(streak=r.streak, max_streak=r.max_streak,
                                is_practice_mode=r.is_practice_mode, recorded=r.recorded, message=message)


@router.get("/api/hint", response_model=HintResponse)
def api_hint(session_id: str = Query(..., alias="sessionId", min_length=1), fid: int = Depends(current_fid),
             game: GameService = Depends(game_service)):
    h = game.get_hint(session_id, fid)
    return HintResponse(position=h.position, letter=h.letter,
                        hint=f'The letter at position {h.position + 1} is "{h.letter}"')


@router.get("/api/board", response_model=BoardStats)
def api_board(date: Optional[str] = None, lb: Leaderboard = Depends(leaderboard)):
    return lb.board_stats(_date_param(date))


@router.get("/api/leaderboard/daily", response_model=LeaderboardResponse)
def api_leaderboard_daily(date: Optional[str] = None, limit: int = Query(100, ge=1, le=500),
                          lb: Leaderboard = Depends(leaderboard)):
    day = _date_param(date)
    return LeaderboardResponse(period="daily", date=day, leaderboard=lb.daily(day, limit))


@router.get("/api/leaderboard/weekly", response_model=LeaderboardResponse)
def api_leaderboard_weekly(limit: int = Query(100, ge=1, le=500), lb: Leaderboard = Depends(leaderboard)):
    start, end = dates.week_range(dates.today())
    return LeaderboardResponse(period="weekly", start_date=start, end_date=end,
                               leaderboard=lb.weekly(start, end, limit))


@router.get("/api/leaderboard/best-scores", response_model=LeaderboardResponse)
def api_leaderboard_best(limit: int = Query(100, ge=1, le=500), lb: Leaderboard = Depends(leaderboard)):
    return LeaderboardResponse(period="all-time", leaderboard=lb.best_scores(limit))


@router.get("/api/admin/wallet-balance", response_model=WalletBalanceResponse, dependencies=[Depends(require_admin)])
def api_admin_balance(rewards: RewardDistributor = Depends(distributor)):
    return WalletBalanceResponse(usdc_balance=rewards.gateway.get_sponsor_balance())


@router.get("/api/admin/weekly-rewards/preview", response_model=RewardPreviewResponse,
            dependencies=[Depends(require_admin)])
def api_admin_preview(rewards: RewardDistributor = Depends(distributor)):
    p = rewards.preview_weekly_rewards(dates.last_week_range())
    return RewardPreviewResponse(start_date=p.start_date, end_date=p.end_date, winners=p.winners,
                                 missing_wallets=p.missing_wallets, already_distributed=p.already_distributed)


@router.post("/api/admin/distribute-weekly-rewards", response_model=DistributeResponse,
             dependencies=[Depends(require_admin)])
def api_admin_distribute(rewards: RewardDistributor = Depends(distributor)):
    start, end = dates.last_week_range()
    outcomes = [o.__dict__ for o in rewards.distribute((start, end))]
    return DistributeResponse(
        start_date=start,
        end_date=end,
        distributed=[o for o in outcomes if o["status"] == "sent"],
        failed=[o for o in outcomes if o["status"] == "failed"],
        skipped=[o for o in outcomes if o["status"] in ("already_sent", "missing_wallet")],
    )


@router.get("/api/admin/weekly-rewards", response_model=RewardHistoryResponse,
            dependencies=[Depends(require_admin)])
def api_admin_history(limit: int = Query(20, ge=1, le=200), rewards: RewardDistributor = Depends(distributor)):
    return RewardHistoryResponse(rewards=[RewardHistoryEntry.model_validate(r) for r in rewards.history(limit)])


@router.get("/version.json")
def version():
    return {"version": VERSION}


async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
    return JSONResponse(status_code=400, content=error_payload(ValidationError.code, message))


def create_app(store: Optional[Store] = None, sessions: Optional[SessionStore] = None,
               gateway: Optional[PaymentGateway] = None, env: str = ENV, **game_options) -> FastAPI:
    configure_logging(LOG_LEVEL, LOG_JSON)
    validate_config(env, logger=logger)

    store = store or Store(DATABASE_URL)
    app = FastAPI(title="Wordcast", version=VERSION)
    app.state.env = env
    app.state.store = store
    app.state.game = GameService(store, sessions or SessionStore(), **game_options)
    app.state.leaderboard = Leaderboard(store)
    app.state.rewards = RewardDistributor(store, gateway or gateway_from_config())

    # CORS for dev convenience
    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_methods=["*"],
        allow_headers=["*"],
        allow_credentials=True,
    )
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)

    @app.on_event("startup")
    def startup():
        store.init_db()

    app.include_router(router)
    return app


app = create_app()


if __name__ == "__main__":
    # Prints a fresh admin token for the x-admin-token header
    print(issue_admin_token())
