"""
Raffle API Endpoints

重點：
1. 所有業務邏輯集中在 RaffleManager
2. GET /upkeep 是唯讀查詢，POST /upkeep 會自己重新驗證條件
3. 業務異常轉成 4xx，其他錯誤一律 500
"""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from typing import List, Optional

import logging

from database import get_db, get_settings
from models import Raffle
from schemas import (
    RaffleCreate,
    RaffleResponse,
    EnterRequest,
    EntryResponse,
    PlayerResponse,
    UpkeepCheckResponse,
    PerformUpkeepRequest,
    PerformUpkeepResponse,
    DrawResponse,
    DrawVerificationResponse,
    EventResponse,
)
from core.raffle_manager import RaffleManager
from core.exceptions import (
    RaffleNotFound,
    InvalidRaffleConfig,
    PlayerNotFound,
    InsufficientFee,
    InsufficientFunds,
    RoundNotOpen,
    UpkeepNotNeeded,
    StaleElapsedTime,
    DrawNotFound,
    DrawVerificationFailed,
)
from services.history_service import get_draw_history, get_player_wins
from api.deps import get_clock, get_ledger_factory, get_oracle

router = APIRouter(prefix="/api/raffles", tags=["raffles"])
logger = logging.getLogger(__name__)


def _raffle_response(db: Session, raffle: Raffle, ledger) -> RaffleResponse:
    return RaffleResponse(
        raffle_id=raffle.id,
        state=raffle.state,
        entrance_fee=raffle.entrance_fee,
        interval=raffle.interval,
        last_timestamp=raffle.last_timestamp,
        recent_winner=raffle.recent_winner,
        pending_request_id=raffle.pending_request_id,
        round_number=raffle.round_number,
        number_of_players=RaffleManager.get_number_of_players(db, raffle.id),
        balance=ledger.current_balance(),
        pool_address=raffle.pool_address,
        request_confirmations=RaffleManager.get_request_confirmations(),
        num_words=RaffleManager.get_num_words(),
    )


def _or_default(value, default):
    return value if value is not None else default


def _parse_perform_data(value: str) -> bytes:
    text = value[2:] if value.startswith("0x") else value
    try:
        return bytes.fromhex(text)
    except ValueError:
        raise HTTPException(status_code=400, detail="perform_data must be hex")


@router.post("", response_model=RaffleResponse)
def create_raffle(
    raffle_data: RaffleCreate,
    db: Session = Depends(get_db),
    clock=Depends(get_clock),
    ledger_factory=Depends(get_ledger_factory),
):
    """
    建立新的 Raffle

    未指定的參數使用 Settings 的預設值（.env）
    """
    settings = get_settings()
    try:
        raffle = RaffleManager.create_raffle(
            db,
            now=int(clock()),
            entrance_fee=_or_default(raffle_data.entrance_fee, settings.entrance_fee),
            interval=_or_default(raffle_data.interval, settings.interval_seconds),
            key_hash=_or_default(raffle_data.key_hash, settings.key_hash),
            subscription_id=_or_default(raffle_data.subscription_id, settings.subscription_id),
            callback_gas_limit=_or_default(
                raffle_data.callback_gas_limit, settings.callback_gas_limit
            ),
        )
        return _raffle_response(db, raffle, ledger_factory(raffle.id))

    except InvalidRaffleConfig as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to create raffle: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("", response_model=List[RaffleResponse])
def list_raffles(db: Session = Depends(get_db), ledger_factory=Depends(get_ledger_factory)):
    try:
        return [
            _raffle_response(db, raffle, ledger_factory(raffle.id))
            for raffle in RaffleManager.list_raffles(db)
        ]
    except Exception as e:
        logger.error(f"Failed to list raffles: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/{raffle_id}", response_model=RaffleResponse)
def get_raffle(raffle_id: str, db: Session = Depends(get_db), ledger_factory=Depends(get_ledger_factory)):
    """
    取得 Raffle 狀態

    返回：
        - state: OPEN / CALCULATING
        - number_of_players: 當前回合參與名額
        - balance: 獎池餘額
        - recent_winner: 上一回合得獎者
    """
    try:
        raffle = RaffleManager.get_raffle(db, raffle_id)
        return _raffle_response(db, raffle, ledger_factory(raffle_id))

    except RaffleNotFound:
        raise HTTPException(status_code=404, detail="Raffle not found")
    except Exception as e:
        logger.error(f"Failed to get raffle: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/{raffle_id}/enter", response_model=EntryResponse)
def enter_raffle(
    raffle_id: str,
    entry: EnterRequest,
    db: Session = Depends(get_db),
    ledger_factory=Depends(get_ledger_factory),
):
    """
    支付入場費加入當前回合

    前置條件：
    - amount >= entrance_fee
    - Raffle 狀態必須是 OPEN
    - player 帳戶餘額足夠支付 amount
    """
    try:
        entrant = RaffleManager.enter(
            db, raffle_id, entry.player, entry.amount, ledger_factory(raffle_id)
        )
        return EntryResponse(
            player=entrant.player,
            position=entrant.position,
            number_of_players=RaffleManager.get_number_of_players(db, raffle_id),
        )

    except RaffleNotFound:
        raise HTTPException(status_code=404, detail="Raffle not found")
    except (InsufficientFee, InsufficientFunds) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except RoundNotOpen as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to enter raffle: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/{raffle_id}/upkeep", response_model=UpkeepCheckResponse)
def check_upkeep(raffle_id: str, db: Session = Depends(get_db), ledger_factory=Depends(get_ledger_factory)):
    """唯讀：回合是否可以關閉"""
    try:
        upkeep_needed, perform_data = RaffleManager.check_upkeep(
            db, raffle_id, ledger_factory(raffle_id)
        )
        return UpkeepCheckResponse(
            upkeep_needed=upkeep_needed,
            perform_data="0x" + perform_data.hex()
        )

    except RaffleNotFound:
        raise HTTPException(status_code=404, detail="Raffle not found")
    except Exception as e:
        logger.error(f"Failed to check upkeep: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/{raffle_id}/upkeep", response_model=PerformUpkeepResponse)
def perform_upkeep(
    raffle_id: str,
    upkeep_data: PerformUpkeepRequest,
    db: Session = Depends(get_db),
    ledger_factory=Depends(get_ledger_factory),
    oracle=Depends(get_oracle),
):
    """
    關閉當前回合並請求隨機數

    任何排程器都可以呼叫；條件會在鎖內重新驗證。
    """
    perform_data = _parse_perform_data(upkeep_data.perform_data)
    try:
        request_id = RaffleManager.perform_upkeep(
            db, raffle_id, perform_data, ledger_factory(raffle_id), oracle
        )
        raffle = RaffleManager.get_raffle(db, raffle_id)
        return PerformUpkeepResponse(request_id=request_id, state=raffle.state)

    except RaffleNotFound:
        raise HTTPException(status_code=404, detail="Raffle not found")
    except UpkeepNotNeeded as e:
        raise HTTPException(
            status_code=409,
            detail={
                "error": "UpkeepNotNeeded",
                "balance": e.balance,
                "player_count": e.player_count,
                "state": e.state.value,
            }
        )
    except StaleElapsedTime as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to perform upkeep: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/{raffle_id}/players", response_model=List[PlayerResponse])
def list_players(raffle_id: str, db: Session = Depends(get_db)):
    try:
        players = RaffleManager.list_players(db, raffle_id)
        return [PlayerResponse(index=i, player=p) for i, p in enumerate(players)]

    except RaffleNotFound:
        raise HTTPException(status_code=404, detail="Raffle not found")
    except Exception as e:
        logger.error(f"Failed to list players: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/{raffle_id}/players/{index}", response_model=PlayerResponse)
def get_player(raffle_id: str, index: int, db: Session = Depends(get_db)):
    try:
        return PlayerResponse(index=index, player=RaffleManager.get_player(db, raffle_id, index))

    except (RaffleNotFound, PlayerNotFound) as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to get player: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/{raffle_id}/events", response_model=List[EventResponse])
def list_events(raffle_id: str, event_type: Optional[str] = None, db: Session = Depends(get_db)):
    """對外事件：ENTRY_ACCEPTED / WINNER_REQUESTED / WINNER_PICKED / RAFFLE_STATE_CHANGED"""
    try:
        return RaffleManager.list_events(db, raffle_id, event_type)

    except RaffleNotFound:
        raise HTTPException(status_code=404, detail="Raffle not found")
    except Exception as e:
        logger.error(f"Failed to list events: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/{raffle_id}/draws", response_model=List[DrawResponse])
def list_draws(raffle_id: str, player: Optional[str] = None, db: Session = Depends(get_db)):
    """開獎紀錄；指定 player 時只回傳該玩家得獎的回合"""
    try:
        RaffleManager.get_raffle(db, raffle_id)
        if player:
            return get_player_wins(raffle_id, player, db)
        return get_draw_history(raffle_id, db)

    except RaffleNotFound:
        raise HTTPException(status_code=404, detail="Raffle not found")
    except Exception as e:
        logger.error(f"Failed to list draws: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/{raffle_id}/draws/{round_number}/verify", response_model=DrawVerificationResponse)
def verify_draw(raffle_id: str, round_number: int, db: Session = Depends(get_db)):
    """重新計算某一回合的得獎者，確認與紀錄一致"""
    try:
        return RaffleManager.verify_draw(db, raffle_id, round_number)

    except DrawNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except DrawVerificationFailed as e:
        raise HTTPException(status_code=422, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to verify draw: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")
