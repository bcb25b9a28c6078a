"""
API Schemas（Pydantic）

uint256 隨機數在 JSON 中以字串輸出，避免前端數字精度問題。
"""
from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional
from datetime import datetime

from models import RaffleState


# ============ Raffle ============

class RaffleCreate(BaseModel):
    """未指定的欄位使用 Settings 的預設值"""
    entrance_fee: Optional[int] = Field(None, gt=0)
    interval: Optional[int] = Field(None, gt=0, description="Round length in seconds")
    key_hash: Optional[str] = None
    subscription_id: Optional[int] = None
    callback_gas_limit: Optional[int] = Field(None, gt=0)


class RaffleResponse(BaseModel):
    raffle_id: str
    state: RaffleState
    entrance_fee: int
    interval: int
    last_timestamp: int
    recent_winner: Optional[str] = None
    pending_request_id: Optional[int] = None
    round_number: int
    number_of_players: int
    balance: int
    pool_address: str
    request_confirmations: int
    num_words: int


# ============ Entry ============

class EnterRequest(BaseModel):
    player: str = Field(..., min_length=1)
    amount: int = Field(..., ge=0)


class EntryResponse(BaseModel):
    player: str
    position: int
    number_of_players: int


class PlayerResponse(BaseModel):
    index: int
    player: str


# ============ Upkeep ============

class UpkeepCheckResponse(BaseModel):
    upkeep_needed: bool
    perform_data: str = Field("0x", description="Hex-encoded opaque payload")


class PerformUpkeepRequest(BaseModel):
    perform_data: str = "0x"


class PerformUpkeepResponse(BaseModel):
    request_id: int
    state: RaffleState


# ============ Draw / Event ============

class DrawResponse(BaseModel):
    round_number: int
    request_id: int
    random_word: str
    entrant_count: int
    winner_index: int
    winner: str
    prize: int
    entrants: List[str]
    resolved_at: int


class DrawVerificationResponse(BaseModel):
    ok: bool
    round_number: int
    request_id: int
    random_word: str
    entrant_count: int
    winner_index: int
    winner: str
    oracle_checked: bool


class EventResponse(BaseModel):
    id: int
    event_type: str
    data: Dict[str, Any]
    created_at: datetime

    class Config:
        from_attributes = True


# ============ Oracle ============

class FulfillRequest(BaseModel):
    random_words: Optional[List[int]] = None


class RandomnessRequestResponse(BaseModel):
    request_id: int
    consumer: str
    key_hash: str
    subscription_id: int
    request_confirmations: int
    callback_gas_limit: int
    num_words: int
    fulfilled: bool
    random_words: Optional[List[str]] = None


# ============ Ledger ============

class FundRequest(BaseModel):
    amount: int = Field(..., gt=0)


class AccountResponse(BaseModel):
    address: str
    balance: int
