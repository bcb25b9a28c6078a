"""
資料模型（SQLAlchemy）

- Raffle：每一個 Raffle 的 RoundState（狀態、參數、當前回合資訊）
- Entrant：當前回合的參與名額（依加入順序，可重複）
- Draw：已開獎回合的稽核紀錄
- EventLog：對外可觀察的事件
- LedgerAccount：帳本餘額（玩家錢包 + Raffle 獎池）
- RandomnessRequest：本地 VRF Coordinator 的隨機數請求
"""
import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    JSON,
    String,
    UniqueConstraint,
)

from database import Base


def _uuid() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RaffleState(str, enum.Enum):
    OPEN = "OPEN"
    CALCULATING = "CALCULATING"


class Raffle(Base):
    __tablename__ = "raffles"

    id = Column(String(36), primary_key=True, default=_uuid)
    state = Column(Enum(RaffleState), nullable=False, default=RaffleState.OPEN)

    # 建立時設定，之後不可變更
    entrance_fee = Column(BigInteger, nullable=False)
    interval = Column(Integer, nullable=False)
    key_hash = Column(String, nullable=False)
    subscription_id = Column(Integer, nullable=False)
    callback_gas_limit = Column(Integer, nullable=False)

    # 回合狀態
    last_timestamp = Column(Integer, nullable=False)
    recent_winner = Column(String, nullable=True)
    pending_request_id = Column(Integer, nullable=True)
    round_number = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime(timezone=True), default=_utcnow)

    @property
    def pool_address(self) -> str:
        return pool_address_for(self.id)


def pool_address_for(raffle_id: str) -> str:
    """Raffle 獎池在帳本上的地址"""
    return f"raffle:{raffle_id}"


class Entrant(Base):
    __tablename__ = "entrants"
    __table_args__ = (UniqueConstraint("raffle_id", "position"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    raffle_id = Column(String(36), ForeignKey("raffles.id"), nullable=False, index=True)
    position = Column(Integer, nullable=False)
    player = Column(String, nullable=False)
    entered_at = Column(DateTime(timezone=True), default=_utcnow)


class Draw(Base):
    __tablename__ = "draws"
    __table_args__ = (UniqueConstraint("raffle_id", "round_number"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    raffle_id = Column(String(36), ForeignKey("raffles.id"), nullable=False, index=True)
    round_number = Column(Integer, nullable=False)
    request_id = Column(Integer, nullable=False)
    # uint256 超過 SQL INTEGER 範圍，以十進位字串保存
    random_word = Column(String, nullable=False)
    entrant_count = Column(Integer, nullable=False)
    winner_index = Column(Integer, nullable=False)
    winner = Column(String, nullable=False)
    prize = Column(BigInteger, nullable=False)
    entrants_snapshot = Column(JSON, nullable=False)
    resolved_at = Column(Integer, nullable=False)


class EventLog(Base):
    __tablename__ = "event_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    raffle_id = Column(String(36), ForeignKey("raffles.id"), nullable=False, index=True)
    event_type = Column(String, nullable=False)
    data = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), default=_utcnow)


class LedgerAccount(Base):
    __tablename__ = "ledger_accounts"

    address = Column(String, primary_key=True)
    balance = Column(BigInteger, nullable=False, default=0)
    # 拒收轉帳的帳戶（模擬收款方失敗）
    blocked = Column(Boolean, nullable=False, default=False)


class RandomnessRequest(Base):
    __tablename__ = "randomness_requests"

    request_id = Column(Integer, primary_key=True, autoincrement=True)
    consumer = Column(String(36), nullable=False, index=True)
    key_hash = Column(String, nullable=False)
    subscription_id = Column(Integer, nullable=False)
    request_confirmations = Column(Integer, nullable=False)
    callback_gas_limit = Column(Integer, nullable=False)
    num_words = Column(Integer, nullable=False)
    fulfilled = Column(Boolean, nullable=False, default=False)
    random_words = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
