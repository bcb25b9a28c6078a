"""
Raffle 狀態機：集中管理所有狀態轉換

合法轉換：
    OPEN        -> CALCULATING   (perform_upkeep)
    CALCULATING -> OPEN          (fulfill_random_words)

沒有終止狀態，Raffle 會無限循環。
"""
import logging

from sqlalchemy.orm import Session

from models import Raffle, RaffleState, EventLog
from core.exceptions import InvalidStateTransition

logger = logging.getLogger(__name__)


class RaffleStateMachine:
    """Raffle 狀態機"""

    TRANSITIONS = {
        RaffleState.OPEN: {RaffleState.CALCULATING},
        RaffleState.CALCULATING: {RaffleState.OPEN},
    }

    @classmethod
    def can_transition(cls, current: RaffleState, target: RaffleState) -> bool:
        return target in cls.TRANSITIONS.get(current, set())

    @classmethod
    def transition(cls, raffle: Raffle, target: RaffleState, db: Session) -> Raffle:
        """
        轉換 Raffle 狀態並記錄事件

        參數：
            raffle: 已鎖定的 Raffle
            target: 目標狀態
            db: SQLAlchemy Session

        返回：
            更新後的 Raffle

        異常：
            InvalidStateTransition: 轉換不合法

        注意：
            - 只 flush，不 commit（交由外層 transaction 處理）
        """
        current = raffle.state
        if not cls.can_transition(current, target):
            raise InvalidStateTransition(
                f"Cannot transition raffle {raffle.id} from {current.value} to {target.value}"
            )

        raffle.state = target
        db.add(EventLog(
            raffle_id=raffle.id,
            event_type="RAFFLE_STATE_CHANGED",
            data={"from": current.value, "to": target.value}
        ))
        db.flush()

        logger.info(f"Raffle {raffle.id}: {current.value} -> {target.value}")
        return raffle
