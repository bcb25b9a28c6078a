"""
LocalVRFCoordinator：本地隨機數 Coordinator

兩階段流程：
1. request_random_words()：登記請求，回傳 request id（同一個 transaction）
2. fulfill()：之後由 keeper 或 API 觸發，產生隨機數並回呼 consumer

隨機數預設由 derive_random_words(request_id) 推導，任何人都可以重算。
請求只有在 consumer 回呼成功 commit 時才會被標記為 fulfilled；
回呼失敗（例如派彩失敗）會 rollback，請求可以再次投遞。
"""
import logging
from typing import Callable, List, Optional, Sequence

from sqlalchemy.orm import Session

from models import RandomnessRequest
from core.exceptions import UnknownRequest
from core.locks import with_request_lock
from services.draw_service import derive_random_words, UINT256_MAX
from adapters.ledger import Clock, DatabaseLedger, system_clock

logger = logging.getLogger(__name__)

MIN_REQUEST_CONFIRMATIONS = 3
MAX_NUM_WORDS = 500

# (db, consumer, request_id, random_words) -> Any
Deliver = Callable[[Session, str, int, List[int]], object]


def deliver_to_raffle(clock: Clock) -> Deliver:
    """預設的回呼：交給 RaffleManager.fulfill_random_words"""
    from core.raffle_manager import RaffleManager

    def deliver(db: Session, consumer: str, request_id: int, random_words: List[int]):
        ledger = DatabaseLedger(db, consumer, clock)
        return RaffleManager.fulfill_random_words(db, consumer, request_id, random_words, ledger)

    return deliver


class LocalVRFCoordinator:
    """VRF Coordinator（本地實作）"""

    def __init__(
        self,
        db: Session,
        clock: Clock = system_clock,
        deliver: Optional[Deliver] = None,
    ):
        self.db = db
        self.deliver = deliver or deliver_to_raffle(clock)

    def request_random_words(
        self,
        key_hash: str,
        subscription_id: int,
        request_confirmations: int,
        callback_gas_limit: int,
        num_words: int,
        consumer: str,
    ) -> int:
        """
        登記一個隨機數請求

        注意：
            - 只 flush，不 commit（由 consumer 的 transaction 決定是否生效）

        異常：
            ValueError: 參數超出 Coordinator 的限制
        """
        if request_confirmations < MIN_REQUEST_CONFIRMATIONS:
            raise ValueError(
                f"Need at least {MIN_REQUEST_CONFIRMATIONS} confirmations, got {request_confirmations}"
            )
        if not 1 <= num_words <= MAX_NUM_WORDS:
            raise ValueError(f"num_words must be within 1..{MAX_NUM_WORDS}, got {num_words}")

        request = RandomnessRequest(
            consumer=consumer,
            key_hash=key_hash,
            subscription_id=subscription_id,
            request_confirmations=request_confirmations,
            callback_gas_limit=callback_gas_limit,
            num_words=num_words,
            fulfilled=False,
        )
        self.db.add(request)
        self.db.flush()  # 取得 request_id

        logger.info(f"Randomness requested by {consumer}: request_id={request.request_id}")
        return request.request_id

    def get_request(self, request_id: int) -> RandomnessRequest:
        request = self.db.query(RandomnessRequest).filter(
            RandomnessRequest.request_id == request_id
        ).first()
        if not request:
            raise UnknownRequest(request_id)
        return request

    def pending_requests(self, consumer: Optional[str] = None) -> List[RandomnessRequest]:
        query = self.db.query(RandomnessRequest).filter(
            RandomnessRequest.fulfilled == False  # noqa: E712
        )
        if consumer:
            query = query.filter(RandomnessRequest.consumer == consumer)
        return query.order_by(RandomnessRequest.request_id).all()

    def fulfill(self, request_id: int, random_words: Optional[Sequence[int]] = None):
        """
        投遞隨機數給 consumer（每個請求只會成功一次）

        參數：
            request_id: 請求 id
            random_words: 指定隨機數（測試用）；None 時由 request id 推導

        返回：
            consumer 回呼的回傳值（Raffle 的話是 Draw）

        異常：
            UnknownRequest: 請求不存在或已投遞
            ValueError: 指定的隨機數數量或範圍不合法
            其他：consumer 回呼拋出的異常（此時不會標記為 fulfilled）
        """
        try:
            request = with_request_lock(request_id, self.db).first()
            if not request or request.fulfilled:
                raise UnknownRequest(request_id)

            if random_words is None:
                words = derive_random_words(request.request_id, request.num_words)
            else:
                words = [int(w) for w in random_words]
                if len(words) != request.num_words:
                    raise ValueError(
                        f"Request {request_id} expects {request.num_words} words, got {len(words)}"
                    )
                if any(w < 0 or w > UINT256_MAX for w in words):
                    raise ValueError("Random words must be uint256")

            request.fulfilled = True
            request.random_words = [str(w) for w in words]
            self.db.flush()

            result = self.deliver(self.db, request.consumer, request.request_id, words)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Request {request_id} fulfilled for {request.consumer}")
        return result
