"""
Raffle Manager：管理 Raffle 的完整生命週期

職責：
1. 建立 Raffle（參數驗證）
2. 參與者加入（EntryManager）
3. 判斷是否可以關閉回合（UpkeepEvaluator）
4. 關閉回合並請求隨機數（ClosureCoordinator）
5. Oracle 回呼：選出得獎者並派彩（WinnerResolver）
6. 查詢 Raffle 資訊

並發設計：
- 變更操作都是 @serialized + @transactional：同一個 Raffle 同時只有一個寫入者，
  而且整個操作 all-or-nothing
- 外部呼叫（Oracle、轉帳）一律放在狀態更新之後（Check-Effect-Interact）
"""
from sqlalchemy.orm import Session
from typing import Any, Dict, List, Optional, Sequence, Tuple
import logging

from models import Raffle, RaffleState, Entrant, Draw, EventLog, RandomnessRequest
from core.interfaces import Ledger, RandomnessOracle
from core.state_machine import RaffleStateMachine
from core.locks import serialized, with_raffle_lock
from core.exceptions import (
    RaffleNotFound,
    InvalidRaffleConfig,
    PlayerNotFound,
    InsufficientFee,
    RoundNotOpen,
    UpkeepNotNeeded,
    StaleElapsedTime,
    UnknownRequest,
    InvalidRandomWords,
    RaffleInvariantViolation,
    TransferFailed,
    DrawNotFound,
    DrawVerificationFailed,
)
from services.upkeep_service import UpkeepSnapshot, evaluate_upkeep
from services.draw_service import pick_winner_index, verify_draw
from database import transactional

logger = logging.getLogger(__name__)

REQUEST_CONFIRMATIONS = 3
NUM_WORDS = 1


class RaffleManager:
    """Raffle 生命週期管理器"""

    @staticmethod
    @transactional
    def create_raffle(
        db: Session,
        now: int,
        entrance_fee: int,
        interval: int,
        key_hash: str,
        subscription_id: int,
        callback_gas_limit: int,
    ) -> Raffle:
        """
        建立新的 Raffle（初始狀態 OPEN）

        參數：
            db: SQLAlchemy Session
            now: 目前時間，作為第一回合的開始時間
            entrance_fee: 入場費（> 0）
            interval: 回合長度（秒，> 0）
            key_hash / subscription_id / callback_gas_limit: Oracle 請求參數

        返回：
            新的 Raffle

        異常：
            InvalidRaffleConfig: 參數不合法
        """
        if entrance_fee <= 0:
            raise InvalidRaffleConfig(f"Entrance fee must be positive, got {entrance_fee}")
        if interval <= 0:
            raise InvalidRaffleConfig(f"Interval must be positive, got {interval}")
        if callback_gas_limit <= 0:
            raise InvalidRaffleConfig(
                f"Callback gas limit must be positive, got {callback_gas_limit}"
            )

        raffle = Raffle(
            state=RaffleState.OPEN,
            entrance_fee=entrance_fee,
            interval=interval,
            key_hash=key_hash,
            subscription_id=subscription_id,
            callback_gas_limit=callback_gas_limit,
            last_timestamp=now,
            round_number=1,
        )
        db.add(raffle)
        db.flush()  # 取得 raffle.id

        db.add(EventLog(
            raffle_id=raffle.id,
            event_type="RAFFLE_CREATED",
            data={"entrance_fee": entrance_fee, "interval": interval}
        ))

        logger.info(
            f"Created raffle {raffle.id} (fee={entrance_fee}, interval={interval}s)"
        )
        return raffle

    # ============ EntryManager ============

    @staticmethod
    @serialized
    @transactional
    def enter(db: Session, raffle_id: str, player: str, amount: int, ledger: Ledger) -> Entrant:
        """
        參與者支付入場費加入當前回合

        前置條件：
        1. amount >= entrance_fee
        2. Raffle 狀態必須是 OPEN

        流程：
        1. 鎖定並驗證
        2. 入場費存入獎池（不退還）
        3. 新增參與名額（加在最後，可重複加入）
        4. 記錄 ENTRY_ACCEPTED 事件

        異常：
            RaffleNotFound: Raffle 不存在
            InsufficientFee: 金額不足
            RoundNotOpen: 正在開獎
            InsufficientFunds: 付款帳戶餘額不足
        """
        raffle = with_raffle_lock(raffle_id, db).first()
        if not raffle:
            raise RaffleNotFound(raffle_id)

        if amount < raffle.entrance_fee:
            raise InsufficientFee(amount, raffle.entrance_fee)

        if raffle.state != RaffleState.OPEN:
            raise RoundNotOpen(raffle.state)

        ledger.deposit(player, amount)

        position = db.query(Entrant).filter(Entrant.raffle_id == raffle_id).count()
        entrant = Entrant(raffle_id=raffle_id, position=position, player=player)
        db.add(entrant)

        db.add(EventLog(
            raffle_id=raffle_id,
            event_type="ENTRY_ACCEPTED",
            data={"player": player}
        ))
        db.flush()

        logger.info(f"Player {player} entered raffle {raffle_id} at position {position}")
        return entrant

    # ============ UpkeepEvaluator ============

    @staticmethod
    def check_upkeep(db: Session, raffle_id: str, ledger: Ledger) -> Tuple[bool, bytes]:
        """
        唯讀查詢：是否可以關閉當前回合

        返回：
            (upkeep_needed, perform_data)；perform_data 固定為空 bytes

        異常：
            RaffleNotFound: Raffle 不存在
        """
        raffle = RaffleManager.get_raffle(db, raffle_id)
        snapshot = RaffleManager._snapshot(db, raffle, ledger)
        return evaluate_upkeep(snapshot), b""

    # ============ ClosureCoordinator ============

    @staticmethod
    @serialized
    @transactional
    def perform_upkeep(
        db: Session,
        raffle_id: str,
        perform_data: bytes,
        ledger: Ledger,
        oracle: RandomnessOracle,
    ) -> int:
        """
        關閉當前回合並向 Oracle 請求隨機數

        流程：
        1. 鎖定後重新判斷 upkeep（外部 keeper 觀察到的狀態可能已過期）
        2. 再次確認 interval 已過
        3. 狀態 OPEN -> CALCULATING
        4. 呼叫 Oracle，保存 request id

        返回：
            request id

        異常：
            UpkeepNotNeeded: 條件不成立（附診斷資訊）
            StaleElapsedTime: 時間未到
        """
        raffle = with_raffle_lock(raffle_id, db).first()
        if not raffle:
            raise RaffleNotFound(raffle_id)

        # 1. Check
        snapshot = RaffleManager._snapshot(db, raffle, ledger)
        if not evaluate_upkeep(snapshot):
            logger.warning(
                f"Upkeep not needed for raffle {raffle_id}: balance={snapshot.balance}, "
                f"players={snapshot.player_count}, state={raffle.state.value}"
            )
            raise UpkeepNotNeeded(snapshot.balance, snapshot.player_count, raffle.state)

        if snapshot.elapsed < raffle.interval:
            raise StaleElapsedTime(snapshot.elapsed, raffle.interval)

        # 2. Effect：先改狀態，之後任何重入或並發呼叫都會看到 CALCULATING
        RaffleStateMachine.transition(raffle, RaffleState.CALCULATING, db)

        # 3. Interact
        request_id = oracle.request_random_words(
            key_hash=raffle.key_hash,
            subscription_id=raffle.subscription_id,
            request_confirmations=REQUEST_CONFIRMATIONS,
            callback_gas_limit=raffle.callback_gas_limit,
            num_words=NUM_WORDS,
            consumer=raffle.id,
        )
        raffle.pending_request_id = request_id

        db.add(EventLog(
            raffle_id=raffle_id,
            event_type="WINNER_REQUESTED",
            data={"request_id": request_id}
        ))
        db.flush()

        logger.info(f"Raffle {raffle_id} requested randomness (request_id={request_id})")
        return request_id

    # ============ WinnerResolver ============

    @staticmethod
    @serialized
    @transactional
    def fulfill_random_words(
        db: Session,
        raffle_id: str,
        request_id: int,
        random_words: Sequence[int],
        ledger: Ledger,
    ) -> Draw:
        """
        Oracle 回呼：選出得獎者、重開回合、派彩

        前置條件：
        - 狀態是 CALCULATING，且 request_id 是等待中的請求

        流程：
        1. winner_index = random_words[0] mod 參與名額數
        2. 更新狀態：記錄得獎者、OPEN、清空名單、重設開始時間、寫入 Draw
        3. 把獎池全部餘額轉給得獎者

        轉帳失敗會拋出 TransferFailed，@transactional 會整個 rollback：
        狀態維持 CALCULATING、名單不變、沒有 Draw 紀錄，Oracle 可以重新投遞。

        異常：
            UnknownRequest: request id 不符或不在開獎中（不改變任何狀態）
            InvalidRandomWords: 沒有隨機數
            RaffleInvariantViolation: 沒有參與者
            TransferFailed: 派彩失敗
        """
        raffle = with_raffle_lock(raffle_id, db).first()
        if not raffle:
            raise RaffleNotFound(raffle_id)

        # 1. Check
        if raffle.state != RaffleState.CALCULATING or raffle.pending_request_id != request_id:
            logger.warning(
                f"Rejected callback for raffle {raffle_id}: request_id={request_id}, "
                f"pending={raffle.pending_request_id}, state={raffle.state.value}"
            )
            raise UnknownRequest(request_id)

        if not random_words:
            raise InvalidRandomWords(f"No random words delivered for request {request_id}")

        entrants = db.query(Entrant).filter(
            Entrant.raffle_id == raffle_id
        ).order_by(Entrant.position).all()
        players = [entrant.player for entrant in entrants]
        if not players:
            raise RaffleInvariantViolation(
                f"Raffle {raffle_id} is calculating with zero entrants"
            )

        random_word = int(random_words[0])
        winner_index = pick_winner_index(random_word, len(players))
        winner = players[winner_index]
        prize = ledger.current_balance()
        now = ledger.now()

        # 2. Effect：轉帳前先把回合重開，轉帳中若有重入只會看到新的 OPEN 回合
        raffle.recent_winner = winner
        RaffleStateMachine.transition(raffle, RaffleState.OPEN, db)
        for entrant in entrants:
            db.delete(entrant)
        raffle.last_timestamp = now
        raffle.pending_request_id = None

        draw = Draw(
            raffle_id=raffle_id,
            round_number=raffle.round_number,
            request_id=request_id,
            random_word=str(random_word),
            entrant_count=len(players),
            winner_index=winner_index,
            winner=winner,
            prize=prize,
            entrants_snapshot=players,
            resolved_at=now,
        )
        db.add(draw)
        raffle.round_number += 1

        db.add(EventLog(
            raffle_id=raffle_id,
            event_type="WINNER_PICKED",
            data={"winner": winner}
        ))
        db.flush()

        # 3. Interact
        if not ledger.transfer(winner, prize):
            raise TransferFailed(winner, prize)

        logger.info(
            f"Raffle {raffle_id} round {draw.round_number}: winner {winner} "
            f"(index {winner_index} of {len(players)}), prize {prize}"
        )
        return draw

    # ============ 查詢 ============

    @staticmethod
    def get_raffle(db: Session, raffle_id: str) -> Raffle:
        """
        透過 id 取得 Raffle

        異常：
            RaffleNotFound: Raffle 不存在
        """
        raffle = db.query(Raffle).filter(Raffle.id == raffle_id).first()
        if not raffle:
            raise RaffleNotFound(raffle_id)
        return raffle

    @staticmethod
    def list_raffles(db: Session) -> List[Raffle]:
        return db.query(Raffle).order_by(Raffle.created_at).all()

    @staticmethod
    def get_player(db: Session, raffle_id: str, index: int) -> str:
        """
        取得當前回合第 index 個參與名額

        異常：
            RaffleNotFound: Raffle 不存在
            PlayerNotFound: index 超出範圍
        """
        RaffleManager.get_raffle(db, raffle_id)
        entrant = db.query(Entrant).filter(
            Entrant.raffle_id == raffle_id,
            Entrant.position == index
        ).first()
        if not entrant:
            raise PlayerNotFound(index)
        return entrant.player

    @staticmethod
    def list_players(db: Session, raffle_id: str) -> List[str]:
        RaffleManager.get_raffle(db, raffle_id)
        entrants = db.query(Entrant).filter(
            Entrant.raffle_id == raffle_id
        ).order_by(Entrant.position).all()
        return [entrant.player for entrant in entrants]

    @staticmethod
    def get_number_of_players(db: Session, raffle_id: str) -> int:
        RaffleManager.get_raffle(db, raffle_id)
        return db.query(Entrant).filter(Entrant.raffle_id == raffle_id).count()

    @staticmethod
    def get_recent_winner(db: Session, raffle_id: str) -> Optional[str]:
        return RaffleManager.get_raffle(db, raffle_id).recent_winner

    @staticmethod
    def get_request_confirmations() -> int:
        return REQUEST_CONFIRMATIONS

    @staticmethod
    def get_num_words() -> int:
        return NUM_WORDS

    @staticmethod
    def list_events(db: Session, raffle_id: str, event_type: Optional[str] = None) -> List[EventLog]:
        RaffleManager.get_raffle(db, raffle_id)
        query = db.query(EventLog).filter(EventLog.raffle_id == raffle_id)
        if event_type:
            query = query.filter(EventLog.event_type == event_type)
        return query.order_by(EventLog.id).all()

    @staticmethod
    def get_draw(db: Session, raffle_id: str, round_number: int) -> Draw:
        draw = db.query(Draw).filter(
            Draw.raffle_id == raffle_id,
            Draw.round_number == round_number
        ).first()
        if not draw:
            raise DrawNotFound(raffle_id, round_number)
        return draw

    @staticmethod
    def verify_draw(db: Session, raffle_id: str, round_number: int) -> Dict[str, Any]:
        """
        稽核某一回合的開獎

        1. 用保存的參與者快照與隨機數重算得獎者
        2. 若 Oracle 請求紀錄存在，確認隨機數與 Oracle 投遞的一致

        異常：
            DrawNotFound: 沒有這一回合
            DrawVerificationFailed: 任一項不一致
        """
        draw = RaffleManager.get_draw(db, raffle_id, round_number)
        random_word = int(draw.random_word)

        if draw.entrant_count != len(draw.entrants_snapshot):
            raise DrawVerificationFailed(
                f"Entrant count mismatch: recorded={draw.entrant_count} "
                f"snapshot={len(draw.entrants_snapshot)}"
            )

        result = verify_draw(
            random_word, draw.entrants_snapshot, draw.winner_index, draw.winner
        )

        request = db.query(RandomnessRequest).filter(
            RandomnessRequest.request_id == draw.request_id
        ).first()
        if request is not None and request.random_words:
            delivered = int(request.random_words[0])
            if delivered != random_word:
                raise DrawVerificationFailed(
                    f"Random word mismatch: oracle={delivered} recorded={random_word}"
                )
            result["oracle_checked"] = True
        else:
            result["oracle_checked"] = False

        result["round_number"] = round_number
        result["request_id"] = draw.request_id
        return result

    @staticmethod
    def _snapshot(db: Session, raffle: Raffle, ledger: Ledger) -> UpkeepSnapshot:
        player_count = db.query(Entrant).filter(Entrant.raffle_id == raffle.id).count()
        return UpkeepSnapshot(
            state=raffle.state,
            now=ledger.now(),
            last_timestamp=raffle.last_timestamp,
            interval=raffle.interval,
            balance=ledger.current_balance(),
            player_count=player_count,
        )
