"""
Keeper：定期檢查每個 Raffle，條件成立就觸發 perform_upkeep

- run_once()：同步執行一輪（測試、CLI 使用）
- run_forever()：在 FastAPI lifespan 中以背景 task 執行

任何單一 Raffle 的錯誤只會記錄，不會讓迴圈停止。
auto_fulfill=True 時，同一輪也會讓本地 Coordinator 投遞等待中的請求（只用於開發環境）。
"""
import asyncio
import logging
from typing import Callable, Dict, List

from sqlalchemy.orm import Session

from models import Raffle
from core.exceptions import RaffleException
from core.raffle_manager import RaffleManager
from adapters.ledger import Clock, DatabaseLedger, system_clock
from adapters.vrf_coordinator import LocalVRFCoordinator

logger = logging.getLogger(__name__)


def run_once(
    session_factory: Callable[[], Session],
    clock: Clock = system_clock,
    auto_fulfill: bool = False,
) -> Dict[str, List]:
    """
    執行一輪 keeper

    返回：
        {"performed": [(raffle_id, request_id), ...], "fulfilled": [request_id, ...]}
    """
    performed = []
    fulfilled = []

    db = session_factory()
    try:
        raffle_ids = [row.id for row in db.query(Raffle.id).all()]

        for raffle_id in raffle_ids:
            ledger = DatabaseLedger(db, raffle_id, clock)
            oracle = LocalVRFCoordinator(db, clock=clock)
            try:
                upkeep_needed, perform_data = RaffleManager.check_upkeep(db, raffle_id, ledger)
                if not upkeep_needed:
                    continue
                request_id = RaffleManager.perform_upkeep(
                    db, raffle_id, perform_data, ledger, oracle
                )
                performed.append((raffle_id, request_id))
            except RaffleException as e:
                # 例如另一個 keeper 先一步關閉了回合
                logger.warning(f"Keeper skipped raffle {raffle_id}: {e}")
            except Exception as e:
                logger.error(f"Keeper failed on raffle {raffle_id}: {e}", exc_info=True)
                db.rollback()

        if auto_fulfill:
            oracle = LocalVRFCoordinator(db, clock=clock)
            for request_id in [r.request_id for r in oracle.pending_requests()]:
                try:
                    oracle.fulfill(request_id)
                    fulfilled.append(request_id)
                except RaffleException as e:
                    logger.warning(f"Keeper could not fulfill request {request_id}: {e}")
                except Exception as e:
                    logger.error(f"Keeper failed fulfilling request {request_id}: {e}", exc_info=True)
    finally:
        db.close()

    if performed or fulfilled:
        logger.info(f"Keeper tick: performed={performed}, fulfilled={fulfilled}")
    return {"performed": performed, "fulfilled": fulfilled}


async def run_forever(
    session_factory: Callable[[], Session],
    interval_seconds: float,
    clock: Clock = system_clock,
    auto_fulfill: bool = False,
) -> None:
    """背景迴圈；取消 task 即可停止"""
    logger.info(f"Keeper started (every {interval_seconds}s, auto_fulfill={auto_fulfill})")
    while True:
        try:
            await asyncio.to_thread(run_once, session_factory, clock, auto_fulfill)
        except Exception as e:
            logger.error(f"Keeper tick failed: {e}", exc_info=True)
        await asyncio.sleep(interval_seconds)
