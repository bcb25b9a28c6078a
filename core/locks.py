"""
並發控制工具

Raffle 的每個變更操作都必須是 single-writer：
1. 行程內：依 raffle_id 分到固定數量的 threading.RLock（SQLite 不支援 FOR UPDATE）
2. 資料庫：SELECT ... FOR UPDATE 行級鎖（PostgreSQL 等）

兩者一起使用，確保兩個 perform_upkeep 不會同時看到 OPEN。
"""
import threading
import zlib
from contextlib import contextmanager
from functools import wraps

from sqlalchemy.orm import Session, Query

from models import Raffle, LedgerAccount, RandomnessRequest

MUTEX_STRIPES = 64

# 鎖的數量固定，不隨 raffle_id（包含不存在的 id）增加
_raffle_mutexes = tuple(threading.RLock() for _ in range(MUTEX_STRIPES))


def _mutex_for(raffle_id: str):
    return _raffle_mutexes[zlib.crc32(raffle_id.encode("utf-8")) % MUTEX_STRIPES]


@contextmanager
def raffle_mutex(raffle_id: str):
    """
    行程內的 Raffle 互斥鎖

    使用場景：
    - 包住整個 check → effect → interact 流程
    - RLock：同一執行緒在轉帳回呼中再次進入不會 deadlock，
      而且會看到已經更新過的狀態
    - 不同 Raffle 可能共用同一把鎖，只會多等待，不影響正確性
    """
    mutex = _mutex_for(str(raffle_id))
    with mutex:
        yield


def serialized(func):
    """
    Decorator：整個操作（含 commit）都在 Raffle 互斥鎖內執行

    使用方式（必須放在 @transactional 外層）：
        @staticmethod
        @serialized
        @transactional
        def perform_upkeep(db: Session, raffle_id: str, ...):
            ...

    注意：
        - 第二個參數（或 kwargs）必須是 raffle_id
    """
    @wraps(func)
    def wrapper(*args, **kwargs):
        if 'raffle_id' in kwargs:
            raffle_id = kwargs['raffle_id']
        elif len(args) >= 2:
            raffle_id = args[1]
        else:
            raise ValueError(
                f"@serialized requires 'raffle_id' as second argument of {func.__name__}"
            )

        with raffle_mutex(raffle_id):
            return func(*args, **kwargs)

    return wrapper


def with_raffle_lock(raffle_id: str, db: Session) -> Query:
    """
    鎖定一個 Raffle（行級鎖）

    使用場景：
    - 檢查並修改 Raffle 狀態時
    - 開獎時（防止重複開獎）

    範例：
        raffle = with_raffle_lock(raffle_id, db).first()
        if not raffle:
            raise RaffleNotFound(raffle_id)
        raffle.state = RaffleState.CALCULATING

    注意：
        - nowait=False 表示如果鎖被佔用，會等待
        - 必須在 transaction 內使用（確保有 commit 或 rollback）
    """
    return db.query(Raffle).filter(
        Raffle.id == raffle_id
    ).with_for_update(nowait=False)


def with_account_lock(address: str, db: Session) -> Query:
    """鎖定一個帳本帳戶"""
    return db.query(LedgerAccount).filter(
        LedgerAccount.address == address
    ).with_for_update(nowait=False)


def with_request_lock(request_id: int, db: Session) -> Query:
    """鎖定一個隨機數請求（避免同一請求被投遞兩次）"""
    return db.query(RandomnessRequest).filter(
        RandomnessRequest.request_id == request_id
    ).with_for_update(nowait=False)
