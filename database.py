from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from pydantic_settings import BaseSettings
from functools import lru_cache, wraps
import logging

from core.exceptions import RaffleException

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    database_url: str = "sqlite:///./raffle.db"
    log_level: str = "INFO"

    # 新 Raffle 的預設參數（建立後不可變更）
    entrance_fee: int = 10**16
    interval_seconds: int = 30
    key_hash: str = "0x474e34a077df58807dbe9c96d3c009b23b3c6d0cce433e59bbf5b34f823bc56c"
    subscription_id: int = 1
    callback_gas_limit: int = 500000

    # Keeper（自動觸發 upkeep）
    keeper_enabled: bool = False
    keeper_interval_seconds: float = 10.0
    keeper_auto_fulfill: bool = False

    class Config:
        env_file = ".env"


@lru_cache()
def get_settings():
    return Settings()


def _connect_args(url: str) -> dict:
    # SQLite 連線預設只能由建立它的執行緒使用；keeper 與 FastAPI threadpool 會跨執行緒
    if url.startswith("sqlite"):
        return {"check_same_thread": False}
    return {}


settings = get_settings()

engine = create_engine(
    settings.database_url,
    connect_args=_connect_args(settings.database_url),
    pool_pre_ping=True
)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def get_db():
    """
    FastAPI dependency：每個請求一個 Session，結束時關閉
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


_TX_DEPTH = "transactional_depth"


def _find_session(args, kwargs):
    if args and isinstance(args[0], Session):
        return args[0]
    return kwargs.get("db")


def transactional(func):
    """
    Transaction decorator：一次業務操作 = 一個 transaction

    使用方式：
        @transactional
        def enter(db: Session, raffle_id, ...):
            db.add(Entrant(...))
            ledger.deposit(...)

    流程（最外層呼叫）：
        1. 正常返回 -> commit
        2. RaffleException（業務規則拒絕）-> rollback，記 warning
        3. 其他異常 -> rollback，記 error 與 stack trace

    兩種異常都會重新拋出。Ledger 的餘額與 Raffle 共用同一個 session，
    所以 rollback 也會還原餘額變動。

    巢狀呼叫（例如轉帳回呼中再次呼叫 enter）：
        內層不 commit 也不 rollback，只是加入外層的 transaction，
        由最外層決定整體結果。深度記在 db.info。

    注意：
        - db: Session 必須是第一個參數或 keyword 參數
        - 函式內不要自己 commit
    """
    @wraps(func)
    def wrapper(*args, **kwargs):
        db = _find_session(args, kwargs)
        if db is None:
            raise ValueError(
                f"@transactional requires 'db: Session' as first argument, "
                f"but got args={args}, kwargs={kwargs}"
            )

        depth = db.info.get(_TX_DEPTH, 0)
        db.info[_TX_DEPTH] = depth + 1
        try:
            if depth:
                return func(*args, **kwargs)

            try:
                result = func(*args, **kwargs)
                db.commit()
                return result
            except RaffleException as e:
                logger.warning(f"Transaction rejected in {func.__name__}: {e}")
                db.rollback()
                raise
            except Exception as e:
                logger.error(f"Transaction failed in {func.__name__}: {e}", exc_info=True)
                db.rollback()
                raise
        finally:
            db.info[_TX_DEPTH] = depth

    return wrapper
