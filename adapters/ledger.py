"""
DatabaseLedger：以 ledger_accounts 資料表實作的帳本

每個 DatabaseLedger 綁定一個 Raffle 的獎池（地址 raffle:<id>）。
所有操作只 flush，不 commit，由呼叫端的 transaction 決定是否生效。
"""
import logging
import time
from typing import Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from models import LedgerAccount, pool_address_for
from core.exceptions import InsufficientFunds
from core.locks import with_account_lock

logger = logging.getLogger(__name__)

Clock = Callable[[], int]


def system_clock() -> int:
    return int(time.time())


def get_or_create_account(db: Session, address: str) -> LedgerAccount:
    account = with_account_lock(address, db).first()
    if account is None:
        account = LedgerAccount(address=address, balance=0, blocked=False)
        db.add(account)
        db.flush()
    return account


def account_balance(db: Session, address: str) -> int:
    account = db.query(LedgerAccount).filter(
        LedgerAccount.address == address
    ).first()
    return account.balance if account else 0


def fund_account(db: Session, address: str, amount: int) -> int:
    """
    直接增加帳戶餘額（測試網水龍頭）

    返回：
        入帳後的餘額

    異常：
        ValueError: amount 不是正數
    """
    if amount <= 0:
        raise ValueError(f"Fund amount must be positive, got {amount}")
    account = get_or_create_account(db, address)
    account.balance += amount
    db.flush()
    logger.info(f"Funded {address} with {amount} (balance={account.balance})")
    return account.balance


def set_account_blocked(db: Session, address: str, blocked: bool = True) -> None:
    """設定帳戶是否拒收轉帳"""
    account = get_or_create_account(db, address)
    account.blocked = blocked
    db.flush()


class DatabaseLedger:
    """Raffle 獎池帳本"""

    def __init__(self, db: Session, raffle_id: str, clock: Clock = system_clock):
        self.db = db
        self.raffle_id = raffle_id
        self.pool = pool_address_for(raffle_id)
        self.clock = clock

    def now(self) -> int:
        return int(self.clock())

    def current_balance(self) -> int:
        return account_balance(self.db, self.pool)

    def deposit(self, sender: str, amount: int) -> None:
        """
        sender 支付入場費到獎池

        異常：
            InsufficientFunds: sender 餘額不足
        """
        sender_account = get_or_create_account(self.db, sender)
        if sender_account.balance < amount:
            raise InsufficientFunds(sender, sender_account.balance, amount)

        pool_account = get_or_create_account(self.db, self.pool)
        sender_account.balance -= amount
        pool_account.balance += amount
        self.db.flush()

    def transfer(self, to: str, amount: int) -> bool:
        """
        從獎池轉帳給 to

        不拋出異常，失敗時回傳 False：
        - 金額為負數
        - 獎池餘額不足
        - 收款帳戶拒收（blocked）
        - 資料庫錯誤
        """
        try:
            if amount < 0:
                return False

            pool_account = get_or_create_account(self.db, self.pool)
            if pool_account.balance < amount:
                logger.warning(
                    f"Pool {self.pool} holds {pool_account.balance}, cannot pay {amount}"
                )
                return False

            recipient = get_or_create_account(self.db, to)
            if recipient.blocked:
                logger.warning(f"Recipient {to} rejected transfer of {amount}")
                return False

            pool_account.balance -= amount
            recipient.balance += amount
            self.db.flush()
            return True
        except SQLAlchemyError as e:
            logger.error(f"Transfer of {amount} to {to} failed: {e}", exc_info=True)
            return False
