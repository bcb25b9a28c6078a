"""
外部協作者介面

Raffle 核心只依賴這兩個介面：
- Ledger：時間、獎池餘額、轉帳
- RandomnessOracle：接受隨機數請求，之後以 callback 投遞結果

實作見 adapters/ledger.py 與 adapters/vrf_coordinator.py，
測試可以替換成任何符合介面的物件。
"""
from typing import Protocol, Sequence


class Ledger(Protocol):
    """綁定在單一 Raffle 獎池上的帳本"""

    def now(self) -> int:
        """目前時間（Unix 秒）"""
        ...

    def current_balance(self) -> int:
        """獎池目前餘額"""
        ...

    def deposit(self, sender: str, amount: int) -> None:
        """把 sender 支付的金額存入獎池（失敗時拋出異常）"""
        ...

    def transfer(self, to: str, amount: int) -> bool:
        """從獎池轉帳給 to；不拋異常，以 bool 回報成功與否"""
        ...


class RandomnessOracle(Protocol):
    """VRF Coordinator 風格的隨機數服務"""

    def request_random_words(
        self,
        key_hash: str,
        subscription_id: int,
        request_confirmations: int,
        callback_gas_limit: int,
        num_words: int,
        consumer: str,
    ) -> int:
        """登記一個請求並回傳 request id；結果之後以 callback 投遞"""
        ...


RandomWords = Sequence[int]
