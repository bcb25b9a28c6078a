"""
Upkeep 判斷服務：決定一個回合是否可以關閉

純計算邏輯，不讀寫資料庫、不改變狀態
"""
from dataclasses import dataclass

from models import RaffleState


@dataclass(frozen=True)
class UpkeepSnapshot:
    state: RaffleState
    now: int
    last_timestamp: int
    interval: int
    balance: int
    player_count: int

    @property
    def elapsed(self) -> int:
        return self.now - self.last_timestamp


def evaluate_upkeep(snapshot: UpkeepSnapshot) -> bool:
    """
    四個條件必須同時成立：

    1. 狀態是 OPEN
    2. 距離回合開始已經過了 interval
    3. 獎池餘額 > 0
    4. 至少有一位參與者

    參數：
        snapshot: 某一時間點的 Raffle + Ledger 狀態

    返回：
        True 如果可以關閉回合
    """
    is_open = snapshot.state == RaffleState.OPEN
    time_passed = snapshot.elapsed >= snapshot.interval
    has_balance = snapshot.balance > 0
    has_players = snapshot.player_count > 0
    return is_open and time_passed and has_balance and has_players
