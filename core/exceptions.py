"""
自定義異常類別

集中管理所有業務邏輯異常，方便 API 層統一處理
"""


class RaffleException(Exception):
    """所有 Raffle 異常的基類"""
    pass


# ============ Raffle 相關異常 ============

class RaffleNotFound(RaffleException):
    """Raffle 不存在"""
    def __init__(self, raffle_id):
        self.raffle_id = raffle_id
        super().__init__(f"Raffle {raffle_id} not found")


class InvalidRaffleConfig(RaffleException):
    """建立 Raffle 的參數不合法（入場費、間隔必須為正數）"""
    pass


class PlayerNotFound(RaffleException):
    """指定位置沒有參與者"""
    def __init__(self, index):
        self.index = index
        super().__init__(f"No player at index {index}")


# ============ Entry 相關異常 ============

class InsufficientFee(RaffleException):
    """支付金額低於入場費"""
    def __init__(self, amount, entrance_fee):
        self.amount = amount
        self.entrance_fee = entrance_fee
        super().__init__(
            f"Paid {amount} but entrance fee is {entrance_fee}"
        )


class RoundNotOpen(RaffleException):
    """回合不是 OPEN（正在開獎中）"""
    def __init__(self, state):
        self.state = state
        super().__init__(f"Raffle is not open (state: {getattr(state, 'value', state)})")


# ============ Upkeep 相關異常 ============

class UpkeepNotNeeded(RaffleException):
    """
    尚未達到關閉回合的條件

    附帶診斷資訊：獎池餘額、參與人數、狀態
    """
    def __init__(self, balance, player_count, state):
        self.balance = balance
        self.player_count = player_count
        self.state = state
        super().__init__(
            f"Upkeep not needed (balance={balance}, players={player_count}, "
            f"state={getattr(state, 'value', state)})"
        )


class StaleElapsedTime(RaffleException):
    """距離回合開始的時間仍小於 interval"""
    def __init__(self, elapsed, interval):
        self.elapsed = elapsed
        self.interval = interval
        super().__init__(f"Only {elapsed}s elapsed, interval is {interval}s")


# ============ 開獎相關異常 ============

class UnknownRequest(RaffleException):
    """回呼的 request id 不是目前等待中的請求"""
    def __init__(self, request_id):
        self.request_id = request_id
        super().__init__(f"Unknown or stale randomness request {request_id}")


class InvalidRandomWords(RaffleException):
    """Oracle 沒有回傳任何隨機數"""
    pass


class RaffleInvariantViolation(RaffleException):
    """不應發生的狀態（例如開獎時沒有任何參與者）"""
    pass


class TransferFailed(RaffleException):
    """帳本回報轉帳給得獎者失敗"""
    def __init__(self, winner, amount):
        self.winner = winner
        self.amount = amount
        super().__init__(f"Transfer of {amount} to {winner} failed")


# ============ 狀態轉換異常 ============

class InvalidStateTransition(RaffleException):
    """非法的狀態轉換"""
    pass


# ============ Ledger 相關異常 ============

class InsufficientFunds(RaffleException):
    """付款帳戶餘額不足"""
    def __init__(self, address, balance, amount):
        self.address = address
        self.balance = balance
        self.amount = amount
        super().__init__(
            f"Account {address} has {balance}, cannot pay {amount}"
        )


# ============ Draw 相關異常 ============

class DrawNotFound(RaffleException):
    """找不到該回合的開獎紀錄"""
    def __init__(self, raffle_id, round_number):
        self.raffle_id = raffle_id
        self.round_number = round_number
        super().__init__(f"No draw for round {round_number} of raffle {raffle_id}")


class DrawVerificationFailed(RaffleException):
    """重新計算的開獎結果與紀錄不符"""
    pass
