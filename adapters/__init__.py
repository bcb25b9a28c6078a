"""
外部協作者的實作（Adapter 層）

- DatabaseLedger：以資料表保存餘額的帳本，與 Raffle 共用同一個 session，
  所以 transaction rollback 時餘額也一起回復
- LocalVRFCoordinator：本地的隨機數 Coordinator（請求紀錄 + 確定性隨機數 + 回呼）

核心邏輯只依賴 core/interfaces.py 的介面，不直接 import 這裡。
"""
