"""
服務層

這個 package 包含純計算邏輯，不負責狀態轉換：
- UpkeepService：回合是否可以關閉
- DrawService：由隨機數選出得獎者、稽核驗證
- HistoryService：開獎紀錄查詢
"""
