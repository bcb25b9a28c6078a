"""
核心業務邏輯層

這個 package 包含所有核心業務邏輯，包括：
- 狀態機：集中管理 Raffle 的狀態轉換（OPEN / CALCULATING）
- Manager：加入、upkeep、開獎回呼的完整流程
- Interfaces：Ledger 與 RandomnessOracle 的協作介面
- Locks：並發控制工具
- Keeper：定期觸發 upkeep 的背景迴圈
"""
