"""
服務層

這個 package 包含純計算邏輯，不負責狀態轉換：
- MenuCatalog：菜單、烹飪時間、料理分數
- CompensationService：取消訂單的退款與扣分
- StatsService：session 結束時的統計
- NamingService：房間代碼與訂單 ID
- DialogueService：NPC 對白
"""
