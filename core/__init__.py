"""
核心業務邏輯層

這個 package 包含 relay 的權威狀態，全部存在記憶體中：
- SessionStore：管理 Room 的生命週期
- TableAllocator / MenuInventory / OrderLedger：每個房間的桌子、庫存、訂單
- RelayProtocolHandler：把 client 訊息轉成狀態變更與要送出的事件
- SessionArchive：結束的 session 寫入資料庫
"""
