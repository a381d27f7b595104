"""
Client 端流程層

這個 package 是前端狀態機的 Python 鏡像，不依賴 transport：
- VisitorPhaseMachine / ChefPhaseMachine：兩個角色的遊戲流程
- progress / proximity：純函式（烹飪進度、距離判定）
- failsafe：請求重送與延遲監測
"""
