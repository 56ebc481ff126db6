"""
服務層

這個 package 包含純計算邏輯，不負責狀態轉換：
- ScoringService：計分與排行榜
- PhaseService：phase 查詢規則
- NamingService：access code 與 participant ID 生成
"""
