"""
核心業務邏輯層

這個 package 包含所有核心業務邏輯，包括：
- InjectLifecycle：Inject 生命週期狀態機（release / 回答開關 / phase 鎖）
- Manager：管理 Exercise 與 Participant
- Broadcaster：以房間為單位的即時推播
- Locks：並發控制工具
"""
