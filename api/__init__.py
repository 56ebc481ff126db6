"""
API 層

每個模組一個 APIRouter，只負責把 HTTP / WebSocket 轉成 core 的呼叫，
並把業務異常轉成 HTTP 狀態碼。
"""
