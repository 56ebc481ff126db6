"""
Phase 服務：Inject 內 phase 的查詢規則

Phase 定義是 facilitator 提供的 dict，可辨識的 key：
- id：phase 參照（未提供時用 1-based 位置字串）
- title
- points：答對可得分數（預設 0）
- correctAnswer：標準答案（可省略，省略時任何回答都得分）
"""
from typing import Any, Dict, List, Optional


def phase_reference(phase: Dict[str, Any], position: int) -> str:
    """
    取得 phase 的參照字串

    參數：
        phase: phase 定義
        position: 1-based 位置

    範例：
        phase_reference({"id": "triage"}, 1) -> "triage"
        phase_reference({"title": "Contain"}, 2) -> "2"
    """
    ref = phase.get("id")
    return str(ref) if ref is not None else str(position)


def find_phase(phases: List[Dict[str, Any]], phase_id: str) -> Optional[Dict[str, Any]]:
    """
    依參照找 phase，找不到返回 None

    沒有定義 phase 的 inject 只有隱含的 phase "1"（空 dict，不計分）。
    """
    if not phases:
        return {} if phase_id == "1" else None
    for position, phase in enumerate(phases, start=1):
        if phase_reference(phase, position) == phase_id:
            return phase
    return None


def phase_count(phases: List[Dict[str, Any]]) -> int:
    """
    Inject 的 phase 數量

    沒有定義任何 phase 的 inject 視為只有一個 phase。
    """
    return max(len(phases), 1)


def can_advance(current_phase: int, phases: List[Dict[str, Any]]) -> bool:
    """目前 phase 之後是否還有下一個 phase"""
    return current_phase < phase_count(phases)
