"""
命名服務：生成 Access Code 與 Participant ID

純計算邏輯，不涉及狀態轉換
"""
import random
import string
import uuid


def generate_access_code() -> str:
    """
    生成演練的 access code：uuid4 第一段轉大寫（8 個十六進位字元）

    範例：3F2A9C1B

    注意：
    - 不檢查唯一性（由呼叫者負責）
    """
    return str(uuid.uuid4()).split("-")[0].upper()


def generate_participant_id() -> str:
    """
    生成參與者的公開 ID：「P-」加 8 位大寫英數

    範例：P-7KQ2M9XA

    參與者在 WebSocket 加入個人房間時使用這個 ID。
    """
    return "P-" + "".join(random.choices(string.ascii_uppercase + string.digits, k=8))


def normalize_access_code(code: str) -> str:
    return code.strip().upper()
