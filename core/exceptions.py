"""
自定義異常類別

集中管理所有業務邏輯異常，方便 API 層統一處理
"""


class TabletopException(Exception):
    """所有演練異常的基類"""
    pass


# ============ Exercise 相關異常 ============

class ExerciseNotFound(TabletopException):
    """演練不存在"""
    def __init__(self, exercise_id):
        self.exercise_id = exercise_id
        super().__init__(f"Exercise {exercise_id} not found")


class NotExerciseFacilitator(TabletopException):
    """呼叫者不是此演練的 Facilitator"""
    def __init__(self, exercise_id, user_id):
        self.exercise_id = exercise_id
        self.user_id = user_id
        super().__init__(f"User {user_id} is not the facilitator of exercise {exercise_id}")


class InvalidExerciseUpdate(TabletopException):
    """演練更新內容不合法"""
    pass


class ExerciseNotAcceptingParticipants(TabletopException):
    """演練已結束，不接受新參與者"""
    pass


class ExerciseFull(TabletopException):
    """參與者已達上限（max_participants）"""
    pass


# ============ Inject 相關異常 ============

class InjectNotFound(TabletopException):
    """Inject 不存在"""
    def __init__(self, exercise_id, inject_number):
        self.exercise_id = exercise_id
        self.inject_number = inject_number
        super().__init__(f"Inject {inject_number} not found in exercise {exercise_id}")


class InjectAlreadyReleased(TabletopException):
    """Inject 已經發布過，且沒有任何欄位需要變更"""
    def __init__(self, exercise_id, inject_number):
        self.exercise_id = exercise_id
        self.inject_number = inject_number
        super().__init__(f"Inject {inject_number} already released")


# ============ Participant 相關異常 ============

class ParticipantNotFound(TabletopException):
    """參與者不存在"""
    def __init__(self, participant_id):
        self.participant_id = participant_id
        super().__init__(f"Participant {participant_id} not found")


class ResponsesClosed(TabletopException):
    """此 Inject 目前不接受回答（尚未發布或已關閉）"""
    pass


class ResponseAlreadySubmitted(TabletopException):
    """參與者已經回答過這個 phase 了"""
    pass


class InvalidResponse(TabletopException):
    """回答內容不合法（例如 phase 不存在）"""
    pass


# ============ Phase 相關異常 ============

class PhaseProgressionLocked(TabletopException):
    """Facilitator 已鎖定 phase 推進"""
    pass


class InvalidPhaseTransition(TabletopException):
    """非法的 phase 推進（例如已在最後一個 phase）"""
    pass
