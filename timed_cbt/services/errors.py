"""
services/errors.py

세션 엔진이 호출자에게 알리는 예외. API 계층에서 HTTP 상태 코드로 변환된다.
"""


class BankUnavailableError(RuntimeError):
    """문제 은행 원본을 읽을 수 없거나 파싱 결과가 비어 있음."""


class SessionNotReadyError(RuntimeError):
    """문제가 아직 로드되지 않아 시험을 시작할 수 없음."""


class InvalidTransitionError(RuntimeError):
    """현재 세션 상태에서 허용되지 않는 동작."""

    def __init__(self, action: str, phase: str):
        super().__init__(f"'{phase}' 상태에서는 '{action}' 동작을 수행할 수 없습니다.")
        self.action = action
        self.phase = phase
