"""
models/session_state.py

시험 세션 상태를 담는 모델.
Pydantic BaseModel 기반 — 직렬화/역직렬화 및 타입 안전성 확보.
UI 코드 없음.

상태는 phase 값으로 구분되는 태그 유니온이다:
  idle      → 시험 대기
  running   → 시험 진행 중 (문제 순서, 답안지, 현재 위치, 마감 시각)
  completed → 제출 완료 (채점 결과 스냅샷)
"""

from typing import Annotated, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field

from timed_cbt.models.config_model import AppConfig
from timed_cbt.models.question_model import OptionKey, Question


class Analytics(BaseModel):
    """제출 시점 통계."""

    time_taken_ms: int = Field(
        ...,
        ge=0,
        alias="timeTakenMs",
        description="소요 시간 (ms). 제한 시간으로 상한 고정"
    )
    attempted_count: int = Field(
        ...,
        ge=0,
        alias="attemptedCount",
        description="응답한 문항 수"
    )

    model_config = {"frozen": True, "populate_by_name": True}


class Result(BaseModel):
    """
    제출 시점에 고정되는 채점 결과.
    이후 진행 상태로부터 다시 계산하지 않는다.

    Attributes:
        score:        획득 점수 (정답 수 × 배점).
        total:        만점.
        percentage:   백분율 (반올림 정수).
        questions:    채점에 사용된 문제 리스트 (출제 순서).
        answers:      사용자 답안지. {question.id: 보기 키}
        completed_at: 제출 시각 (epoch ms).
        analytics:    소요 시간, 응답 수.
    """

    score: int = Field(..., ge=0)
    total: int = Field(..., ge=0)
    percentage: int = Field(..., ge=0, le=100)
    questions: List[Question] = Field(default_factory=list)
    answers: Dict[str, OptionKey] = Field(default_factory=dict)
    completed_at: int = Field(..., alias="completedAt")
    analytics: Analytics

    model_config = {"frozen": True, "populate_by_name": True}


class IdleState(BaseModel):
    phase: Literal["idle"] = "idle"


class RunningState(BaseModel):
    """
    진행 중인 시험.

    Attributes:
        questions:     출제 순서가 고정된 문제 리스트.
        answers:       답안지. 응답한 문항만 키가 존재한다.
        current_index: 현재 풀고 있는 문제 인덱스 (0-based).
        deadline:      마감 시각 (epoch ms, 절대값).
    """

    phase: Literal["running"] = "running"
    questions: List[Question] = Field(default_factory=list)
    answers: Dict[str, OptionKey] = Field(default_factory=dict)
    current_index: int = Field(default=0, ge=0)
    deadline: int


class CompletedState(BaseModel):
    phase: Literal["completed"] = "completed"
    result: Result


SessionState = Annotated[
    Union[IdleState, RunningState, CompletedState],
    Field(discriminator="phase"),
]


class SessionView(BaseModel):
    """
    화면 렌더링용 읽기 모델.
    저장소를 직접 읽지 않고도 현재 화면을 그릴 수 있을 만큼의 정보를 담는다.
    """

    config: AppConfig
    guest_id: str
    bank_size: int
    state: SessionState
    remaining_seconds: Optional[int] = None
    current_question: Optional[Question] = None
    answered_count: int = 0
