"""
services/exam_service.py

시험 채점 및 결과 분석 비즈니스 로직.
순수 Python 함수로 구성 — UI 코드, 전역 상태 변경 없음.
"""

from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel

from timed_cbt.models.config_model import AppConfig
from timed_cbt.models.question_model import OptionKey, Question
from timed_cbt.models.session_state import Analytics, Result

# ── 등급 기준 ────────────────────────────────────────────────────────────────
PASS_THRESHOLD = 40
DISTINCTION_THRESHOLD = 70

_TIER_MESSAGES = {
    "FAIL": "Don't give up! Review your mistakes and try again.",
    "PASS": "Good job! You have a solid understanding of this topic.",
    "DISTINCTION": "Outstanding! You have mastered this Course.",
}


class ReviewItem(BaseModel):
    """오답 노트 한 줄."""

    question: Question
    user_answer: Optional[OptionKey] = None
    is_correct: bool
    is_skipped: bool


class ResultSummary(BaseModel):
    """결과 화면에 필요한 요약 정보 (Result에서 파생, 저장하지 않음)."""

    result: Result
    correct_count: int
    wrong_count: int
    skipped_count: int
    status_tier: str
    status_message: str
    time_taken: str
    review: List[ReviewItem]


def count_correct(
    questions: List[Question],
    user_answers: Dict[str, OptionKey],
) -> int:
    """
    정답 판정 기준: question.correct_answer == user_answers.get(question.id)
    응답하지 않은 문제(키 없음)는 오답으로 처리.
    """
    return sum(1 for q in questions if user_answers.get(q.id) == q.correct_answer)


def calculate_score(
    questions: List[Question],
    user_answers: Dict[str, OptionKey],
    marks_per_question: int,
) -> Tuple[int, int, int]:
    """
    사용자 답안을 채점한다.

    Args:
        questions:          채점 대상 Question 리스트.
        user_answers:       사용자 답안지. {question.id: 보기 키}
        marks_per_question: 문항당 배점.

    Returns:
        (score, total, percentage).
        percentage는 0.5 올림 반올림 정수. questions가 빈 리스트이면 0.
    """
    score = count_correct(questions, user_answers) * marks_per_question
    total = len(questions) * marks_per_question
    if total <= 0:
        return score, 0, 0
    # floor(100 * score / total + 0.5)
    percentage = (200 * score + total) // (2 * total)
    return score, total, percentage


def build_result(
    questions: List[Question],
    user_answers: Dict[str, OptionKey],
    deadline: int,
    now: int,
    config: AppConfig,
) -> Result:
    """
    제출 시점의 결과 스냅샷을 만든다.

    소요 시간은 경과한 실제 시간이 아니라 (마감 시각 - 제한 시간)을 시작 시각으로
    보고 계산하며, 0 ~ 제한 시간 범위로 고정한다.
    """
    score, total, percentage = calculate_score(questions, user_answers, config.marks_per_question)

    duration_ms = config.duration_ms
    start_time = deadline - duration_ms
    time_taken_ms = max(0, min(now - start_time, duration_ms))

    return Result(
        score=score,
        total=total,
        percentage=percentage,
        questions=list(questions),
        answers=dict(user_answers),
        completed_at=now,
        analytics=Analytics(
            time_taken_ms=time_taken_ms,
            attempted_count=len(user_answers),
        ),
    )


def status_tier(percentage: int) -> str:
    """백분율 → FAIL / PASS / DISTINCTION."""
    if percentage < PASS_THRESHOLD:
        return "FAIL"
    if percentage < DISTINCTION_THRESHOLD:
        return "PASS"
    return "DISTINCTION"


def summarize_result(result: Result) -> ResultSummary:
    """
    결과 스냅샷으로부터 화면 요약을 만든다.

    오답 수 = 응답 수 - 정답 수, 미응답 수 = 전체 문항 - 응답 수.
    """
    review: List[ReviewItem] = []
    correct = 0
    for q in result.questions:
        user_ans = result.answers.get(q.id)
        is_correct = user_ans == q.correct_answer
        if is_correct:
            correct += 1
        review.append(ReviewItem(
            question=q,
            user_answer=user_ans,
            is_correct=is_correct,
            is_skipped=user_ans is None,
        ))

    attempted = result.analytics.attempted_count
    tier = status_tier(result.percentage)
    return ResultSummary(
        result=result,
        correct_count=correct,
        wrong_count=max(0, attempted - correct),
        skipped_count=max(0, len(result.questions) - attempted),
        status_tier=tier,
        status_message=_TIER_MESSAGES[tier],
        time_taken=format_duration(result.analytics.time_taken_ms),
        review=review,
    )


def format_time(seconds: int) -> str:
    """남은 시간 표시 (m:ss). 음수는 0:00."""
    if seconds < 0:
        return "0:00"
    m, s = divmod(int(seconds), 60)
    return f"{m}:{s:02d}"


def format_duration(ms: int) -> str:
    """소요 시간 표시 (예: 3m 7s)."""
    seconds = int(ms) // 1000
    return f"{seconds // 60}m {seconds % 60}s"
