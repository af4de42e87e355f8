"""
services/bank_merger.py

진행 중인 시험의 문제 리스트와 새로 읽은 문제 은행을 병합한다.
순수 Python 함수. 입력 리스트는 변경하지 않는다.

병합 규칙:
  1. 현재 리스트의 순서와 구성은 그대로 유지하고, 새 은행에 같은 id가 있으면
     내용(발문/보기/정답)만 덮어쓴다.
  2. 새 은행에만 있는 id는 새 은행 순서대로 끝에 덧붙인다.
  3. 새 은행에서 사라진 id도 지우지 않는다 (인덱스 이동, 답안 고아화 방지).
"""

from typing import Dict, List

from timed_cbt.models.question_model import Question


def merge_bank(current: List[Question], fresh: List[Question]) -> List[Question]:
    """
    Args:
        current: 진행 중인 (섞인) 문제 리스트.
        fresh:   새로 파싱한 문제 은행 (원본 순서).

    Returns:
        병합된 새 리스트. current의 모든 문항이 같은 위치에 남는다.
    """
    fresh_by_id: Dict[str, Question] = {q.id: q for q in fresh}

    merged: List[Question] = []
    for q in current:
        update = fresh_by_id.get(q.id)
        merged.append(q.with_content_of(update) if update is not None else q)

    existing_ids = {q.id for q in current}
    for q in fresh:
        if q.id not in existing_ids:
            merged.append(q)
            existing_ids.add(q.id)
    return merged
