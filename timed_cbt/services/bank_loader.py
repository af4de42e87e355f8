"""
services/bank_loader.py

CSV 문제 은행 파싱 서비스.
Public API:
  - parse_bank(text) -> List[Question]       : CSV 텍스트 → 문제 리스트 (순수 변환)
  - read_bank_file(path) -> str              : 문제 은행 파일 읽기 (가져오기 담당)
  - load_bank(path) -> List[Question]        : 읽기 + 파싱

행 형식: question, optionA, optionB, optionC, optionD, correctAnswerIndicator
  - 첫 줄은 헤더이므로 버린다.
  - 큰따옴표로 감싼 필드 안의 쉼표는 구분자로 취급하지 않는다.
  - 필드가 6개 미만인 줄(빈 줄 포함)은 조용히 건너뛴다.
  - 문제 id는 원본 줄 번호에서 파생 → 같은 파일을 다시 읽어도 id가 바뀌지 않는다.
"""

import logging
import re
from pathlib import Path
from typing import List, Union

from pydantic import ValidationError

from timed_cbt.models.question_model import OPTION_KEYS, OptionKey, Question
from timed_cbt.services.errors import BankUnavailableError

# ── 로거 설정 ────────────────────────────────────────────────────────────────
logger = logging.getLogger(__name__)

# ── 상수 ─────────────────────────────────────────────────────────────────────
_MIN_FIELDS = 6

# 따옴표 밖에 있는 쉼표에서만 분리 (뒤쪽 따옴표 개수가 짝수인 위치)
_FIELD_SPLIT = re.compile(r',(?=(?:(?:[^"]*"){2})*[^"]*$)')
_SURROUNDING_QUOTES = re.compile(r'^"|"$')

_LETTERS = ("a", "b", "c", "d")


# ══════════════════════════════════════════════════════════════════════════════
# Public API
# ══════════════════════════════════════════════════════════════════════════════

def parse_bank(text: str) -> List[Question]:
    """
    CSV 텍스트 → Question 리스트.
    짧은 줄이나 빈 줄에서는 예외를 던지지 않고 건너뛴다.
    """
    questions: List[Question] = []
    if not text:
        return questions

    for idx, line in enumerate(text.split("\n")):
        if idx == 0:
            continue  # 헤더
        parts = split_fields(line)
        if len(parts) < _MIN_FIELDS:
            continue

        fields = [_clean(p) for p in parts]
        if not fields[0]:
            continue

        try:
            questions.append(Question(
                id=f"q-{idx}",
                text=fields[0],
                option_a=fields[1],
                option_b=fields[2],
                option_c=fields[3],
                option_d=fields[4],
                correct_answer=parse_correct_answer(fields[5], line_no=idx),
            ))
        except ValidationError as e:
            logger.warning(f"parse_bank: {idx}번째 줄 검증 실패, 건너뜀 - {e}")

    logger.info(f"parse_bank: 총 {len(questions)}개 문제 파싱 완료")
    return questions


def split_fields(line: str) -> List[str]:
    """따옴표 안의 쉼표를 보존하면서 한 줄을 필드로 분리."""
    return _FIELD_SPLIT.split(line)


def parse_correct_answer(raw: str, line_no: int = 0) -> OptionKey:
    """
    정답 표기 → 보기 키.

    표기가 a/b/c/d 중 하나이거나 'option' 문구를 포함할 때만 a, b, c, d 순서로
    포함 여부를 검사한다. 그 외(예: '1', 'answer b')는 optionA로 처리하고
    데이터 품질 경고를 남긴다.
    """
    key = raw.lower()
    if key in _LETTERS or "option" in key:
        for letter, option in zip(_LETTERS, OPTION_KEYS):
            if letter in key:
                return option

    logger.warning(f"{line_no}번째 줄: 인식할 수 없는 정답 표기 '{raw}' → optionA로 처리")
    return OptionKey.A


def read_bank_file(path: Union[str, Path]) -> str:
    """문제 은행 파일을 텍스트로 읽는다. 실패 시 BankUnavailableError."""
    p = Path(path)
    try:
        return p.read_text(encoding="utf-8-sig")
    except FileNotFoundError:
        raise BankUnavailableError(f"문제 은행 파일을 찾을 수 없습니다: {p}")
    except (OSError, UnicodeDecodeError) as e:
        raise BankUnavailableError(f"문제 은행 파일을 읽을 수 없습니다: {p} ({e})")


def load_bank(path: Union[str, Path]) -> List[Question]:
    """파일 읽기 + 파싱. 추출된 문제가 없으면 BankUnavailableError."""
    questions = parse_bank(read_bank_file(path))
    if not questions:
        raise BankUnavailableError(f"문제 은행에서 문제를 추출하지 못했습니다: {path}")
    return questions


# ══════════════════════════════════════════════════════════════════════════════
# 내부 헬퍼
# ══════════════════════════════════════════════════════════════════════════════

def _clean(field: str) -> str:
    return _SURROUNDING_QUOTES.sub("", field.strip()).strip()
