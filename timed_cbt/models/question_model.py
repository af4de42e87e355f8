from enum import Enum
from typing import List

from pydantic import BaseModel, ConfigDict, Field, field_validator


class OptionKey(str, Enum):
    """보기 키. 답안지와 정답 표기에 그대로 사용되는 4개의 정규 키."""

    A = "optionA"
    B = "optionB"
    C = "optionC"
    D = "optionD"


OPTION_KEYS: List[OptionKey] = [OptionKey.A, OptionKey.B, OptionKey.C, OptionKey.D]


class Question(BaseModel):
    """
    CBT 객관식 문제 모델
    Pydantic v2 적용

    JSON 직렬화 시에는 저장소 포맷(optionA, correctAnswer)을 그대로 쓰고,
    파이썬 코드에서는 snake_case 필드명으로 접근한다.
    """
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(
        ...,
        min_length=1,
        description="문제 식별자. 원본 CSV의 줄 위치에서 파생 (예: q-3)"
    )
    text: str = Field(
        ...,
        min_length=1,
        description="발문/문제 내용"
    )
    option_a: str = Field("", alias="optionA", description="보기 A")
    option_b: str = Field("", alias="optionB", description="보기 B")
    option_c: str = Field("", alias="optionC", description="보기 C")
    option_d: str = Field("", alias="optionD", description="보기 D")
    correct_answer: OptionKey = Field(
        OptionKey.A,
        alias="correctAnswer",
        description="정답 보기 키"
    )

    @field_validator('text')
    @classmethod
    def validate_text_not_blank(cls, v: str) -> str:
        """
        검증 로직: 공백만 있는 발문은 허용하지 않는다.
        """
        if not v.strip():
            raise ValueError("문제 내용(text)이 비어 있습니다.")
        return v

    def option_text(self, key: OptionKey) -> str:
        """보기 키에 해당하는 보기 문자열."""
        return {
            OptionKey.A: self.option_a,
            OptionKey.B: self.option_b,
            OptionKey.C: self.option_c,
            OptionKey.D: self.option_d,
        }[OptionKey(key)]

    def with_content_of(self, other: "Question") -> "Question":
        """식별자는 유지하고 내용(발문/보기/정답)만 other의 것으로 교체한 사본."""
        return self.model_copy(update={
            "text": other.text,
            "option_a": other.option_a,
            "option_b": other.option_b,
            "option_c": other.option_c,
            "option_d": other.option_d,
            "correct_answer": other.correct_answer,
        })
