"""
models/config_model.py

시험 설정 모델. 시작 시 한 번 영구 저장소에서 읽어 오며, 엔진은 쓰지 않는다.
"""

from pydantic import BaseModel, Field

DEFAULT_APP_NAME = "DANIEL'S ANATOMY CBT APP"
DEFAULT_TEST_TITLE = "ANAT 213: GENERAL EMBRYO AND GENETICS"
DEFAULT_DURATION_MINUTES = 20
DEFAULT_MARKS_PER_QUESTION = 2


class AppConfig(BaseModel):
    """
    Attributes:
        app_name:           화면 상단에 표시되는 앱 이름.
        test_title:         시험 제목.
        duration_minutes:   제한 시간 (분).
        marks_per_question: 문항당 배점.
    """

    app_name: str = Field(default=DEFAULT_APP_NAME, description="앱 이름")
    test_title: str = Field(default=DEFAULT_TEST_TITLE, description="시험 제목")
    duration_minutes: int = Field(
        default=DEFAULT_DURATION_MINUTES,
        gt=0,
        description="제한 시간 (분)"
    )
    marks_per_question: int = Field(
        default=DEFAULT_MARKS_PER_QUESTION,
        gt=0,
        description="문항당 배점"
    )

    model_config = {"frozen": True}

    @property
    def duration_ms(self) -> int:
        return self.duration_minutes * 60 * 1000
