import pytest

from timed_cbt.models.config_model import AppConfig
from timed_cbt.models.question_model import OptionKey, Question
from timed_cbt.services.exam_service import (
    build_result,
    calculate_score,
    format_duration,
    format_time,
    status_tier,
    summarize_result,
)


def _bank(n):
    keys = list(OptionKey)
    return [
        Question(id=f"q-{i}", text=f"Q{i}", correct_answer=keys[i % 4])
        for i in range(1, n + 1)
    ]


def test_score_with_marks_per_question():
    questions = _bank(4)
    answers = {q.id: q.correct_answer for q in questions[:3]}

    assert calculate_score(questions, answers, 2) == (6, 8, 75)


def test_empty_bank_scores_zero():
    assert calculate_score([], {}, 2) == (0, 0, 0)


@pytest.mark.parametrize(
    "n, correct, expected",
    [
        (3, 1, 33),
        (8, 1, 13),   # 12.5 → 13
        (3, 2, 67),
        (8, 3, 38),   # 37.5 → 38
        (5, 5, 100),
    ],
)
def test_percentage_rounds_half_up(n, correct, expected):
    questions = _bank(n)
    answers = {q.id: q.correct_answer for q in questions[:correct]}

    assert calculate_score(questions, answers, 2)[2] == expected


def test_build_result_clamps_time_taken():
    config = AppConfig(duration_minutes=1)
    questions = _bank(2)
    deadline = 1_000_000

    early = build_result(questions, {}, deadline, now=deadline - 60_000 - 5_000, config=config)
    mid = build_result(questions, {}, deadline, now=deadline - 20_000, config=config)
    late = build_result(questions, {}, deadline, now=deadline + 99_000, config=config)

    assert early.analytics.time_taken_ms == 0
    assert mid.analytics.time_taken_ms == 40_000
    assert late.analytics.time_taken_ms == 60_000


def test_build_result_snapshots_inputs():
    questions = _bank(2)
    answers = {"q-1": questions[0].correct_answer}

    result = build_result(questions, answers, 1_000_000, 990_000, AppConfig())
    answers["q-2"] = OptionKey.A
    questions.pop()

    assert len(result.questions) == 2
    assert result.answers == {"q-1": OptionKey.B}
    assert result.analytics.attempted_count == 1


@pytest.mark.parametrize(
    "percentage, tier",
    [(0, "FAIL"), (39, "FAIL"), (40, "PASS"), (69, "PASS"), (70, "DISTINCTION"), (100, "DISTINCTION")],
)
def test_status_tier(percentage, tier):
    assert status_tier(percentage) == tier


def test_summarize_result_counts():
    questions = _bank(5)
    answers = {
        questions[0].id: questions[0].correct_answer,
        questions[1].id: questions[1].correct_answer,
        questions[2].id: next(k for k in OptionKey if k != questions[2].correct_answer),
    }
    result = build_result(questions, answers, 2_000_000, 1_500_000, AppConfig())

    summary = summarize_result(result)

    assert summary.correct_count == 2
    assert summary.wrong_count == 1
    assert summary.skipped_count == 2
    assert summary.status_tier == "PASS"
    assert summary.time_taken == "11m 40s"
    assert [item.is_skipped for item in summary.review] == [False, False, False, True, True]
    assert [item.is_correct for item in summary.review] == [True, True, False, False, False]


@pytest.mark.parametrize(
    "seconds, expected",
    [(-5, "0:00"), (0, "0:00"), (9, "0:09"), (65, "1:05"), (1200, "20:00")],
)
def test_format_time(seconds, expected):
    assert format_time(seconds) == expected


def test_format_duration():
    assert format_duration(187_000) == "3m 7s"
    assert format_duration(999) == "0m 0s"
