"""
services/session_engine.py

시험 세션 상태 기계 (idle → running → completed → idle).

  - 수명 주기: SessionEngine.create(...)로 생성·복원, dispose()로 정리.
  - 저장소(Tier P / Tier S), 시계, 난수 생성기는 모두 주입받는다.
  - 남은 시간은 저장된 절대 마감 시각에서 매번 다시 계산한다 (로컬 카운트다운 없음).
    주기 점검(기본 1초)이 늦게 돌거나 멈췄다 재개되어도 오차가 누적되지 않는다.
  - 모든 공개 메서드는 하나의 재진입 락 안에서 끝까지 실행된다.
    동시 호출자는 HTTP 워커 스레드와 마감 점검 스레드뿐이다.
"""

import json
import logging
import random
import threading
import time
from typing import Callable, Dict, List, Optional, Union

from pydantic import TypeAdapter, ValidationError

from timed_cbt.models.config_model import AppConfig
from timed_cbt.models.question_model import OptionKey, Question
from timed_cbt.models.session_state import (
    CompletedState,
    IdleState,
    Result,
    RunningState,
    SessionView,
)
from timed_cbt.services.bank_merger import merge_bank
from timed_cbt.services.errors import (
    BankUnavailableError,
    InvalidTransitionError,
    SessionNotReadyError,
)
from timed_cbt.services.exam_service import build_result
from timed_cbt.services.randomness import shuffled
from timed_cbt.services.session_store import (
    KEY_ANSWERS,
    KEY_APP_NAME,
    KEY_CURRENT_INDEX,
    KEY_CURRENT_RESULT,
    KEY_DURATION,
    KEY_END_TIME,
    KEY_GUEST_ID,
    KEY_MARKS,
    KEY_QUESTIONS,
    KEY_TEST_TITLE,
    RUNNING_KEYS,
    KeyValueStore,
)

logger = logging.getLogger(__name__)

Clock = Callable[[], int]

_QUESTIONS_ADAPTER = TypeAdapter(List[Question])
_ANSWERS_ADAPTER = TypeAdapter(Dict[str, OptionKey])


def system_clock() -> int:
    """현재 시각 (epoch ms)."""
    return int(time.time() * 1000)


def _seconds_until(deadline: int, now: int) -> int:
    # ceil((deadline - now) / 1000)
    return -((now - deadline) // 1000)


def load_app_config(store: KeyValueStore) -> AppConfig:
    """
    영구 저장소에서 시험 설정을 읽는다.
    값이 없거나 양의 정수가 아니면 기본값을 쓴다.
    """
    values: Dict[str, Union[str, int]] = {}

    app_name = store.get(KEY_APP_NAME)
    if app_name:
        values["app_name"] = app_name
    test_title = store.get(KEY_TEST_TITLE)
    if test_title:
        values["test_title"] = test_title

    for key, field in ((KEY_DURATION, "duration_minutes"), (KEY_MARKS, "marks_per_question")):
        raw = store.get(key)
        if raw is None:
            continue
        try:
            number = int(raw)
        except ValueError:
            logger.warning(f"설정값 '{key}'={raw!r} 는 정수가 아닙니다. 기본값 사용")
            continue
        if number <= 0:
            logger.warning(f"설정값 '{key}'={number} 는 양수가 아닙니다. 기본값 사용")
            continue
        values[field] = number

    return AppConfig(**values)


class _Ticker:
    """interval 초마다 callback을 호출하는 데몬 스레드."""

    def __init__(self, interval: float, callback: Callable[["_Ticker"], None]):
        self._interval = interval
        self._callback = callback
        self._stop = threading.Event()
        self._thread = threading.Thread(
            target=self._run, name="cbt-deadline-ticker", daemon=True
        )

    def start(self) -> None:
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()

    def join(self, timeout: Optional[float] = None) -> None:
        if threading.current_thread() is not self._thread and self._thread.is_alive():
            self._thread.join(timeout)

    def _run(self) -> None:
        while not self._stop.wait(self._interval):
            try:
                self._callback(self)
            except Exception:
                logger.exception("마감 시각 점검 중 오류 발생")


class SessionEngine:
    """
    단일 시험 세션의 소유자.

    Attributes:
        persistent: Tier P 저장소 (재시작 후에도 유지).
        session:    Tier S 저장소 (새로고침에만 유지).
        config:     시험 설정 (읽기 전용).
        guest_id:   기기별 게스트 ID. 최초 복원 시 한 번 생성된다.
    """

    def __init__(
        self,
        persistent: KeyValueStore,
        session: KeyValueStore,
        config: Optional[AppConfig] = None,
        clock: Optional[Clock] = None,
        rng: Optional[random.Random] = None,
        tick_interval: Optional[float] = 1.0,
    ):
        self.persistent = persistent
        self.session = session
        self.config = config or load_app_config(persistent)
        self._clock = clock or system_clock
        self._rng = rng or random.Random()
        self._tick_interval = tick_interval

        self._lock = threading.RLock()
        self._state: Union[IdleState, RunningState, CompletedState] = IdleState()
        self._bank: List[Question] = []
        self._ticker: Optional[_Ticker] = None
        self._disposed = False
        self.guest_id = ""

    @classmethod
    def create(
        cls,
        persistent: KeyValueStore,
        session: KeyValueStore,
        **kwargs,
    ) -> "SessionEngine":
        """엔진을 만들고 저장소에서 이전 상태를 복원한다."""
        engine = cls(persistent, session, **kwargs)
        engine.restore()
        return engine

    def dispose(self) -> None:
        """마감 점검 스레드를 정리한다. 여러 번 호출해도 안전."""
        with self._lock:
            self._disposed = True
            ticker = self._ticker
            self._stop_ticker()
        if ticker is not None:
            ticker.join(timeout=self._tick_interval)

    # ══════════════════════════════════════════════════════════════════════
    # 상태 조회
    # ══════════════════════════════════════════════════════════════════════

    @property
    def phase(self) -> str:
        return self._state.phase

    @property
    def questions(self) -> List[Question]:
        """현재 활성 문제 리스트 (진행 중이면 출제 순서)."""
        with self._lock:
            return list(self._active_questions())

    def remaining_seconds(self) -> Optional[int]:
        """남은 시간 (초, 올림). 진행 중이 아니면 None."""
        with self._lock:
            state = self._state
            if not isinstance(state, RunningState):
                return None
            return max(0, _seconds_until(state.deadline, self._clock()))

    def view(self) -> SessionView:
        """화면 렌더링용 읽기 모델. 조회 전에 마감 시각을 한 번 점검한다."""
        with self._lock:
            self._reconcile_locked()
            state = self._state.model_copy(deep=True)
            remaining = None
            current = None
            answered = 0
            if isinstance(state, RunningState):
                remaining = max(0, _seconds_until(state.deadline, self._clock()))
                if state.questions:
                    current = state.questions[state.current_index]
                answered = len(state.answers)
            elif isinstance(state, CompletedState):
                answered = state.result.analytics.attempted_count
            return SessionView(
                config=self.config,
                guest_id=self.guest_id,
                bank_size=len(self._active_questions()),
                state=state,
                remaining_seconds=remaining,
                current_question=current,
                answered_count=answered,
            )

    def result(self) -> Optional[Result]:
        with self._lock:
            if isinstance(self._state, CompletedState):
                return self._state.result
            return None

    # ══════════════════════════════════════════════════════════════════════
    # 수명 주기
    # ══════════════════════════════════════════════════════════════════════

    def restore(self) -> None:
        """
        저장소로부터 초기 상태를 결정한다.

          1. 마감 시각이 미래  → running (저장된 문제/답안/인덱스로 재구성)
          2. 마감 시각이 과거  → Tier S 결과가 있으면 그 결과로 completed,
                                 없으면 저장된 답안으로 즉시 자동 제출
          3. Tier S 결과 존재  → completed
          4. 그 외             → idle
        """
        with self._lock:
            self._bank = self._load_questions()
            self.guest_id = self._ensure_guest_id()

            deadline = self._load_int(KEY_END_TIME)
            result = self._load_result()

            if deadline is not None:
                answers = self._load_answers()
                index = self._load_int(KEY_CURRENT_INDEX) or 0
                running = RunningState(
                    questions=list(self._bank),
                    answers=answers,
                    current_index=self._clamp_index(index, len(self._bank)),
                    deadline=deadline,
                )
                if deadline > self._clock():
                    logger.info(
                        f"진행 중인 시험 복원: {len(running.questions)}문항, "
                        f"응답 {len(answers)}개, 현재 {running.current_index + 1}번"
                    )
                    self._enter_running(running)
                    return
                if result is not None:
                    logger.warning("만료된 마감 시각과 저장된 결과 발견 → 결과 유지, 진행 키 정리")
                    self._clear_running_keys()
                    self._state = CompletedState(result=result)
                    return
                logger.warning("재시작 시점에 이미 마감된 시험 → 저장된 답안으로 자동 제출")
                self._state = running
                self._submit_locked(running)
                return

            if result is not None:
                logger.info("저장된 시험 결과 복원")
                self._state = CompletedState(result=result)
            else:
                self._state = IdleState()

    # ══════════════════════════════════════════════════════════════════════
    # 사용자 동작
    # ══════════════════════════════════════════════════════════════════════

    def start(self) -> RunningState:
        """
        새 시험 시작. 문제를 다시 섞고 답안지를 비운 뒤 마감 시각을 정한다.

        쓰기 순서: 이전 결과 삭제 → 문제 → 답안지 → 인덱스 → 마감 시각.
        마감 시각이 마지막이므로 중간에 종료되면 idle로 복원된다.
        """
        with self._lock:
            self._reconcile_locked()
            if isinstance(self._state, RunningState):
                raise InvalidTransitionError("start", self._state.phase)
            if not self._bank:
                raise SessionNotReadyError("문제를 불러오는 중입니다. 잠시 후 다시 시도해 주세요.")

            questions = shuffled(self._bank, self._rng)
            deadline = self._clock() + self.config.duration_ms

            self.session.remove(KEY_CURRENT_RESULT)
            self._save_questions(questions)
            self.persistent.set(KEY_ANSWERS, "{}")
            self.persistent.set(KEY_CURRENT_INDEX, "0")
            self.persistent.set(KEY_END_TIME, str(deadline))

            self._bank = questions
            running = RunningState(
                questions=list(questions),
                answers={},
                current_index=0,
                deadline=deadline,
            )
            self._enter_running(running)
            logger.info(f"시험 시작: {len(questions)}문항, 제한 {self.config.duration_minutes}분")
            return running.model_copy(deep=True)

    def select_answer(self, question_id: str, option: Union[OptionKey, str]) -> None:
        """
        답안 기록 (덮어쓰기). 현재 문제 리스트에 없는 id도 받아들이지만 채점에는 쓰이지 않는다.
        """
        key = OptionKey(option)
        with self._lock:
            state = self._require_running("select_answer")
            state.answers[question_id] = key
            self._save_answers(state.answers)

    def navigate(self, delta: int) -> int:
        """현재 위치를 delta만큼 이동 (범위 밖이면 끝에서 멈춤). 새 인덱스를 반환."""
        with self._lock:
            state = self._require_running("navigate")
            target = self._clamp_index(state.current_index + delta, len(state.questions))
            if target != state.current_index:
                state.current_index = target
                self.persistent.set(KEY_CURRENT_INDEX, str(target))
            return state.current_index

    def go_to(self, index: int) -> int:
        """지정한 문제로 이동. 범위 밖이면 아무 것도 하지 않는다."""
        with self._lock:
            state = self._require_running("go_to")
            if 0 <= index < len(state.questions) and index != state.current_index:
                state.current_index = index
                self.persistent.set(KEY_CURRENT_INDEX, str(index))
            return state.current_index

    def submit(self) -> Result:
        """채점 후 completed로 전환. 결과 스냅샷을 반환."""
        with self._lock:
            state = self._state
            if not isinstance(state, RunningState):
                raise InvalidTransitionError("submit", state.phase)
            return self._submit_locked(state)

    def exit(self) -> None:
        """
        결과 화면(또는 진행 중 시험)을 떠나 idle로 돌아간다.
        Tier S 결과와 남아 있는 진행 키를 모두 지운다. 채점은 하지 않는다.
        """
        with self._lock:
            if isinstance(self._state, RunningState):
                logger.info("진행 중인 시험을 채점 없이 종료합니다.")
                self._bank = list(self._state.questions)
                self._stop_ticker()
            self._clear_running_keys()
            self.session.remove(KEY_CURRENT_RESULT)
            self._state = IdleState()

    def tick(self) -> Optional[int]:
        """
        마감 시각 점검. 남은 시간이 0 이하이면 자동 제출한다.

        Returns:
            남은 시간 (초, 0 이상). 진행 중이 아니면 None.
        """
        with self._lock:
            state = self._state
            if not isinstance(state, RunningState):
                return None
            remaining = _seconds_until(state.deadline, self._clock())
            if remaining <= 0:
                logger.info("제한 시간 종료 → 자동 제출")
                self._submit_locked(state)
                return 0
            return remaining

    # ══════════════════════════════════════════════════════════════════════
    # 문제 은행 반영
    # ══════════════════════════════════════════════════════════════════════

    def apply_bank(self, fresh: List[Question]) -> bool:
        """
        새로 읽은 문제 은행을 반영한다.

          - running: 순서를 유지한 채 내용만 갱신하고 새 문항은 끝에 추가 (merge_bank)
          - idle / completed: 새로 섞어서 교체 (completed의 결과 스냅샷은 그대로)
          - 빈 은행은 무시

        Returns:
            반영 여부.
        """
        if not fresh:
            logger.info("빈 문제 은행은 반영하지 않습니다.")
            return False

        with self._lock:
            if self._disposed:
                return False
            if isinstance(self._state, RunningState):
                merged = merge_bank(self._state.questions, fresh)
                added = len(merged) - len(self._state.questions)
                self._state.questions = merged
                self._bank = list(merged)
                self._save_questions(merged)
                logger.info(f"진행 중 문제 은행 병합: 내용 갱신, 신규 {added}문항 추가")
            else:
                self._bank = shuffled(fresh, self._rng)
                self._save_questions(self._bank)
                logger.info(f"문제 은행 교체: {len(self._bank)}문항")
            return True

    def refresh_bank(self, fetch: Callable[[], List[Question]]) -> bool:
        """
        fetch()로 문제 은행을 가져와 반영한다.
        가져오기 실패(BankUnavailableError)는 기록만 하고 저장된 은행을 유지한다.
        fetch는 락 밖에서 실행되며, 그 사이 상태가 바뀌었으면 apply_bank가 판단한다.
        """
        try:
            fresh = fetch()
        except BankUnavailableError as e:
            logger.warning(f"문제 은행을 불러오지 못했습니다. 저장된 은행 유지: {e}")
            return False
        return self.apply_bank(fresh)

    # ══════════════════════════════════════════════════════════════════════
    # 내부 헬퍼
    # ══════════════════════════════════════════════════════════════════════

    def _active_questions(self) -> List[Question]:
        if isinstance(self._state, RunningState):
            return self._state.questions
        return self._bank

    def _require_running(self, action: str) -> RunningState:
        self._reconcile_locked()
        if not isinstance(self._state, RunningState):
            raise InvalidTransitionError(action, self._state.phase)
        return self._state

    def _reconcile_locked(self) -> None:
        state = self._state
        if isinstance(state, RunningState) and _seconds_until(state.deadline, self._clock()) <= 0:
            logger.info("제한 시간 종료 → 자동 제출")
            self._submit_locked(state)

    def _submit_locked(self, state: RunningState) -> Result:
        """
        쓰기 순서: Tier S 결과 저장 → Tier P 진행 키 삭제.
        사이에서 종료되면 다음 시작 시 running으로 복원된다.
        """
        result = build_result(
            state.questions, state.answers, state.deadline, self._clock(), self.config
        )
        self.session.set(KEY_CURRENT_RESULT, result.model_dump_json(by_alias=True))
        self._clear_running_keys()

        self._bank = list(state.questions)
        self._state = CompletedState(result=result)
        self._stop_ticker()
        logger.info(
            f"시험 제출: {result.score}/{result.total} ({result.percentage}%), "
            f"응답 {result.analytics.attempted_count}/{len(result.questions)}"
        )
        return result

    def _enter_running(self, running: RunningState) -> None:
        self._state = running
        self._start_ticker()

    def _start_ticker(self) -> None:
        self._stop_ticker()
        if self._tick_interval is None or self._disposed:
            return
        self._ticker = _Ticker(self._tick_interval, self._on_tick)
        self._ticker.start()

    def _stop_ticker(self) -> None:
        if self._ticker is not None:
            self._ticker.stop()
            self._ticker = None

    def _on_tick(self, ticker: _Ticker) -> None:
        with self._lock:
            if ticker is not self._ticker:
                return  # 이미 교체되었거나 정지된 점검 스레드
            self.tick()

    def _clear_running_keys(self) -> None:
        for key in RUNNING_KEYS:
            self.persistent.remove(key)

    @staticmethod
    def _clamp_index(index: int, length: int) -> int:
        if length <= 0:
            return 0
        return max(0, min(index, length - 1))

    def _ensure_guest_id(self) -> str:
        saved = self.persistent.get(KEY_GUEST_ID)
        if saved:
            return saved
        guest_id = f"GUEST ID: {self._rng.randint(1000, 9999)}"
        self.persistent.set(KEY_GUEST_ID, guest_id)
        logger.info(f"게스트 ID 발급: {guest_id}")
        return guest_id

    # ── 직렬화 ────────────────────────────────────────────────────────────
    def _save_questions(self, questions: List[Question]) -> None:
        payload = _QUESTIONS_ADAPTER.dump_json(questions, by_alias=True).decode("utf-8")
        self.persistent.set(KEY_QUESTIONS, payload)

    def _save_answers(self, answers: Dict[str, OptionKey]) -> None:
        self.persistent.set(KEY_ANSWERS, json.dumps({k: OptionKey(v).value for k, v in answers.items()}))

    def _load_questions(self) -> List[Question]:
        raw = self.persistent.get(KEY_QUESTIONS)
        if raw is None:
            return []
        try:
            return _QUESTIONS_ADAPTER.validate_json(raw)
        except ValidationError as e:
            logger.warning(f"저장된 문제 은행 손상 → 무시: {e.error_count()}개 오류")
            return []

    def _load_answers(self) -> Dict[str, OptionKey]:
        raw = self.persistent.get(KEY_ANSWERS)
        if raw is None:
            return {}
        try:
            return _ANSWERS_ADAPTER.validate_json(raw)
        except ValidationError as e:
            logger.warning(f"저장된 답안지 손상 → 무시: {e.error_count()}개 오류")
            return {}

    def _load_int(self, key: str) -> Optional[int]:
        raw = self.persistent.get(key)
        if raw is None:
            return None
        try:
            return int(raw)
        except ValueError:
            logger.warning(f"저장된 값 '{key}'={raw!r} 손상 → 무시")
            return None

    def _load_result(self) -> Optional[Result]:
        raw = self.session.get(KEY_CURRENT_RESULT)
        if raw is None:
            return None
        try:
            return Result.model_validate_json(raw)
        except ValidationError as e:
            logger.warning(f"저장된 결과 손상 → 무시: {e.error_count()}개 오류")
            return None
