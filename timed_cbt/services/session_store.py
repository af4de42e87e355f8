"""
services/session_store.py — 2단계 키-값 저장소

  - JsonFileStore (Tier P): 디스크의 JSON 파일 하나. 새로고침과 앱 재시작 모두 유지.
    설정, 문제 은행, 게스트 ID, 진행 중 시험(마감 시각, 답안지, 현재 인덱스) 보관.
  - MemoryStore   (Tier S): 프로세스 메모리. 새로고침에는 유지, 앱 재시작 시 소멸.
    제출 결과 스냅샷만 보관.

값은 모두 문자열이다. 구조화된 값은 호출자가 JSON으로 직렬화한다.
키 사이의 트랜잭션은 보장하지 않으므로 엔진이 쓰기 순서를 책임진다.
"""

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Dict, Optional, Protocol, Union

logger = logging.getLogger(__name__)

# ── 저장소 키 ────────────────────────────────────────────────────────────────
# Tier P
KEY_APP_NAME = "cbt_appName"
KEY_TEST_TITLE = "cbt_testTitle"
KEY_DURATION = "cbt_duration"
KEY_MARKS = "cbt_marks"
KEY_QUESTIONS = "cbt_questions"
KEY_GUEST_ID = "cbt_guestId"
KEY_END_TIME = "cbt_endTime"
KEY_ANSWERS = "cbt_answers"
KEY_CURRENT_INDEX = "cbt_currentIndex"
# Tier S
KEY_CURRENT_RESULT = "cbt_currentResult"

RUNNING_KEYS = (KEY_END_TIME, KEY_ANSWERS, KEY_CURRENT_INDEX)


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...

    def clear(self) -> None: ...


class MemoryStore:
    """프로세스 수명 동안만 유지되는 저장소 (Tier S)."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._data: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value

    def remove(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._data.clear()


class JsonFileStore:
    """
    JSON 파일 하나에 모든 키를 보관하는 영구 저장소 (Tier P).

    쓰기마다 임시 파일에 기록한 뒤 os.replace로 교체하므로, 쓰기 도중 종료되어도
    이전 내용 또는 새 내용 중 하나가 온전히 남는다.
    파일이 손상되어 파싱할 수 없으면 빈 저장소로 취급한다 (다음 쓰기 때 덮어씀).
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._data: Dict[str, str] = self._read()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value
            self._flush()

    def remove(self, key: str) -> None:
        with self._lock:
            if self._data.pop(key, None) is not None:
                self._flush()

    def clear(self) -> None:
        with self._lock:
            self._data.clear()
            self._flush()

    # ── 내부 ──────────────────────────────────────────────────────────────
    def _read(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.warning(f"저장소 파일 손상, 빈 저장소로 시작합니다: {self.path} ({e})")
            return {}
        if not isinstance(data, dict):
            logger.warning(f"저장소 파일 형식 오류, 빈 저장소로 시작합니다: {self.path}")
            return {}
        return {str(k): v for k, v in data.items() if isinstance(v, str)}

    def _flush(self) -> None:
        fd, tmp_path = tempfile.mkstemp(
            prefix=self.path.name, suffix=".tmp", dir=str(self.path.parent)
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(self._data, f, ensure_ascii=False, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise
