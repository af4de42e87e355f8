"""
main.py — Timed CBT 실행 진입점

저장소(STORE_FILE)에서 이전 세션을 복원한 엔진을 만들고, 그 엔진으로
uvicorn 서버를 띄운 뒤 준비가 되면 기본 브라우저로 시험 화면을 연다.

페이지 새로고침은 같은 서버 프로세스에 대한 재요청이므로 Tier S 결과가 유지되고,
앱을 다시 실행하면 Tier S는 비워지고 Tier P(STORE_FILE)만 남는다.
"""

import logging
import os
import socket
import sys
import threading
import time
import webbrowser
from typing import Optional

import uvicorn

from config import (
    BANK_FILE,
    DEFAULT_HOST,
    DEFAULT_PORT,
    DEFAULT_TIMEOUT,
    LOG_FILE,
    STORE_FILE,
    TICK_INTERVAL,
)
from timed_cbt.services.exam_service import format_time
from timed_cbt.services.session_engine import SessionEngine
from timed_cbt.services.session_store import JsonFileStore, MemoryStore

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


# ── 로깅 ─────────────────────────────────────────────────────────────────────

def setup_logging(log_file: Optional[str] = LOG_FILE) -> None:
    """콘솔 + 로그 파일. 파일을 열 수 없으면 콘솔만 사용."""
    handlers = [logging.StreamHandler(sys.stderr)]
    if log_file:
        try:
            handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
        except OSError as e:
            print(f"로그 파일을 열 수 없어 콘솔에만 기록합니다: {e}", file=sys.stderr)
    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT, handlers=handlers, force=True)


# ── 세션 엔진 ────────────────────────────────────────────────────────────────

def build_engine(
    store_file: str = STORE_FILE,
    tick_interval: Optional[float] = TICK_INTERVAL,
) -> SessionEngine:
    """
    Tier P(JSON 파일) + Tier S(메모리)로 엔진을 만들고 복원된 상태를 기록한다.
    프로세스를 새로 띄울 때마다 Tier S는 비어 있다.
    """
    engine = SessionEngine.create(
        JsonFileStore(store_file),
        MemoryStore(),
        tick_interval=tick_interval,
    )
    logger.info(f"저장소: {store_file}")
    logger.info(f"{engine.guest_id} / 시험: {engine.config.test_title}")

    if engine.phase == "running":
        remaining = engine.remaining_seconds() or 0
        logger.info(
            f"진행 중인 시험을 이어서 진행합니다 "
            f"({len(engine.questions)}문항, 남은 시간 {format_time(remaining)})"
        )
    elif engine.phase == "completed":
        result = engine.result()
        logger.info(f"이전 시험 결과가 남아 있습니다: {result.score}/{result.total}")
    else:
        logger.info(f"대기 상태 (저장된 문제 {len(engine.questions)}개)")
    return engine


# ── 서버 ─────────────────────────────────────────────────────────────────────

def _pick_port(host: str = DEFAULT_HOST, preferred: int = DEFAULT_PORT) -> int:
    """선호 포트가 비어 있으면 그대로, 아니면 OS가 고른 빈 포트."""
    for port in (preferred, 0):
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
            try:
                s.bind((host, port))
            except OSError:
                continue
            return s.getsockname()[1]
    raise OSError(f"{host}에서 사용할 수 있는 포트가 없습니다.")


def _open_when_ready(server: uvicorn.Server, url: str, timeout: float = DEFAULT_TIMEOUT) -> bool:
    """서버가 요청을 받기 시작하면 브라우저를 연다. 제한 시간 안에 준비되지 않으면 False."""
    deadline = time.monotonic() + timeout
    while not server.started:
        if server.should_exit or time.monotonic() > deadline:
            logger.error("서버 시작 제한 시간을 초과했습니다. 이미 실행 중인 프로세스가 있는지 확인해 보세요.")
            return False
        time.sleep(0.1)
    logger.info(f"서버 준비 완료: {url}")
    webbrowser.open(url)
    return True


def run() -> None:
    setup_logging()
    logger.info("=== Timed CBT 시작 ===")
    if not os.path.exists(BANK_FILE):
        logger.warning(f"문제 은행 파일이 없습니다: {BANK_FILE} (저장된 문제로 진행)")

    from api.app import create_app

    engine = build_engine()
    port = _pick_port()
    url = f"http://{DEFAULT_HOST}:{port}"

    server = uvicorn.Server(
        uvicorn.Config(create_app(engine=engine), host=DEFAULT_HOST, port=port, log_level="warning")
    )
    threading.Thread(target=_open_when_ready, args=(server, url), daemon=True).start()

    # 종료 신호(Ctrl+C)는 uvicorn이 처리하고, lifespan 종료 시 엔진이 정리된다
    server.run()
    logger.info("=== Timed CBT 종료 ===")


if __name__ == "__main__":
    run()
