"""
api/app.py — FastAPI 앱 인스턴스 + 세션 엔진 수명 주기 + static 파일 서빙
"""

import asyncio
import logging
import os
from contextlib import asynccontextmanager, suppress
from typing import Callable, List, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse
from fastapi.staticfiles import StaticFiles

from config import BANK_FILE, STATIC_DIR, STORE_FILE, TICK_INTERVAL
from api.routes import router
from timed_cbt.models.question_model import Question
from timed_cbt.services.bank_loader import load_bank
from timed_cbt.services.session_engine import SessionEngine
from timed_cbt.services.session_store import JsonFileStore, MemoryStore

logger = logging.getLogger(__name__)

BankFetcher = Callable[[], List[Question]]


def _default_fetcher() -> List[Question]:
    return load_bank(BANK_FILE)


def _log_load_failure(task: "asyncio.Task") -> None:
    """시작 시 문제 은행 로드가 예기치 않게 실패하면 즉시 기록 (저장된 은행으로 계속 진행)."""
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("시작 시 문제 은행 로드 실패", exc_info=exc)


def create_app(
    engine: Optional[SessionEngine] = None,
    bank_fetcher: Optional[BankFetcher] = None,
) -> FastAPI:
    """
    앱 생성.

    Args:
        engine:       주입할 세션 엔진. 없으면 STORE_FILE(Tier P) + 메모리(Tier S)로 생성.
        bank_fetcher: 문제 은행을 읽어 오는 함수. 없으면 BANK_FILE을 파싱.
    """
    fetcher = bank_fetcher or _default_fetcher

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        eng = engine or SessionEngine.create(
            JsonFileStore(STORE_FILE),
            MemoryStore(),
            tick_interval=TICK_INTERVAL,
        )
        app.state.engine = eng
        app.state.bank_fetcher = fetcher
        logger.info(f"세션 엔진 준비 완료 (상태: {eng.phase}, 게스트: {eng.guest_id})")

        # 페이지 로드마다 하던 CSV 재적용을 서버 시작 시 백그라운드로 수행
        load_task = asyncio.create_task(asyncio.to_thread(eng.refresh_bank, fetcher))
        load_task.add_done_callback(_log_load_failure)
        try:
            yield
        finally:
            try:
                if not load_task.done():
                    load_task.cancel()
                with suppress(Exception, asyncio.CancelledError):
                    await load_task
            finally:
                eng.dispose()
                logger.info("세션 엔진 종료")

    app = FastAPI(title="Timed CBT", docs_url=None, redoc_url=None, lifespan=lifespan)

    # CORS (모바일 브라우저 등 다양한 출처 허용)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router)

    # static 파일 마운트
    if os.path.isdir(STATIC_DIR):
        app.mount("/static", StaticFiles(directory=STATIC_DIR), name="static")

    # 루트 → index.html
    @app.get("/")
    async def serve_index():
        index_path = os.path.join(STATIC_DIR, "index.html")
        if os.path.exists(index_path):
            return FileResponse(index_path)
        return {"error": "index.html not found"}

    return app
