"""
api/routes.py — FastAPI 엔드포인트

화면(프레젠테이션)이 보내는 사용자 동작을 세션 엔진으로 전달하고,
엔진의 읽기 모델을 그대로 돌려준다. 저장소는 직접 만지지 않는다.
"""

import asyncio

from fastapi import APIRouter, File, HTTPException, Request, UploadFile
from pydantic import BaseModel

import config
from timed_cbt.models.question_model import OptionKey
from timed_cbt.services.bank_loader import parse_bank
from timed_cbt.services.errors import (
    BankUnavailableError,
    InvalidTransitionError,
    SessionNotReadyError,
)
from timed_cbt.services.exam_service import summarize_result
from timed_cbt.services.session_engine import SessionEngine

router = APIRouter()

# ── Pydantic request bodies ──────────────────────────────────────────────────

class SelectAnswerBody(BaseModel):
    question_id: str
    option: OptionKey

class NavigateBody(BaseModel):
    delta: int = 1

class GoToBody(BaseModel):
    index: int = 0


# ── 헬퍼 ─────────────────────────────────────────────────────────────────────

def _engine(request: Request) -> SessionEngine:
    return request.app.state.engine


def _conflict(e: InvalidTransitionError) -> HTTPException:
    return HTTPException(status_code=409, detail=str(e))


# ── 엔드포인트 ───────────────────────────────────────────────────────────────
# 엔진 호출은 락 대기와 저장소 fsync가 있으므로 이벤트 루프 밖(asyncio.to_thread)에서 실행

@router.get("/api/state")
async def get_state(request: Request):
    return await asyncio.to_thread(_engine(request).view)


@router.post("/api/start")
async def start_exam(request: Request):
    engine = _engine(request)
    try:
        await asyncio.to_thread(engine.start)
    except SessionNotReadyError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except InvalidTransitionError as e:
        raise _conflict(e)
    return await asyncio.to_thread(engine.view)


@router.post("/api/answer")
async def select_answer(body: SelectAnswerBody, request: Request):
    engine = _engine(request)
    try:
        await asyncio.to_thread(engine.select_answer, body.question_id, body.option)
    except InvalidTransitionError as e:
        raise _conflict(e)
    view = await asyncio.to_thread(engine.view)
    return {"ok": True, "answered_count": view.answered_count}


@router.post("/api/navigate")
async def navigate(body: NavigateBody, request: Request):
    try:
        index = await asyncio.to_thread(_engine(request).navigate, body.delta)
    except InvalidTransitionError as e:
        raise _conflict(e)
    return {"ok": True, "current_index": index}


@router.post("/api/goto")
async def go_to(body: GoToBody, request: Request):
    try:
        index = await asyncio.to_thread(_engine(request).go_to, body.index)
    except InvalidTransitionError as e:
        raise _conflict(e)
    return {"ok": True, "current_index": index}


@router.post("/api/submit")
async def submit_exam(request: Request):
    try:
        result = await asyncio.to_thread(_engine(request).submit)
    except InvalidTransitionError as e:
        raise _conflict(e)
    return summarize_result(result)


@router.get("/api/results")
async def get_results(request: Request):
    engine = _engine(request)
    await asyncio.to_thread(engine.tick)
    result = await asyncio.to_thread(engine.result)
    if result is None:
        raise HTTPException(status_code=404, detail="결과 정보가 없습니다.")
    return summarize_result(result)


@router.post("/api/exit")
async def exit_exam(request: Request):
    engine = _engine(request)
    await asyncio.to_thread(engine.exit)
    return await asyncio.to_thread(engine.view)


@router.post("/api/reload-bank")
async def reload_bank(request: Request):
    engine = _engine(request)
    try:
        fresh = await asyncio.to_thread(request.app.state.bank_fetcher)
    except BankUnavailableError as e:
        raise HTTPException(status_code=503, detail=str(e))
    applied = await asyncio.to_thread(engine.apply_bank, fresh)
    return {"ok": True, "applied": applied, "count": len(fresh), "phase": engine.phase}


@router.post("/api/upload-bank")
async def upload_bank(request: Request, file: UploadFile = File(...)):
    file_bytes = await file.read()
    if len(file_bytes) > config.MAX_BANK_SIZE:
        raise HTTPException(status_code=413, detail="CSV 파일이 너무 큽니다 (최대 5MB).")
    try:
        text = file_bytes.decode("utf-8-sig")
    except UnicodeDecodeError:
        raise HTTPException(status_code=422, detail="CSV 파일은 UTF-8 인코딩이어야 합니다.")

    fresh = await asyncio.to_thread(parse_bank, text)
    if not fresh:
        raise HTTPException(status_code=422, detail="문제를 추출하지 못했습니다. CSV 형식을 확인해 주세요.")

    engine = _engine(request)
    applied = await asyncio.to_thread(engine.apply_bank, fresh)
    return {"ok": True, "applied": applied, "count": len(fresh), "phase": engine.phase}
