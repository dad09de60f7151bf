from __future__ import annotations

import logging
import time
import uuid
from dataclasses import asdict, dataclass, replace
from typing import Any, Union

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from ..core.engine_config import engine_config
from ..core.grader import coerce_answer
from ..core.quiz_file import QuizDefinitionError, parse_quiz_definition
from ..core.randomizer import display_options, matching_left_ids
from ..core.session import QuizSession
from ..core.timer import TIMER_RUNNING, QuizTimer
from ..core.types import Question

logger = logging.getLogger(__name__)

app = FastAPI()

# Every session endpoint is ``async def`` so that session mutations and the
# timer tasks share the one event loop thread.


@dataclass
class SessionEntry:
    session: QuizSession
    timer: QuizTimer
    title: str
    completed_at: Union[float, None] = None


_sessions: dict[str, SessionEntry] = {}


def _evict_completed() -> None:
    """Drop completed sessions older than the configured TTL."""
    ttl = float(engine_config.get("session_ttl_seconds"))
    now = time.monotonic()
    stale = [
        session_id
        for session_id, entry in _sessions.items()
        if entry.completed_at is not None and now - entry.completed_at >= ttl
    ]
    for session_id in stale:
        del _sessions[session_id]
    if stale:
        logger.debug("Evicted %d completed sessions", len(stale))


class CreateSessionRequest(BaseModel):
    quiz: dict[str, Any]
    seed: Union[int, None] = None


class AnswerRequest(BaseModel):
    question_id: Union[int, str]
    answer: Any = None


class FlagRequest(BaseModel):
    question_id: Union[int, str]


class NavigateRequest(BaseModel):
    index: int


def _get_entry(session_id: str) -> SessionEntry:
    entry = _sessions.get(session_id)
    if entry is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return entry


def _resolve_question(session: QuizSession, question_id: Union[int, str]) -> Union[Question, None]:
    # JSON clients may send "3" for a question whose id is 3, and vice versa
    for question in session.processed_questions:
        if question.id == question_id or str(question.id) == str(question_id):
            return question
    return None


def _public_question(question: Union[Question, None]) -> Union[dict, None]:
    if question is None:
        return None
    return {
        "id": question.id,
        "question_type": question.question_type,
        "text": question.text,
        "options": [{"id": option.id, "text": option.text} for option in display_options(question)],
        "matching_left_ids": matching_left_ids(question),
    }


def _snapshot(session_id: str, entry: SessionEntry) -> dict:
    session = entry.session
    record = session.score_record
    feedback = session.feedback
    return {
        "session_id": session_id,
        "title": entry.title,
        "mode": session.mode,
        "cursor": session.cursor,
        "current_index": session.current_index,
        "current_question": _public_question(session.current_question),
        "total_questions": len(session.processed_questions),
        "progress": session.progress,
        "answers": [{"question_id": qid, "answer": answer} for qid, answer in session.answers.items()],
        "flagged_question_ids": sorted(session.flagged_question_ids, key=str),
        "flagged_order": list(session.flagged_order),
        "pending_decision": session.pending_decision,
        "feedback": asdict(feedback) if feedback is not None else None,
        "timer_state": entry.timer.state,
        "remaining_seconds": entry.timer.remaining_seconds,
        "score_record": asdict(record) if record is not None else None,
    }


@app.get("/api/health")
async def health() -> dict:
    _evict_completed()
    return {"status": "ok", "sessions": len(_sessions)}


@app.post("/api/sessions")
async def create_session(req: CreateSessionRequest) -> dict:
    _evict_completed()
    try:
        definition = parse_quiz_definition(req.quiz)
    except QuizDefinitionError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    config = definition.config
    if req.seed is not None:
        config = replace(config, shuffle_seed=req.seed)

    session = QuizSession(config, definition.questions)
    timer = QuizTimer(session, tick_seconds=float(engine_config.get("tick_seconds")))
    entry = SessionEntry(session=session, timer=timer, title=definition.title)
    session.add_complete_listener(lambda _record: setattr(entry, "completed_at", time.monotonic()))
    timer.start()
    if timer.state == TIMER_RUNNING:
        timer.start_task()

    session_id = uuid.uuid4().hex
    _sessions[session_id] = entry
    return _snapshot(session_id, entry)


@app.get("/api/sessions/{session_id}")
async def get_session(session_id: str) -> dict:
    return _snapshot(session_id, _get_entry(session_id))


@app.post("/api/sessions/{session_id}/answer")
async def select_answer(session_id: str, req: AnswerRequest) -> dict:
    entry = _get_entry(session_id)
    question = _resolve_question(entry.session, req.question_id)
    if question is not None:
        entry.session.select_answer(question.id, coerce_answer(question, req.answer))
    return _snapshot(session_id, entry)


@app.post("/api/sessions/{session_id}/flag")
async def toggle_flag(session_id: str, req: FlagRequest) -> dict:
    entry = _get_entry(session_id)
    question = _resolve_question(entry.session, req.question_id)
    if question is not None:
        entry.session.toggle_flag(question.id)
    return _snapshot(session_id, entry)


@app.post("/api/sessions/{session_id}/next")
async def next_question(session_id: str) -> dict:
    entry = _get_entry(session_id)
    entry.session.next()
    return _snapshot(session_id, entry)


@app.post("/api/sessions/{session_id}/previous")
async def previous_question(session_id: str) -> dict:
    entry = _get_entry(session_id)
    entry.session.previous()
    return _snapshot(session_id, entry)


@app.post("/api/sessions/{session_id}/navigate")
async def navigate(session_id: str, req: NavigateRequest) -> dict:
    entry = _get_entry(session_id)
    entry.session.navigate_to(req.index)
    return _snapshot(session_id, entry)


@app.post("/api/sessions/{session_id}/review")
async def start_review(session_id: str) -> dict:
    entry = _get_entry(session_id)
    entry.session.start_flagged_review()
    return _snapshot(session_id, entry)


@app.post("/api/sessions/{session_id}/submit")
async def submit(session_id: str) -> dict:
    entry = _get_entry(session_id)
    entry.session.submit_without_review()
    return _snapshot(session_id, entry)


@app.delete("/api/sessions/{session_id}")
async def abandon_session(session_id: str) -> dict:
    entry = _sessions.pop(session_id, None)
    if entry is None:
        raise HTTPException(status_code=404, detail="Session not found")
    entry.timer.cancel()
    return {"session_id": session_id, "abandoned": not entry.session.is_completed}
