from __future__ import annotations

import asyncio
from dataclasses import replace
from pathlib import Path
from typing import Any

import typer
import yaml
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

from ..core.engine_config import engine_config
from ..core.grader import coerce_answer, grade_question, parse_answer
from ..core.logging_utils import configure_logging
from ..core.quiz_file import QuizDefinitionError, build_quiz_meta, load_quiz_definition
from ..core.randomizer import display_options, matching_left_ids
from ..core.runtime_data import get_runtime_paths
from ..core.scorer import format_time, score
from ..core.session import QuizSession
from ..core.timer import TIMER_EXPIRED, QuizTimer
from ..core.types import (
    FEEDBACK_DEFERRED,
    FEEDBACK_INSTANT,
    MATCHING,
    MODE_FLAGGED_REVIEW,
    MULTI_CHOICE,
    ORDERING,
    Question,
    QuizDefinition,
    ScoreRecord,
)

app = typer.Typer()

HELP_TEXT = (
    "Type an answer and press Enter. Empty input moves on.\n"
    "Commands: :next  :prev  :flag  :goto N  :submit  :help"
)


def _load_or_exit(quiz: Path) -> QuizDefinition:
    if not quiz.exists():
        # bare names resolve against the runtime quizzes directory
        stored = get_runtime_paths().quizzes_dir / quiz
        for candidate in (stored, stored.with_suffix(".yaml")):
            if candidate.exists():
                quiz = candidate
                break
    try:
        return load_quiz_definition(quiz)
    except QuizDefinitionError as exc:
        typer.echo(f"❌ {exc}", err=True)
        raise typer.Exit(1)


def _parse_cli_answer(raw: str, question: Question) -> Any:
    """Accept ``0,2`` for lists and ``1=a, 2=b`` for pairings besides JSON."""
    text = raw.strip()
    if question.question_type in (MULTI_CHOICE, ORDERING) and not text.startswith("["):
        return coerce_answer(question, [part.strip() for part in text.split(",") if part.strip()])
    if question.question_type == MATCHING and not text.startswith("{"):
        pairs = {}
        for part in text.split(","):
            if "=" in part:
                left, right = part.split("=", 1)
                pairs[left.strip()] = right.strip()
        return coerce_answer(question, pairs)
    return coerce_answer(question, parse_answer(raw, question.question_type))


def _render_question(session: QuizSession, timer: QuizTimer) -> str:
    question = session.current_question
    index = session.current_index
    total = len(session.processed_questions)
    header = f"Question {index + 1}/{total} ({question.question_type})"
    if session.mode == MODE_FLAGGED_REVIEW:
        header += f" · review {session.cursor + 1}/{len(session.flagged_order)}"
    if question.id in session.flagged_question_ids:
        header += " 🚩"
    if timer.remaining_seconds is not None:
        header += f" · ⏱ {format_time(timer.remaining_seconds)}"

    lines = ["", header, question.text]
    left_ids = matching_left_ids(question)
    if left_ids:
        lines.append(f"  Match each of: {', '.join(str(left) for left in left_ids)}")
    for option in display_options(question):
        lines.append(f"  {option.id}) {option.text}")
    if question.id in session.answers:
        lines.append(f"  Current answer: {session.answers[question.id]!r}")
    return "\n".join(lines)


def _handle_input(session: QuizSession, question: Question, raw: str) -> None:
    command = raw.strip()
    if command == "":
        session.next()
    elif command in (":next", ":n"):
        session.next()
    elif command in (":prev", ":p"):
        session.previous()
    elif command in (":flag", ":f"):
        flagged = session.toggle_flag(question.id)
        typer.echo("🚩 Flagged for review" if flagged else "Flag removed")
    elif command.startswith(":goto"):
        try:
            session.navigate_to(int(command.split()[1]) - 1)
        except (IndexError, ValueError):
            typer.echo("Usage: :goto N")
    elif command in (":submit", ":s"):
        if session.mode == MODE_FLAGGED_REVIEW:
            session.complete()
        else:
            session.submit_without_review()
    elif command in (":help", ":h"):
        typer.echo(HELP_TEXT)
    else:
        feedback = session.select_answer(question.id, _parse_cli_answer(raw, question))
        if feedback is not None:
            typer.echo("✅ Correct" if feedback.is_correct else "❌ Incorrect")
            if question.explanation:
                typer.echo(f"   {question.explanation}")


def _echo_record(record: ScoreRecord) -> None:
    status = "PASS" if record.is_passing else "FAIL"
    typer.echo(
        f"🎯 Score: {record.score_percent}% "
        f"({record.correct_count}/{record.total_questions} correct) · {status}"
    )


async def _take(session: QuizSession) -> ScoreRecord:
    timer = QuizTimer(session, tick_seconds=float(engine_config.get("tick_seconds")))

    def on_complete(_record: ScoreRecord) -> None:
        if timer.state == TIMER_EXPIRED:
            typer.echo("\n⏰ Time is up!")

    session.add_complete_listener(on_complete)
    timer.start_task()
    # let the timer arm itself (a zero limit completes right here)
    await asyncio.sleep(0)

    typer.echo(HELP_TEXT)
    while not session.is_completed:
        if session.pending_decision:
            count = len(session.flagged_question_ids)
            review = await asyncio.to_thread(
                typer.confirm, f"You have {count} flagged question(s). Review them now?", default=True
            )
            if session.is_completed:
                break
            if review:
                session.start_flagged_review()
            else:
                session.submit_without_review()
            continue

        question = session.current_question
        if question is None:
            session.submit_without_review()
            break

        typer.echo(_render_question(session, timer))
        raw = await asyncio.to_thread(typer.prompt, ">", default="", show_default=False)
        if session.is_completed:
            break
        _handle_input(session, question, raw)

    timer.cancel()
    return session.score_record


@app.command("quiz:take")
def quiz_take(
    quiz: Path,
    seed: int = typer.Option(None, help="Seed for reproducible shuffling"),
    feedback: str = typer.Option(None, help="instant or deferred"),
) -> None:
    """Take a quiz interactively in the terminal."""
    runtime_paths = get_runtime_paths()
    configure_logging(runtime_paths.log_path)

    definition = _load_or_exit(quiz)
    config = definition.config
    if seed is not None:
        config = replace(config, shuffle_seed=seed)
    if feedback is not None:
        if feedback not in (FEEDBACK_INSTANT, FEEDBACK_DEFERRED):
            typer.echo(f"❌ Unknown feedback mode: {feedback}", err=True)
            raise typer.Exit(1)
        config = replace(config, feedback_mode=feedback)

    typer.echo(f"📝 {definition.title or definition.id} · {len(definition.questions)} question(s)")
    if config.time_limit_minutes is not None:
        typer.echo(f"⏱  Time limit: {format_time(int(config.time_limit_minutes * 60))}")

    session = QuizSession(config, definition.questions)
    record = asyncio.run(_take(session))
    _echo_record(record)


@app.command("quiz:inspect")
def quiz_inspect(quiz: Path) -> None:
    """Summarize a quiz definition file."""
    meta = build_quiz_meta(_load_or_exit(quiz))
    typer.echo(f"📝 {meta['title'] or meta['id']}")
    typer.echo(f"   Questions: {meta['question_count']}")
    for question_type, count in meta["question_types"].items():
        typer.echo(f"     • {question_type}: {count}")
    if meta["unknown_types"]:
        typer.echo(f"   ⚠️  Unknown types (graded as incorrect): {', '.join(meta['unknown_types'])}")
    if meta["timed"]:
        typer.echo(f"   Time limit: {meta['time_limit_minutes']} min")
    else:
        typer.echo("   Untimed")
    typer.echo(f"   Passing score: {meta['passing_score_percent']:g}%")
    typer.echo(f"   Weighted: {'yes' if meta['weighted'] else 'no'}")
    typer.echo(f"   Feedback: {meta['feedback_mode']}")


@app.command("quiz:grade")
def quiz_grade(quiz: Path, answers_file: Path) -> None:
    """Score a YAML answers map (question id -> answer) against a quiz, in authoring order."""
    definition = _load_or_exit(quiz)
    try:
        raw_answers = yaml.safe_load(answers_file.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as exc:
        typer.echo(f"❌ Cannot read answers file: {exc}", err=True)
        raise typer.Exit(1)
    if not isinstance(raw_answers, dict):
        typer.echo("❌ Answers file must map question ids to answers", err=True)
        raise typer.Exit(1)

    answers = {}
    for question in definition.questions:
        if question.id in raw_answers:
            answers[question.id] = coerce_answer(question, raw_answers[question.id])

    for position, question in enumerate(definition.questions, start=1):
        result = grade_question(question, answers.get(question.id))
        mark = "✅" if result.is_correct else "❌"
        line = f"{mark} {position}. [{question.id}] {question.text}"
        if result.details:
            line += f" ({result.details})"
        typer.echo(line)

    config = definition.config
    _echo_record(score(definition.questions, answers, config.question_weights, config.passing_score_percent))


@app.command("api:serve")
def api_serve(host: str = "127.0.0.1", port: int = 8000) -> None:
    """Serve the session HTTP API."""
    import uvicorn

    configure_logging(get_runtime_paths().log_path)
    uvicorn.run("quiz_session_engine.api.app:app", host=host, port=port)


if __name__ == "__main__":
    app()
