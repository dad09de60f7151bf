"""Quiz definition files: one quiz's configuration plus its question list.

Keys may be written in snake_case or in the camelCase used by the study
app's stored quizzes (``correctOptionId``, ``timeLimitMinutes``, ...).
"""

from __future__ import annotations

import logging
import math
from collections import Counter
from pathlib import Path
from typing import Any

import yaml

from .engine_config import engine_config
from .types import (
    FEEDBACK_DEFERRED,
    FEEDBACK_INSTANT,
    QUESTION_TYPES,
    Question,
    QuizConfig,
    QuizDefinition,
    QuizOption,
)

logger = logging.getLogger(__name__)

QUESTION_ALIASES = {
    "type": "question_type",
    "questionType": "question_type",
    "correctOptionId": "correct_option_id",
    "correctOptionIds": "correct_option_ids",
    "acceptedAnswers": "accepted_answers",
    "matchingPairs": "matching_pairs",
    "orderingSequence": "ordering_sequence",
    "requiresManualGrading": "requires_manual_grading",
}

CONFIG_ALIASES = {
    "questionCount": "question_count",
    "timeLimitMinutes": "time_limit_minutes",
    "passingScorePercent": "passing_score_percent",
    "randomizeQuestions": "randomize_questions",
    "randomizeAnswerOptions": "randomize_answer_options",
    "feedbackMode": "feedback_mode",
    "questionWeights": "question_weights",
    "shuffleSeed": "shuffle_seed",
}


class QuizDefinitionError(ValueError):
    """A quiz definition cannot be turned into a session."""


def _canonical(data: dict[str, Any], aliases: dict[str, str]) -> dict[str, Any]:
    return {aliases.get(key, key): value for key, value in data.items()}


def _parse_options(raw_options: Any, question_id: Any) -> list[QuizOption]:
    if raw_options is None:
        return []
    if not isinstance(raw_options, list):
        raise QuizDefinitionError(f"Question {question_id!r}: options must be a list")
    options = []
    for index, raw in enumerate(raw_options):
        if isinstance(raw, dict):
            options.append(QuizOption(id=raw.get("id", index), text=str(raw.get("text", ""))))
        else:
            options.append(QuizOption(id=index, text=str(raw)))
    return options


def parse_question(raw: Any) -> Question:
    if not isinstance(raw, dict):
        raise QuizDefinitionError("Each question must be a mapping")
    data = _canonical(raw, QUESTION_ALIASES)
    if data.get("id") is None:
        raise QuizDefinitionError("Question is missing an id")

    question_id = data["id"]
    question_type = str(data.get("question_type", ""))
    if question_type not in QUESTION_TYPES:
        # kept so the session can still run; it will grade as incorrect
        logger.warning("Question %r has unknown type %r", question_id, question_type)

    correct_option_ids = data.get("correct_option_ids")
    accepted_answers = data.get("accepted_answers")
    if isinstance(accepted_answers, str):
        accepted_answers = [accepted_answers]
    ordering_sequence = data.get("ordering_sequence")
    matching_pairs = data.get("matching_pairs")

    return Question(
        id=question_id,
        question_type=question_type,
        text=str(data.get("text", "")),
        options=_parse_options(data.get("options"), question_id),
        correct_option_id=data.get("correct_option_id"),
        correct_option_ids=list(correct_option_ids) if isinstance(correct_option_ids, list) else None,
        accepted_answers=accepted_answers if isinstance(accepted_answers, list) else None,
        matching_pairs=dict(matching_pairs) if isinstance(matching_pairs, dict) else None,
        ordering_sequence=list(ordering_sequence) if isinstance(ordering_sequence, list) else None,
        explanation=str(data.get("explanation", "") or ""),
        requires_manual_grading=bool(data.get("requires_manual_grading", False)),
    )


def parse_config(raw: Any, question_total: int) -> QuizConfig:
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise QuizDefinitionError("config must be a mapping")
    data = _canonical(raw, CONFIG_ALIASES)
    defaults = engine_config.settings()

    time_limit = data.get("time_limit_minutes")
    if time_limit is not None:
        valid = isinstance(time_limit, (int, float)) and not isinstance(time_limit, bool)
        if not valid or not math.isfinite(time_limit) or time_limit < 0:
            raise QuizDefinitionError(f"time_limit_minutes must be a finite non-negative number, got {time_limit!r}")

    feedback_mode = data.get("feedback_mode") or defaults["feedback_mode"]
    if feedback_mode not in (FEEDBACK_INSTANT, FEEDBACK_DEFERRED):
        raise QuizDefinitionError(f"Unknown feedback_mode {feedback_mode!r}")

    passing = data.get("passing_score_percent")
    if passing is None:
        passing = defaults["passing_score_percent"]
    try:
        passing = float(passing)
    except (TypeError, ValueError) as exc:
        raise QuizDefinitionError(f"Invalid passing_score_percent {passing!r}") from exc
    if not math.isfinite(passing):
        raise QuizDefinitionError(f"passing_score_percent must be finite, got {passing!r}")

    weights = data.get("question_weights")
    if weights is not None and not isinstance(weights, (dict, list)):
        raise QuizDefinitionError("question_weights must be a mapping or a list")

    seed = data.get("shuffle_seed")
    if seed is not None and (isinstance(seed, bool) or not isinstance(seed, int)):
        raise QuizDefinitionError(f"shuffle_seed must be an integer, got {seed!r}")

    return QuizConfig(
        question_count=int(data.get("question_count") or question_total),
        time_limit_minutes=time_limit,
        passing_score_percent=passing,
        randomize_questions=bool(data.get("randomize_questions", False)),
        randomize_answer_options=bool(data.get("randomize_answer_options", False)),
        feedback_mode=feedback_mode,
        question_weights=weights or None,
        shuffle_seed=seed,
    )


def parse_quiz_definition(quiz_def: Any) -> QuizDefinition:
    if not isinstance(quiz_def, dict):
        raise QuizDefinitionError("Quiz definition must be a mapping")
    raw_questions = quiz_def.get("questions")
    if not isinstance(raw_questions, list):
        raise QuizDefinitionError("Quiz definition needs a questions list")

    questions = [parse_question(raw) for raw in raw_questions]
    duplicates = [qid for qid, count in Counter(q.id for q in questions).items() if count > 1]
    if duplicates:
        raise QuizDefinitionError(f"Duplicate question ids: {duplicates}")

    return QuizDefinition(
        id=str(quiz_def.get("id", "")),
        title=str(quiz_def.get("title", "")),
        config=parse_config(quiz_def.get("config"), len(questions)),
        questions=questions,
        notes=str(quiz_def.get("notes", "") or ""),
    )


def load_quiz_definition(path: Path) -> QuizDefinition:
    try:
        quiz_def = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as exc:
        raise QuizDefinitionError(f"Cannot read quiz file {path}: {exc}") from exc
    return parse_quiz_definition(quiz_def)


def build_quiz_meta(definition: QuizDefinition) -> dict[str, Any]:
    type_counts = Counter(q.question_type for q in definition.questions)
    config = definition.config
    return {
        "id": definition.id,
        "title": definition.title,
        "question_count": len(definition.questions),
        "question_types": dict(sorted(type_counts.items())),
        "unknown_types": sorted(t for t in type_counts if t not in QUESTION_TYPES),
        "timed": config.time_limit_minutes is not None,
        "time_limit_minutes": config.time_limit_minutes,
        "weighted": bool(config.question_weights),
        "passing_score_percent": config.passing_score_percent,
        "feedback_mode": config.feedback_mode,
        "randomized": config.randomize_questions or config.randomize_answer_options,
    }
