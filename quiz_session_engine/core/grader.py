"""Per-type answer grading.

Grading is total: any malformed question or answer grades as incorrect and
never raises, so one broken item cannot take down a whole session.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any

from .types import (
    FILL_IN_BLANK,
    MATCHING,
    MULTI_CHOICE,
    ORDERING,
    SHORT_ANSWER,
    SINGLE_CHOICE,
    TRUE_FALSE,
    Answer,
    GradeResult,
    Question,
)

logger = logging.getLogger(__name__)

MANUAL_GRADING_DETAILS = "This question requires manual grading by an instructor."
UNKNOWN_TYPE_DETAILS = "Unknown question type"


def _normalize_text(value: str) -> str:
    return value.strip().lower()


def _is_sequence(value: Any) -> bool:
    return isinstance(value, (list, tuple))


def _grade_single(question: Question, answer: Answer) -> bool:
    correct = getattr(question, "correct_option_id", None)
    if correct is None or answer is None:
        return False
    # True == 1 in Python; a bool must not pass for option id 1.
    if isinstance(answer, bool) != isinstance(correct, bool):
        return False
    return answer == correct


def _grade_multi(question: Question, answer: Answer) -> bool:
    correct = getattr(question, "correct_option_ids", None)
    if not correct or not isinstance(answer, (list, tuple, set, frozenset)):
        return False
    return set(answer) == set(correct)


def _grade_text(question: Question, answer: Answer) -> bool:
    accepted = getattr(question, "accepted_answers", None)
    if not isinstance(answer, str) or not accepted:
        return False
    normalized = _normalize_text(answer)
    return any(
        isinstance(candidate, str) and _normalize_text(candidate) == normalized
        for candidate in accepted
    )


def _grade_matching(question: Question, answer: Answer) -> bool:
    pairs = getattr(question, "matching_pairs", None)
    if not pairs or not isinstance(answer, Mapping):
        return False
    return dict(answer) == dict(pairs)


def _grade_ordering(question: Question, answer: Answer) -> bool:
    sequence = getattr(question, "ordering_sequence", None)
    if not sequence or not _is_sequence(answer):
        return False
    return list(answer) == list(sequence)


def grade_question(question: Question, answer: Answer) -> GradeResult:
    """Grade ``answer`` against ``question`` and explain non-obvious outcomes."""
    question_type = getattr(question, "question_type", None)
    try:
        if question_type in (SINGLE_CHOICE, TRUE_FALSE):
            return GradeResult(_grade_single(question, answer))
        if question_type == MULTI_CHOICE:
            return GradeResult(_grade_multi(question, answer))
        if question_type == FILL_IN_BLANK:
            return GradeResult(_grade_text(question, answer))
        if question_type == SHORT_ANSWER:
            if getattr(question, "requires_manual_grading", False):
                return GradeResult(False, MANUAL_GRADING_DETAILS)
            return GradeResult(_grade_text(question, answer))
        if question_type == MATCHING:
            return GradeResult(_grade_matching(question, answer))
        if question_type == ORDERING:
            return GradeResult(_grade_ordering(question, answer))
    except TypeError:
        # Unhashable members in a submitted collection and similar shapes.
        logger.debug("Malformed answer for question %r", getattr(question, "id", None))
        return GradeResult(False)
    return GradeResult(False, UNKNOWN_TYPE_DETAILS)


def grade(question: Question, answer: Answer) -> bool:
    return grade_question(question, answer).is_correct


def parse_answer(raw: str, question_type: str) -> Answer:
    """Turn a raw text answer into the shape its question type grades against.

    Values that cannot be parsed are returned unchanged and will grade as
    incorrect.
    """
    try:
        if question_type in (SINGLE_CHOICE, TRUE_FALSE):
            return int(raw.strip())
        if question_type in (FILL_IN_BLANK, SHORT_ANSWER):
            return raw
        return json.loads(raw)
    except (ValueError, AttributeError):
        return raw


def _match_ids(value: Any, known: list[Any]) -> Any:
    for candidate in known:
        if str(candidate) == str(value):
            return candidate
    return value


def coerce_answer(question: Question, answer: Answer) -> Answer:
    """Align ids in a text-sourced answer (JSON, prompt input) with the question's ids.

    JSON object keys are always strings, so ``{"1": "b"}`` is mapped back to
    ``{1: "b"}`` when the question pairs use integer ids. Anything that does
    not match a known id is left as is.
    """
    try:
        return _coerce(question, answer)
    except TypeError:
        return answer


def _coerce(question: Question, answer: Answer) -> Answer:
    question_type = getattr(question, "question_type", None)
    if question_type in (SINGLE_CHOICE, TRUE_FALSE) and isinstance(answer, str):
        known = [option.id for option in question.options]
        return _match_ids(answer, known)
    if question_type == MULTI_CHOICE and _is_sequence(answer):
        known = [option.id for option in question.options]
        return [_match_ids(item, known) for item in answer]
    if question_type == MATCHING and isinstance(answer, Mapping) and question.matching_pairs:
        lefts = list(question.matching_pairs.keys())
        rights = list(question.matching_pairs.values())
        return {_match_ids(k, lefts): _match_ids(v, rights) for k, v in answer.items()}
    if question_type == ORDERING and _is_sequence(answer) and question.ordering_sequence:
        return [_match_ids(item, list(question.ordering_sequence)) for item in answer]
    return answer
