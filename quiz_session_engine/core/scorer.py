from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Mapping
from typing import Any, Sequence, Union

from .grader import grade
from .types import DEFAULT_PASSING_SCORE, Question, ScoreRecord

logger = logging.getLogger(__name__)

DEFAULT_WEIGHT = 1.0

Weights = Union[Mapping[Any, float], Sequence[float], None]


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def calculate_score(correct: int, total: int) -> int:
    if total <= 0:
        return 0
    return round_half_up(100 * correct / total)


def format_time(seconds: int) -> str:
    seconds = max(0, int(seconds))
    minutes, remaining = divmod(seconds, 60)
    return f"{minutes}:{remaining:02d}"


def normalize_weights(weights: Weights) -> dict[int, float]:
    """Position -> weight. Keys may arrive as strings from JSON or YAML."""
    if not weights:
        return {}
    if isinstance(weights, Mapping):
        items: Iterable[tuple[Any, Any]] = weights.items()
    else:
        items = enumerate(weights)

    normalized: dict[int, float] = {}
    for key, value in items:
        try:
            position = int(key)
            weight = float(value)
        except (TypeError, ValueError):
            logger.warning("Ignoring malformed question weight %r: %r", key, value)
            continue
        if weight <= 0 or not math.isfinite(weight):
            logger.warning("Ignoring non-positive or non-finite weight %r at position %d", value, position)
            continue
        normalized[position] = weight
    return normalized


def score(
    processed_questions: Sequence[Question],
    answers: Mapping[Any, Any],
    weights: Weights = None,
    passing_score_percent: Union[float, None] = None,
) -> ScoreRecord:
    """Grade every question and build the session's score record.

    Weights are looked up by position in ``processed_questions``, not by
    question id, so they stay attached to the authoring position even when
    the question order was shuffled. Positions without a weight count as
    ``DEFAULT_WEIGHT``.
    """
    if passing_score_percent is None:
        passing_score_percent = DEFAULT_PASSING_SCORE

    total = len(processed_questions)
    position_weights = normalize_weights(weights)

    correct_count = 0
    correct_weight = 0.0
    total_weight = 0.0
    for position, question in enumerate(processed_questions):
        weight = position_weights.get(position, DEFAULT_WEIGHT)
        total_weight += weight
        if grade(question, answers.get(question.id)):
            correct_count += 1
            correct_weight += weight

    if position_weights:
        score_percent = round_half_up(100 * correct_weight / total_weight) if total_weight > 0 else 0
    else:
        score_percent = calculate_score(correct_count, total)

    return ScoreRecord(
        score_percent=score_percent,
        correct_count=correct_count,
        total_questions=total,
        # an empty session never passes, even against a zero threshold
        is_passing=total > 0 and score_percent >= passing_score_percent,
    )
