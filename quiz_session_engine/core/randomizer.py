"""One-shot randomization of a session's question set.

Question order and, for choice questions, option order can be shuffled.
Shuffled options get new sequential ids equal to their display position,
and the correctness references are rewritten through a map keyed by the
options' original ids, built before any id is reassigned.
"""

from __future__ import annotations

import logging
import random
import zlib
from dataclasses import replace
from typing import Any, Sequence, TypeVar, Union

from .types import MATCHING, ORDERING, SHUFFLABLE_TYPES, Question, QuizOption

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Numerical Recipes LCG constants
_LCG_A = 1664525
_LCG_C = 1013904223
_LCG_M = 2**32


def deterministic_shuffle(items: Sequence[T], seed: int) -> list[T]:
    """Fisher-Yates shuffle driven by a seeded LCG; the input is not modified."""
    shuffled = list(items)
    state = seed % _LCG_M
    for i in range(len(shuffled) - 1, 0, -1):
        state = (_LCG_A * state + _LCG_C) % _LCG_M
        j = (state * (i + 1)) // _LCG_M
        shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
    return shuffled


def display_seed(question_id: Any) -> int:
    """Stable shuffle seed for a question id; non-integer ids are hashed with CRC32."""
    if isinstance(question_id, int) and not isinstance(question_id, bool):
        return question_id
    return zlib.crc32(str(question_id).encode("utf-8"))


def display_options(question: Question) -> list[QuizOption]:
    """Options in the order they are presented.

    Ordering items and the right-hand side of matching questions are authored
    in answer order, so they are shown shuffled with a seed taken from the
    question id. The order is the same on every render of the question.
    """
    if question.question_type in (ORDERING, MATCHING):
        return deterministic_shuffle(question.options, display_seed(question.id))
    return list(question.options)


def matching_left_ids(question: Question) -> list[Any]:
    """Left-hand ids a matching answer must use as keys."""
    if question.question_type != MATCHING or not question.matching_pairs:
        return []
    return list(question.matching_pairs)


def _fisher_yates(items: Sequence[T], rng: random.Random) -> list[T]:
    shuffled = list(items)
    for i in range(len(shuffled) - 1, 0, -1):
        j = rng.randint(0, i)
        shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
    return shuffled


def shuffle_options(question: Question, rng: random.Random) -> Question:
    """Return a copy of ``question`` with shuffled, reindexed options."""
    shuffled = _fisher_yates(question.options, rng)

    # old id -> new position, captured before ids are rewritten
    new_position: dict[Any, int] = {}
    for position, option in enumerate(shuffled):
        if option.id in new_position:
            logger.warning("Question %r has duplicate option id %r", question.id, option.id)
        new_position[option.id] = position

    options = [QuizOption(id=position, text=option.text) for position, option in enumerate(shuffled)]

    correct_option_id = None
    if question.correct_option_id is not None:
        correct_option_id = new_position.get(question.correct_option_id)

    correct_option_ids: Union[list[int], None] = None
    if question.correct_option_ids is not None:
        mapped = [new_position.get(option_id) for option_id in question.correct_option_ids]
        # A dangling reference keeps the question ungradeable rather than
        # silently narrowing the correct set.
        correct_option_ids = None if None in mapped else mapped

    return replace(
        question,
        options=options,
        correct_option_id=correct_option_id,
        correct_option_ids=correct_option_ids,
    )


def randomize(
    questions: Sequence[Question],
    *,
    randomize_questions: bool = False,
    randomize_answer_options: bool = False,
    seed: Union[int, None] = None,
    rng: Union[random.Random, None] = None,
) -> list[Question]:
    """Produce the processed question list for a session.

    The input questions are never mutated; an unshuffled question is passed
    through as the same object.
    """
    if rng is None:
        rng = random.Random(seed)

    processed = list(questions)
    if randomize_questions:
        processed = _fisher_yates(processed, rng)

    if randomize_answer_options:
        processed = [
            shuffle_options(q, rng) if q.question_type in SHUFFLABLE_TYPES else q
            for q in processed
        ]

    logger.debug(
        "Randomized %d questions (questions=%s, options=%s)",
        len(processed),
        randomize_questions,
        randomize_answer_options,
    )
    return processed
