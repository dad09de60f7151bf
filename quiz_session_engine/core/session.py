"""Quiz session state machine.

A session walks a fixed, already randomized question list in one of three
modes:

``linear``
    One question at a time, forward and backward over the whole list.
``flagged_review``
    Only the questions flagged for review, in list order. The order is
    captured when review starts; flag changes made afterwards do not
    change it.
``completed``
    Terminal. The score record exists and every operation is a no-op.

Invalid operations (stale question ids, stepping past either end, acting on
a completed session) are ignored rather than raised. Completion is
idempotent so that a timer expiry and a manual submit can land in any
order and still produce exactly one score record.
"""

from __future__ import annotations

import logging
import random
from enum import Enum
from types import MappingProxyType
from typing import Callable, Hashable, Mapping, Sequence, Union

from .grader import grade
from .randomizer import randomize
from .scorer import score
from .types import (
    FEEDBACK_INSTANT,
    MODE_COMPLETED,
    MODE_FLAGGED_REVIEW,
    MODE_LINEAR,
    Answer,
    Feedback,
    Question,
    QuizConfig,
    ScoreRecord,
)

logger = logging.getLogger(__name__)

STATUS_CURRENT = "current"
STATUS_FLAGGED = "flagged"
STATUS_ANSWERED = "answered"
STATUS_UNANSWERED = "unanswered"

CompleteListener = Callable[[ScoreRecord], None]
PendingListener = Callable[[frozenset], None]


class CompletionPhase(Enum):
    ACTIVE = "active"
    COMPLETING = "completing"
    COMPLETED = "completed"


class QuizSession:
    """One attempt at a quiz, from the first question to the score record."""

    def __init__(
        self,
        config: QuizConfig,
        questions: Sequence[Question],
        *,
        rng: Union[random.Random, None] = None,
    ) -> None:
        self.config = config
        self._questions: tuple[Question, ...] = tuple(
            randomize(
                questions,
                randomize_questions=config.randomize_questions,
                randomize_answer_options=config.randomize_answer_options,
                seed=config.shuffle_seed,
                rng=rng,
            )
        )
        self._question_ids = frozenset(q.id for q in self._questions)
        if len(self._question_ids) != len(self._questions):
            logger.warning("Session question list contains duplicate ids")

        self._answers: dict[Hashable, Answer] = {}
        self._flagged: set[Hashable] = set()
        self._mode = MODE_LINEAR
        self._cursor = 0
        self._flagged_order: tuple[int, ...] = ()
        self._pending_decision = False
        self._feedback: Union[Feedback, None] = None

        self._phase = CompletionPhase.ACTIVE
        self._score_record: Union[ScoreRecord, None] = None

        self._complete_listeners: list[CompleteListener] = []
        self._pending_listeners: list[PendingListener] = []

    # ------------------------------------------------------------------
    # Listeners

    def add_complete_listener(self, callback: CompleteListener) -> None:
        """Call ``callback`` with the score record once the session completes.

        Registering on an already completed session calls it immediately.
        """
        if self._score_record is not None:
            callback(self._score_record)
            return
        self._complete_listeners.append(callback)

    def add_pending_listener(self, callback: PendingListener) -> None:
        self._pending_listeners.append(callback)

    # ------------------------------------------------------------------
    # Read-only views

    @property
    def processed_questions(self) -> tuple[Question, ...]:
        return self._questions

    @property
    def answers(self) -> Mapping[Hashable, Answer]:
        return MappingProxyType(self._answers)

    @property
    def flagged_question_ids(self) -> frozenset:
        return frozenset(self._flagged)

    @property
    def mode(self) -> str:
        return self._mode

    @property
    def cursor(self) -> int:
        return self._cursor

    @property
    def flagged_order(self) -> tuple[int, ...]:
        return self._flagged_order

    @property
    def pending_decision(self) -> bool:
        """True after ``next()`` reached the end of the list with flags outstanding."""
        return self._pending_decision

    @property
    def feedback(self) -> Union[Feedback, None]:
        return self._feedback

    @property
    def score_record(self) -> Union[ScoreRecord, None]:
        return self._score_record

    @property
    def is_completed(self) -> bool:
        return self._mode == MODE_COMPLETED

    def _traversal_length(self) -> int:
        if self._mode == MODE_FLAGGED_REVIEW:
            return len(self._flagged_order)
        return len(self._questions)

    @property
    def current_index(self) -> Union[int, None]:
        """Index into ``processed_questions`` of the question on screen."""
        if self._mode == MODE_COMPLETED or not self._questions:
            return None
        if self._mode == MODE_FLAGGED_REVIEW:
            return self._flagged_order[self._cursor]
        return self._cursor

    @property
    def current_question(self) -> Union[Question, None]:
        index = self.current_index
        return None if index is None else self._questions[index]

    @property
    def progress(self) -> float:
        if self._mode == MODE_COMPLETED:
            return 100.0
        total = self._traversal_length()
        if total == 0:
            return 0.0
        return (self._cursor + 1) / total * 100

    def question_status(self, index: int) -> str:
        if not 0 <= index < len(self._questions):
            return STATUS_UNANSWERED
        question = self._questions[index]
        if index == self.current_index:
            return STATUS_CURRENT
        if question.id in self._flagged:
            return STATUS_FLAGGED
        if question.id in self._answers:
            return STATUS_ANSWERED
        return STATUS_UNANSWERED

    # ------------------------------------------------------------------
    # Transitions

    def _move_to(self, cursor: int) -> None:
        self._cursor = cursor
        self._feedback = None
        self._pending_decision = False

    def select_answer(self, question_id: Hashable, answer: Answer) -> Union[Feedback, None]:
        """Store ``answer`` for the current question.

        Returns the feedback under instant feedback mode, otherwise ``None``.
        Answers for any question other than the current one are ignored.
        """
        current = self.current_question
        if current is None or current.id != question_id:
            logger.debug("Ignoring answer for non-current question %r", question_id)
            return None

        self._answers[question_id] = answer
        if self.config.feedback_mode != FEEDBACK_INSTANT:
            return None

        self._feedback = Feedback(question_id=question_id, is_correct=grade(current, answer))
        return self._feedback

    def toggle_flag(self, question_id: Hashable) -> Union[bool, None]:
        """Flag or unflag a question; returns the new flag state, ``None`` if ignored."""
        if self.is_completed or question_id not in self._question_ids:
            return None
        if question_id in self._flagged:
            self._flagged.discard(question_id)
            return False
        self._flagged.add(question_id)
        return True

    def next(self) -> None:
        if self.is_completed:
            return

        total = self._traversal_length()
        if total == 0:
            return

        if self._cursor < total - 1:
            self._move_to(self._cursor + 1)
            logger.debug("Advanced to position %d (%s)", self._cursor, self._mode)
            return

        if self._mode == MODE_LINEAR and self._flagged:
            self._pending_decision = True
            flagged = frozenset(self._flagged)
            logger.debug("End of questions with %d flagged; awaiting decision", len(flagged))
            for callback in list(self._pending_listeners):
                callback(flagged)
            return

        self.complete()

    def previous(self) -> None:
        if self.is_completed or self._cursor <= 0:
            return
        self._move_to(self._cursor - 1)

    def navigate_to(self, index: int) -> None:
        """Jump straight to ``index`` of the linear traversal."""
        if self._mode != MODE_LINEAR:
            return
        if not 0 <= index < len(self._questions):
            return
        self._move_to(index)

    def start_flagged_review(self) -> bool:
        if self._mode != MODE_LINEAR or not self._flagged:
            return False

        order = tuple(i for i, q in enumerate(self._questions) if q.id in self._flagged)
        if not order:
            return False

        self._flagged_order = order
        self._mode = MODE_FLAGGED_REVIEW
        self._move_to(0)
        logger.debug("Reviewing %d flagged questions", len(order))
        return True

    def submit_without_review(self) -> Union[ScoreRecord, None]:
        if self._mode != MODE_LINEAR:
            return self._score_record
        return self.complete()

    def complete(self) -> Union[ScoreRecord, None]:
        """Score the session and enter the terminal mode; later calls return the same record."""
        if self._phase is not CompletionPhase.ACTIVE:
            return self._score_record
        self._phase = CompletionPhase.COMPLETING

        try:
            record = score(
                self._questions,
                self._answers,
                self.config.question_weights,
                self.config.passing_score_percent,
            )
        except Exception:
            # leave the session active so a later complete() can try again
            self._phase = CompletionPhase.ACTIVE
            raise
        self._score_record = record
        self._mode = MODE_COMPLETED
        self._pending_decision = False
        self._feedback = None
        self._phase = CompletionPhase.COMPLETED

        logger.info(
            "Session completed: %d%% (%d/%d correct, passing=%s)",
            record.score_percent,
            record.correct_count,
            record.total_questions,
            record.is_passing,
        )

        listeners, self._complete_listeners = self._complete_listeners, []
        for callback in listeners:
            try:
                callback(record)
            except Exception:
                logger.exception("Completion listener failed")
        return record
