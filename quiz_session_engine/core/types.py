from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Hashable, Mapping, Sequence, Union

SINGLE_CHOICE = "single_choice"
MULTI_CHOICE = "multi_choice"
TRUE_FALSE = "true_false"
FILL_IN_BLANK = "fill_in_blank"
SHORT_ANSWER = "short_answer"
MATCHING = "matching"
ORDERING = "ordering"

QUESTION_TYPES = (
    SINGLE_CHOICE,
    MULTI_CHOICE,
    TRUE_FALSE,
    FILL_IN_BLANK,
    SHORT_ANSWER,
    MATCHING,
    ORDERING,
)

# Types whose options are reordered and reindexed by answer shuffling.
SHUFFLABLE_TYPES = (SINGLE_CHOICE, MULTI_CHOICE)

FEEDBACK_INSTANT = "instant"
FEEDBACK_DEFERRED = "deferred"

MODE_LINEAR = "linear"
MODE_FLAGGED_REVIEW = "flagged_review"
MODE_COMPLETED = "completed"

DEFAULT_PASSING_SCORE = 70

OptionId = Hashable
Answer = Union[int, str, Sequence[Any], Mapping[Any, Any], None]


@dataclass
class QuizOption:
    id: OptionId
    text: str


@dataclass
class Question:
    id: Hashable
    question_type: str
    text: str = ""
    options: list[QuizOption] = field(default_factory=list)
    correct_option_id: Union[OptionId, None] = None
    correct_option_ids: Union[list[OptionId], None] = None
    accepted_answers: Union[list[str], None] = None
    matching_pairs: Union[dict[Any, Any], None] = None
    ordering_sequence: Union[list[Any], None] = None
    explanation: str = ""
    requires_manual_grading: bool = False


@dataclass(frozen=True)
class QuizConfig:
    question_count: int = 0
    time_limit_minutes: Union[int, float, None] = None
    passing_score_percent: float = DEFAULT_PASSING_SCORE
    randomize_questions: bool = False
    randomize_answer_options: bool = False
    feedback_mode: str = FEEDBACK_INSTANT
    question_weights: Union[Mapping[int, float], Sequence[float], None] = None
    shuffle_seed: Union[int, None] = None


@dataclass(frozen=True)
class ScoreRecord:
    score_percent: int
    correct_count: int
    total_questions: int
    is_passing: bool


@dataclass(frozen=True)
class GradeResult:
    is_correct: bool
    details: Union[str, None] = None


@dataclass(frozen=True)
class Feedback:
    question_id: Hashable
    is_correct: bool


@dataclass
class QuizDefinition:
    id: str
    title: str
    config: QuizConfig
    questions: list[Question]
    notes: str = ""
