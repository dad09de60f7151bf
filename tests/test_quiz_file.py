import sys, pathlib; sys.path.insert(0, str(pathlib.Path(__file__).resolve().parents[1]))
import pytest
import yaml

from quiz_session_engine.core import quiz_file
from quiz_session_engine.core.quiz_file import QuizDefinitionError

SAMPLE_QUIZ = pathlib.Path(__file__).resolve().parents[1] / "quizzes" / "sample_cloud_fundamentals.yaml"


def _quiz(**overrides):
    quiz = {
        "id": "mock-quiz",
        "title": "Mock Quiz",
        "config": {"time_limit_minutes": 5, "feedback_mode": "deferred"},
        "questions": [
            {
                "id": 1,
                "type": "single_choice",
                "text": "Pick one:",
                "options": [{"id": "A", "text": "A"}, {"id": "B", "text": "B"}],
                "correct_option_id": "B",
            },
            {
                "id": 2,
                "questionType": "fill_in_blank",
                "text": "Capital of France",
                "acceptedAnswers": "Paris",
            },
        ],
    }
    quiz.update(overrides)
    return quiz


def test_parse_definition_accepts_snake_and_camel_case():
    definition = quiz_file.parse_quiz_definition(_quiz())
    first, second = definition.questions
    assert first.question_type == "single_choice"
    assert first.correct_option_id == "B"
    assert second.question_type == "fill_in_blank"
    assert second.accepted_answers == ["Paris"]
    assert definition.config.time_limit_minutes == 5
    assert definition.config.feedback_mode == "deferred"
    assert definition.config.question_count == 2


def test_plain_string_options_get_positional_ids():
    quiz = _quiz(questions=[{"id": "q", "type": "single_choice", "options": ["x", "y"], "correct_option_id": 1}])
    question = quiz_file.parse_quiz_definition(quiz).questions[0]
    assert [(o.id, o.text) for o in question.options] == [(0, "x"), (1, "y")]


def test_config_defaults_come_from_engine_settings():
    definition = quiz_file.parse_quiz_definition(_quiz(config=None))
    assert definition.config.passing_score_percent == 70
    assert definition.config.time_limit_minutes is None


def test_unknown_question_type_is_kept():
    quiz = _quiz(questions=[{"id": 1, "type": "essay", "text": "Discuss"}])
    definition = quiz_file.parse_quiz_definition(quiz)
    assert definition.questions[0].question_type == "essay"
    assert quiz_file.build_quiz_meta(definition)["unknown_types"] == ["essay"]


@pytest.mark.parametrize(
    "quiz",
    [
        "not a mapping",
        {"id": "x"},
        {"questions": [{"type": "single_choice"}]},
        {"questions": [{"id": 1}, {"id": 1}]},
        {"questions": [], "config": {"time_limit_minutes": -1}},
        {"questions": [], "config": {"time_limit_minutes": float("nan")}},
        {"questions": [], "config": {"time_limit_minutes": float("inf")}},
        {"questions": [], "config": {"passing_score_percent": float("nan")}},
        {"questions": [], "config": {"feedback_mode": "sometimes"}},
        {"questions": [], "config": {"question_weights": 3}},
        {"questions": [], "config": {"shuffle_seed": "abc"}},
    ],
)
def test_invalid_definitions_raise(quiz):
    with pytest.raises(QuizDefinitionError):
        quiz_file.parse_quiz_definition(quiz)


def test_load_quiz_definition_from_yaml(tmp_path):
    path = tmp_path / "quiz.yaml"
    path.write_text(yaml.safe_dump(_quiz()), encoding="utf-8")
    definition = quiz_file.load_quiz_definition(path)
    assert definition.id == "mock-quiz"
    assert len(definition.questions) == 2


def test_load_missing_file_raises(tmp_path):
    with pytest.raises(QuizDefinitionError):
        quiz_file.load_quiz_definition(tmp_path / "missing.yaml")


def test_sample_quiz_covers_every_question_type():
    definition = quiz_file.load_quiz_definition(SAMPLE_QUIZ)
    meta = quiz_file.build_quiz_meta(definition)
    assert meta["question_count"] == 7
    assert len(meta["question_types"]) == 7
    assert meta["unknown_types"] == []
    assert meta["timed"] is True
    assert meta["randomized"] is True


def test_yaml_infinite_time_limit_is_rejected(tmp_path):
    path = tmp_path / "quiz.yaml"
    path.write_text("questions: []\nconfig:\n  time_limit_minutes: .inf\n", encoding="utf-8")
    with pytest.raises(QuizDefinitionError):
        quiz_file.load_quiz_definition(path)
