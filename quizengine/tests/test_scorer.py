"""Grading engine"""
import pytest

from quizengine.engine.scorer import QuizScorer, compute_percentage, grade
from quizengine.schemas.question import parse_question


@pytest.fixture
def scorer():
    return QuizScorer()


class TestConcreteCases:

    def test_single_choice_correct_index(self, scorer, single_choice):
        outcome = scorer.score_question(single_choice, 2)
        assert outcome.is_correct is True
        assert outcome.earned == single_choice.points

    def test_multiple_choice_is_order_independent(self, scorer, multiple_choice):
        outcome = scorer.score_question(multiple_choice, [1, 0, 3])
        assert outcome.is_correct is True

    def test_multiple_choice_subset_is_wrong(self, scorer, multiple_choice):
        assert scorer.score_question(multiple_choice, [0, 1]).is_correct is False

    def test_true_false_mismatch(self, scorer, true_false):
        outcome = scorer.score_question(true_false, True)
        assert outcome.is_correct is False
        assert outcome.earned == 0

    def test_fill_blank_trim_and_fold(self, scorer, fill_blank):
        assert scorer.score_question(fill_blank, " Brown ").is_correct is True

    def test_fill_blank_case_sensitive(self, scorer):
        q = parse_question({
            "id": "q", "type": "fill_blank", "prompt": "___", "correct_answer": "DNA", "case_sensitive": True,
        })
        assert scorer.score_question(q, " DNA").is_correct is True
        assert scorer.score_question(q, "dna").is_correct is False

    def test_fill_blank_any_accepted_answer(self, scorer):
        q = parse_question({"id": "q", "type": "fill_blank", "prompt": "___", "correct_answer": ["colour", "color"]})
        assert scorer.score_question(q, "Color").is_correct is True

    def test_ordering_partial_credit(self, scorer, ordering):
        outcome = scorer.score_question(ordering, [1, 3, 2])
        assert outcome.is_correct is False
        assert outcome.earned == pytest.approx(ordering.points * 1 / 3)

    def test_ordering_without_partial_credit(self, scorer, ordering):
        strict = ordering.model_copy(update={"partial_credit": False})
        assert scorer.score_question(strict, [1, 3, 2]).earned == 0

    def test_matching_all_or_nothing_by_default(self, scorer, matching):
        strict = matching.model_copy(update={"partial_credit": False})
        assert scorer.score_question(strict, {"1": "a", "2": "b"}).is_correct is True
        assert scorer.score_question(strict, {"1": "a", "2": "a"}).earned == 0

    def test_matching_partial_credit(self, scorer, matching):
        outcome = scorer.score_question(matching, {"1": "a", "2": "a"})
        assert outcome.is_correct is False
        assert outcome.earned == pytest.approx(1.0)

    def test_matching_compares_ids_as_text(self, scorer, matching):
        assert scorer.score_question(matching, {1: "a", 2: "b"}).is_correct is True

    def test_unanswered_essay_is_pending(self, scorer, essay):
        outcome = scorer.score_question(essay, None)
        assert outcome.is_correct is None
        assert outcome.earned == 0

    def test_answered_essay_is_still_pending(self, scorer, essay):
        assert scorer.score_question(essay, "Light becomes sugar.").is_correct is None

    def test_unanswered_question_is_wrong(self, scorer, single_choice):
        outcome = scorer.score_question(single_choice, None)
        assert outcome.is_correct is False
        assert outcome.earned == 0


class TestPercentage:

    @pytest.mark.parametrize("earned, total, expected", [
        (0, 0, 0),
        (1, 3, 33),
        (2, 3, 67),
        (1, 8, 13),
        (5, 10, 50),
        (10, 10, 100),
        (12, 10, 100),
        (-1, 10, 0),
    ])
    def test_rounding_and_clamping(self, earned, total, expected):
        assert compute_percentage(earned, total) == expected


class TestGrade:

    def test_perfect_attempt(self, questions, perfect_answers):
        result = grade(questions, perfect_answers, "attempt-1", passing_score=70)
        assert result.total_points == 15
        assert result.earned_points == 10
        assert result.percentage == 67
        assert result.pending_review == ["q-essay"]
        # Essay points count in the total but not in pass/fail
        assert result.passed is True

    def test_empty_answers(self, questions):
        result = grade(questions, {}, "attempt-1", passing_score=70)
        assert result.earned_points == 0
        assert result.percentage == 0
        assert result.passed is False
        by_id = {q.question_id: q for q in result.per_question}
        assert by_id["q-essay"].is_correct is None
        assert by_id["q-single"].is_correct is False

    def test_no_questions(self):
        result = grade([], {}, "attempt-1")
        assert result.total_points == 0
        assert result.percentage == 0
        assert result.passed is None

    def test_passed_unknown_without_passing_score(self, questions, perfect_answers):
        assert grade(questions, perfect_answers, "attempt-1").passed is None

    def test_per_question_order_follows_questions(self, questions):
        result = grade(questions, {}, "attempt-1")
        assert [q.question_id for q in result.per_question] == [q.id for q in questions]
        assert result.correct_count == 0
