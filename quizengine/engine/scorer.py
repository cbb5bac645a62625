# quizengine/engine/scorer.py

"""
Grading engine.

Pure and deterministic: ``grade`` reads already-loaded questions and a
frozen answer map and returns a ``Result``. It is invoked exactly once per
attempt by the attempt state machine.
"""

import logging
import math
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from quizengine.schemas.attempt import QuestionResult, Result
from quizengine.schemas.question import (
    EssayQuestion,
    FillBlankQuestion,
    MatchingQuestion,
    MultipleChoiceQuestion,
    OrderingQuestion,
    Question,
    QuestionType,
    SingleChoiceQuestion,
    TrueFalseQuestion,
    ensure_exhaustive,
    item_key,
)

logger = logging.getLogger(__name__)

# (is_correct, earned)
Score = Tuple[Optional[bool], float]


def compute_percentage(earned: float, total: float) -> int:
    """``round(100 * earned / total)`` half-up, clamped to [0, 100]; 0 if total is 0."""
    if total <= 0:
        return 0
    percentage = math.floor(100.0 * earned / total + 0.5)
    return max(0, min(100, percentage))


class QuizScorer:
    """
    RULE-BASED SCORER, one method per question type.

    Binary rules award full points or nothing. Matching and ordering award
    proportional points only when the question enables ``partial_credit``.
    Essays are never auto-graded.
    """

    def score_single_choice(self, question: SingleChoiceQuestion, answer: Any) -> Score:
        is_correct = answer == question.correct_answer and not isinstance(answer, bool)
        return is_correct, float(question.points) if is_correct else 0.0

    def score_multiple_choice(self, question: MultipleChoiceQuestion, answer: Any) -> Score:
        """Order-independent: the selected index set must equal the correct set."""
        if isinstance(answer, int) and not isinstance(answer, bool):
            answer = [answer]
        if not isinstance(answer, list):
            return False, 0.0
        is_correct = bool(question.correct_answer) and set(answer) == set(question.correct_answer)
        return is_correct, float(question.points) if is_correct else 0.0

    def score_true_false(self, question: TrueFalseQuestion, answer: Any) -> Score:
        is_correct = isinstance(answer, bool) and answer == question.correct_answer
        return is_correct, float(question.points) if is_correct else 0.0

    def score_fill_blank(self, question: FillBlankQuestion, answer: Any) -> Score:
        """
        Whitespace is trimmed on both sides; case is folded unless the
        question is case sensitive. Any accepted answer counts.
        """
        if not isinstance(answer, str):
            return False, 0.0

        def _normalize(text: str) -> str:
            text = text.strip()
            return text if question.case_sensitive else text.casefold()

        submitted = _normalize(answer)
        accepted = {_normalize(a) for a in question.accepted_answers if a.strip()}
        is_correct = submitted in accepted
        return is_correct, float(question.points) if is_correct else 0.0

    def score_essay(self, question: EssayQuestion, answer: Any) -> Score:
        # Manual review: tri-state None, never False
        return None, 0.0

    def score_matching(self, question: MatchingQuestion, answer: Any) -> Score:
        """
        Correct iff the submitted pair set equals the correct pair set.
        With partial credit: points * correct pairs / total pairs.
        """
        expected = {(item_key(p.left_id), item_key(p.right_id)) for p in question.correct_answer}
        if not isinstance(answer, Mapping) or not expected:
            return False, 0.0

        submitted = {(item_key(left), item_key(right)) for left, right in answer.items()}
        is_correct = submitted == expected
        if is_correct:
            return True, float(question.points)
        if question.partial_credit:
            matched = len(submitted & expected)
            return False, question.points * matched / len(expected)
        return False, 0.0

    def score_ordering(self, question: OrderingQuestion, answer: Any) -> Score:
        """
        Correct iff the submitted sequence equals the correct permutation.
        With partial credit: points * matching positions / total positions.
        """
        expected = [item_key(i) for i in question.correct_answer]
        if not isinstance(answer, list) or not expected:
            return False, 0.0

        submitted = [item_key(i) for i in answer]
        is_correct = submitted == expected
        if is_correct:
            return True, float(question.points)
        if question.partial_credit:
            matched = sum(1 for s, e in zip(submitted, expected) if s == e)
            return False, question.points * matched / len(expected)
        return False, 0.0

    def score_question(self, question: Question, answer: Any) -> QuestionResult:
        kind = question.kind
        if answer is None:
            # Unanswered: 0 points; essays stay pending review
            is_correct, earned = (None if kind == QuestionType.ESSAY else False), 0.0
        else:
            is_correct, earned = _RULES[kind](self, question, answer)

        return QuestionResult(
            question_id=question.id,
            question_type=kind.value,
            is_correct=is_correct,
            earned=earned,
            max_points=question.points,
        )


_RULES: Dict[QuestionType, Callable[[QuizScorer, Any, Any], Score]] = {
    QuestionType.SINGLE_CHOICE: QuizScorer.score_single_choice,
    QuestionType.MULTIPLE_CHOICE: QuizScorer.score_multiple_choice,
    QuestionType.TRUE_FALSE: QuizScorer.score_true_false,
    QuestionType.FILL_BLANK: QuizScorer.score_fill_blank,
    QuestionType.ESSAY: QuizScorer.score_essay,
    QuestionType.MATCHING: QuizScorer.score_matching,
    QuestionType.ORDERING: QuizScorer.score_ordering,
}
ensure_exhaustive(_RULES, "grading rules")


def grade(
    questions: Sequence[Question],
    answers: Mapping[str, Any],
    attempt_id: str,
    passing_score: Optional[int] = None,
    scorer: Optional[QuizScorer] = None,
) -> Result:
    """
    Score every question and aggregate.

    Args:
        questions: the attempt's ordered question list
        answers: question id -> submitted value (absent = unanswered)
        attempt_id: id recorded on the result
        passing_score: percentage needed to pass; ``passed`` stays None
            without it. Essays are left out of the pass/fail check.

    Returns:
        Result with per-question breakdown
    """
    scorer = scorer or QuizScorer()

    per_question: List[QuestionResult] = []
    pending_review: List[str] = []
    total_points = 0
    earned_points = 0.0
    gradable_points = 0

    for question in questions:
        outcome = scorer.score_question(question, answers.get(question.id))
        per_question.append(outcome)

        total_points += question.points
        earned_points += outcome.earned
        if question.kind == QuestionType.ESSAY:
            pending_review.append(question.id)
        else:
            gradable_points += question.points

    passed = None
    if passing_score is not None and gradable_points > 0:
        passed = 100.0 * earned_points / gradable_points >= passing_score

    result = Result(
        attempt_id=attempt_id,
        total_points=total_points,
        earned_points=earned_points,
        percentage=compute_percentage(earned_points, total_points),
        per_question=per_question,
        pending_review=pending_review,
        passed=passed,
        graded_at=datetime.now(timezone.utc),
    )

    logger.info(
        f"Graded attempt {attempt_id}: {earned_points:g}/{total_points} "
        f"({result.percentage}%), {len(pending_review)} pending review"
    )
    return result
