# quizengine/engine/validator.py

"""
Authoring validation.

Pure functions: nothing here raises for bad input or touches storage. Errors
block persistence, warnings never do; the caller decides what to do with
the returned ``ValidationResult``.
"""

from collections import Counter
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from pydantic import ValidationError

from quizengine.core.config import settings
from quizengine.schemas.question import (
    Difficulty,
    QuestionDraft,
    QuestionType,
    coerce_items,
    coerce_match_pairs,
    ensure_exhaustive,
    item_key,
)
from quizengine.schemas.quiz import ValidationIssue, ValidationResult

MAX_PROMPT_LENGTH = 1000
MAX_CHOICE_OPTIONS = 10
MAX_MATCHING_PAIRS = 10
MAX_ORDERING_ITEMS = 10
LONG_ITEM_LENGTH = 100

Issues = Tuple[List[ValidationIssue], List[ValidationIssue]]


def _error(field: str, message: str, code: str) -> ValidationIssue:
    return ValidationIssue(field=field, message=message, code=code)


def _warning(field: str, message: str, code: str, suggestion: Optional[str] = None) -> ValidationIssue:
    return ValidationIssue(field=field, message=message, code=code, suggestion=suggestion)


def _is_index(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_blank(value: Any) -> bool:
    return not isinstance(value, str) or not value.strip()


# -------------------------------------------------------------------
# Per-type rules
# -------------------------------------------------------------------

def _validate_options(draft: QuestionDraft) -> Issues:
    errors: List[ValidationIssue] = []
    warnings: List[ValidationIssue] = []
    options = draft.options

    if not isinstance(options, list) or len(options) < 2:
        errors.append(_error("options", "At least 2 options are required", "INSUFFICIENT_OPTIONS"))
        return errors, warnings

    if any(_is_blank(o) for o in options):
        errors.append(_error("options", "All options must have text", "EMPTY_OPTIONS"))

    texts = [o.strip().lower() for o in options if isinstance(o, str) and o.strip()]
    if len(set(texts)) != len(texts):
        warnings.append(_warning(
            "options", "Duplicate options detected", "DUPLICATE_OPTIONS",
            "Each option should be distinct",
        ))

    if len(options) > MAX_CHOICE_OPTIONS:
        warnings.append(_warning(
            "options", f"More than {MAX_CHOICE_OPTIONS} options", "TOO_MANY_OPTIONS",
            "Long option lists are hard to read",
        ))

    return errors, warnings


def _validate_single_choice(draft: QuestionDraft) -> Issues:
    errors, warnings = _validate_options(draft)
    answer = draft.correct_answer
    option_count = len(draft.options) if isinstance(draft.options, list) else 0

    if answer is None:
        errors.append(_error("correct_answer", "A correct option must be selected", "CORRECT_ANSWER_REQUIRED"))
    elif not _is_index(answer) or not 0 <= answer < option_count:
        errors.append(_error(
            "correct_answer",
            f"Correct answer must be an option index between 0 and {max(option_count - 1, 0)}",
            "INVALID_CORRECT_ANSWER",
        ))
    return errors, warnings


def _validate_multiple_choice(draft: QuestionDraft) -> Issues:
    errors, warnings = _validate_options(draft)
    answer = draft.correct_answer
    option_count = len(draft.options) if isinstance(draft.options, list) else 0

    if _is_index(answer):
        answer = [answer]

    if answer is None or answer == []:
        errors.append(_error("correct_answer", "At least one correct option must be selected", "CORRECT_ANSWER_REQUIRED"))
    elif not isinstance(answer, list) or not all(_is_index(a) and 0 <= a < option_count for a in answer):
        errors.append(_error(
            "correct_answer",
            f"Correct answers must be option indices between 0 and {max(option_count - 1, 0)}",
            "INVALID_CORRECT_ANSWER",
        ))
    elif len(set(answer)) != len(answer):
        errors.append(_error("correct_answer", "Correct options are listed more than once", "DUPLICATE_CORRECT_ANSWER"))
    elif option_count and len(answer) == option_count:
        warnings.append(_warning(
            "correct_answer", "Every option is marked correct", "ALL_OPTIONS_CORRECT",
            "Consider adding at least one distractor",
        ))
    return errors, warnings


def _validate_true_false(draft: QuestionDraft) -> Issues:
    answer = draft.correct_answer
    if answer is None:
        return [_error("correct_answer", "True/false questions need a correct answer", "CORRECT_ANSWER_REQUIRED")], []
    # bool, or its stored form 0/1; strings like "true" or other ints are rejected
    if isinstance(answer, bool) or (_is_index(answer) and answer in (0, 1)):
        return [], []
    return [_error(
        "correct_answer", "Correct answer must be exactly true or false", "INVALID_TRUE_FALSE_ANSWER",
    )], []


def _validate_fill_blank(draft: QuestionDraft) -> Issues:
    errors: List[ValidationIssue] = []
    warnings: List[ValidationIssue] = []
    answer = draft.correct_answer

    if isinstance(answer, list):
        if not answer or any(_is_blank(a) for a in answer):
            errors.append(_error(
                "correct_answer", "Every accepted answer must be non-empty text", "FILL_BLANK_ANSWER_REQUIRED",
            ))
        elif any("\n" in a for a in answer):
            errors.append(_error(
                "correct_answer", "Accepted answers must be single-line text", "MULTILINE_BLANK_ANSWER",
            ))
    elif _is_blank(answer):
        errors.append(_error("correct_answer", "Fill-in-the-blank questions need an answer", "FILL_BLANK_ANSWER_REQUIRED"))

    if isinstance(draft.prompt, str) and "_" not in draft.prompt:
        warnings.append(_warning(
            "prompt", "Prompt has no blank marker", "NO_BLANK_MARKER",
            "Mark the blank with ___ so students know where the answer goes",
        ))
    return errors, warnings


def _validate_essay(draft: QuestionDraft) -> Issues:
    errors: List[ValidationIssue] = []
    warnings: List[ValidationIssue] = []

    if _is_blank(draft.correct_answer):
        warnings.append(_warning(
            "correct_answer", "No reference answer provided", "ESSAY_ANSWER_MISSING",
            "Essays are graded manually; a reference answer helps reviewers",
        ))

    min_words, max_words = draft.min_words, draft.max_words
    if (min_words is not None and min_words < 0) or (max_words is not None and max_words < 0):
        errors.append(_error("min_words", "Word limits cannot be negative", "INVALID_WORD_LIMITS"))
    elif min_words is not None and max_words is not None and min_words > max_words:
        errors.append(_error("min_words", "Minimum word count exceeds maximum", "INVALID_WORD_LIMITS"))
    return errors, warnings


def _validate_item_list(field: str, raw: Optional[List[Any]], minimum: int, maximum: int, label: str) -> Tuple[Optional[list], Issues]:
    errors: List[ValidationIssue] = []
    warnings: List[ValidationIssue] = []

    items = coerce_items(raw if raw is not None else [])
    if items is None:
        errors.append(_error(field, f"{label} must be a list of items", "INVALID_ITEMS"))
        return None, (errors, warnings)
    if len(items) < minimum:
        errors.append(_error(field, f"At least {minimum} {label.lower()} are required", "INSUFFICIENT_ITEMS"))
    if len(items) > maximum:
        errors.append(_error(field, f"Maximum {maximum} {label.lower()} allowed", "TOO_MANY_ITEMS"))
    if any(not i.text.strip() for i in items):
        errors.append(_error(field, f"All {label.lower()} must have text", "EMPTY_ITEMS"))

    keys = [item_key(i.id) for i in items]
    if len(set(keys)) != len(keys):
        errors.append(_error(field, f"{label} ids must be unique", "DUPLICATE_ITEM_IDS"))
    if any(len(i.text) > LONG_ITEM_LENGTH for i in items):
        warnings.append(_warning(
            field, "Some items are very long", "LONG_ITEMS", "Shorter items are easier to arrange",
        ))
    return items, (errors, warnings)


def _validate_matching(draft: QuestionDraft) -> Issues:
    left, (errors, warnings) = _validate_item_list("left", draft.left, 2, MAX_MATCHING_PAIRS, "Left items")
    right, (right_errors, right_warnings) = _validate_item_list("right", draft.right, 2, MAX_MATCHING_PAIRS, "Right items")
    errors += right_errors
    warnings += right_warnings

    answer = draft.correct_answer
    empty = answer is None or (isinstance(answer, (list, Mapping)) and len(answer) == 0)
    if empty:
        errors.append(_error(
            "correct_answer", "Matching questions must define the correct pairs", "MATCHING_ANSWER_REQUIRED",
        ))
        return errors, warnings

    pairs = coerce_match_pairs(answer)
    if pairs is None:
        errors.append(_error("correct_answer", "Correct pairs have an invalid shape", "INVALID_MATCHING_PAIR"))
        return errors, warnings

    if left is not None and right is not None:
        left_keys = {item_key(i.id) for i in left}
        right_keys = {item_key(i.id) for i in right}
        for pair in pairs:
            if item_key(pair.left_id) not in left_keys or item_key(pair.right_id) not in right_keys:
                errors.append(_error(
                    "correct_answer",
                    f"Pair {pair.left_id} -> {pair.right_id} references an unknown item",
                    "INVALID_MATCHING_PAIR",
                ))
        if len({item_key(p.left_id) for p in pairs}) < len(left_keys):
            warnings.append(_warning(
                "correct_answer", "Some left items have no correct match", "INCOMPLETE_MATCHING",
                "Unmatched items act as distractors only on the right column",
            ))

    paired_lefts = [item_key(p.left_id) for p in pairs]
    if len(set(paired_lefts)) != len(paired_lefts):
        errors.append(_error("correct_answer", "A left item is matched more than once", "DUPLICATE_MATCHING_PAIR"))
    return errors, warnings


def _validate_ordering(draft: QuestionDraft) -> Issues:
    # Older authoring screens sent ordering items as plain ``options``
    raw = draft.items if draft.items is not None else draft.options
    items, (errors, warnings) = _validate_item_list("items", raw, 2, MAX_ORDERING_ITEMS, "Items")
    answer = draft.correct_answer

    if not isinstance(answer, list) or not answer:
        errors.append(_error(
            "correct_answer", "Ordering questions must define the correct sequence", "ORDERING_ANSWER_REQUIRED",
        ))
        return errors, warnings

    if items is None:
        return errors, warnings

    if len(answer) != len(items):
        errors.append(_error(
            "correct_answer",
            f"Correct sequence has {len(answer)} entries but there are {len(items)} items",
            "SEQUENCE_LENGTH_MISMATCH",
        ))

    known = {item_key(i.id) for i in items}
    sequence = [item_key(a) for a in answer]
    unknown = [s for s in sequence if s not in known]
    if unknown:
        errors.append(_error(
            "correct_answer",
            f"Correct sequence contains unknown items: {', '.join(unknown)}",
            "INVALID_SEQUENCE_ITEMS",
        ))
    duplicates = sorted(k for k, n in Counter(sequence).items() if n > 1)
    if duplicates:
        errors.append(_error(
            "correct_answer",
            f"Duplicate items in correct sequence: {', '.join(duplicates)}",
            "DUPLICATE_SEQUENCE_ITEMS",
        ))
    return errors, warnings


_TYPE_VALIDATORS: Dict[QuestionType, Callable[[QuestionDraft], Issues]] = {
    QuestionType.SINGLE_CHOICE: _validate_single_choice,
    QuestionType.MULTIPLE_CHOICE: _validate_multiple_choice,
    QuestionType.TRUE_FALSE: _validate_true_false,
    QuestionType.FILL_BLANK: _validate_fill_blank,
    QuestionType.ESSAY: _validate_essay,
    QuestionType.MATCHING: _validate_matching,
    QuestionType.ORDERING: _validate_ordering,
}
ensure_exhaustive(_TYPE_VALIDATORS, "authoring validator")


# -------------------------------------------------------------------
# Entry points
# -------------------------------------------------------------------

def _as_draft(question: Union[QuestionDraft, Mapping[str, Any]]) -> Tuple[Optional[QuestionDraft], List[ValidationIssue]]:
    """Parsed draft, or None plus one INVALID_FIELD error per mistyped field."""
    if isinstance(question, QuestionDraft):
        return question, []
    try:
        return QuestionDraft.model_validate(question), []
    except ValidationError as e:
        issues = [
            _error(".".join(str(part) for part in err["loc"]) or "question", err["msg"], "INVALID_FIELD")
            for err in e.errors()
        ]
        return None, issues


def validate_question(question: Union[QuestionDraft, Mapping[str, Any]]) -> ValidationResult:
    """
    Check a draft question for structural completeness.

    Always required: non-empty prompt and a known type. Type-specific rules
    follow in ``_TYPE_VALIDATORS``.
    """
    draft, field_errors = _as_draft(question)
    if draft is None:
        return ValidationResult(is_valid=False, errors=field_errors)

    errors: List[ValidationIssue] = []
    warnings: List[ValidationIssue] = []

    if _is_blank(draft.prompt):
        errors.append(_error("prompt", "Question text is required", "PROMPT_REQUIRED"))
    elif len(draft.prompt) > MAX_PROMPT_LENGTH:
        warnings.append(_warning(
            "prompt", "Question text is very long", "LONG_PROMPT", "Consider splitting the question",
        ))

    if draft.points is None or draft.points < 1:
        errors.append(_error("points", "Points must be a positive integer", "INVALID_POINTS"))

    if draft.difficulty is not None and draft.difficulty not in {d.value for d in Difficulty}:
        errors.append(_error("difficulty", f"Unknown difficulty: {draft.difficulty}", "INVALID_DIFFICULTY"))

    if not draft.type:
        errors.append(_error("type", "Question type is required", "TYPE_REQUIRED"))
        return ValidationResult(is_valid=False, errors=errors, warnings=warnings)

    try:
        kind = QuestionType(draft.type)
    except ValueError:
        errors.append(_error("type", f"Unsupported question type: {draft.type}", "UNSUPPORTED_TYPE"))
        return ValidationResult(is_valid=False, errors=errors, warnings=warnings)

    type_errors, type_warnings = _TYPE_VALIDATORS[kind](draft)
    errors += type_errors
    warnings += type_warnings

    return ValidationResult(is_valid=not errors, errors=errors, warnings=warnings)


def validate_quiz(
    questions: Sequence[Union[QuestionDraft, Mapping[str, Any]]],
    time_limit_seconds: Optional[int] = None,
    min_question_count: int = settings.MIN_QUESTION_COUNT,
    min_seconds_per_question: int = settings.MIN_SECONDS_PER_QUESTION,
) -> ValidationResult:
    """
    Validate every question and add quiz-level warnings.

    Per-question issues get ``question_<n>.`` field prefixes (1-based) and
    ``question_index`` (0-based). Quiz-level checks only ever warn.
    """
    errors: List[ValidationIssue] = []
    warnings: List[ValidationIssue] = []
    drafts: List[QuestionDraft] = []

    for index, question in enumerate(questions):
        draft, field_errors = _as_draft(question)
        if draft is None:
            result = ValidationResult(is_valid=False, errors=field_errors)
        else:
            drafts.append(draft)
            result = validate_question(draft)
        for issue in result.errors:
            errors.append(issue.model_copy(update={"field": f"question_{index + 1}.{issue.field}", "question_index": index}))
        for issue in result.warnings:
            warnings.append(issue.model_copy(update={"field": f"question_{index + 1}.{issue.field}", "question_index": index}))

    count = len(questions)
    if count == 0:
        warnings.append(_warning("questions", "Quiz has no questions", "NO_QUESTIONS", "Add at least one question"))
    elif count < min_question_count:
        warnings.append(_warning(
            "questions", f"Quiz has only {count} question(s)", "LOW_QUESTION_COUNT",
            f"Quizzes usually have at least {min_question_count} questions",
        ))

    if time_limit_seconds is not None and count > 0:
        if time_limit_seconds / count < min_seconds_per_question:
            warnings.append(_warning(
                "time_limit_seconds",
                f"{time_limit_seconds}s for {count} questions leaves under {min_seconds_per_question}s per question",
                "TIGHT_TIME_LIMIT",
                "Consider a longer time limit",
            ))

    prompts = [d.prompt.strip().lower() for d in drafts if isinstance(d.prompt, str) and d.prompt.strip()]
    if len(set(prompts)) != len(prompts):
        warnings.append(_warning(
            "questions", "Some questions appear to be duplicates", "DUPLICATE_QUESTIONS",
            "Review questions for potential duplicates",
        ))

    types = {d.type for d in drafts if d.type}
    if len(types) == 1 and count > 5:
        warnings.append(_warning(
            "questions", "Quiz uses only one question type", "SINGLE_QUESTION_TYPE",
            "Consider adding variety with different question types",
        ))

    total_points = sum(d.points or 0 for d in drafts)
    if total_points > 100:
        warnings.append(_warning(
            "questions", "Total quiz points exceed 100", "HIGH_TOTAL_POINTS",
            "Consider if this point total is appropriate for your grading scale",
        ))

    if count > 50:
        warnings.append(_warning(
            "questions", "Quiz is quite long", "LONG_QUIZ",
            "Consider breaking into multiple shorter quizzes",
        ))

    return ValidationResult(is_valid=not errors, errors=errors, warnings=warnings)
