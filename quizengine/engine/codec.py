# quizengine/engine/codec.py

"""
Answer codec.

A persisted question keeps its correct answer in one of three slots,
chosen by question type:

    fill_blank, essay                       -> text slot
    multiple_choice, matching, ordering     -> structured slot (JSON text)
    single_choice, true_false               -> numeric slot

This module is the only code that reads or writes those slots. ``decode``
never raises: a malformed stored answer degrades to an empty/zero value and
a warning is logged, so a bad row can never crash a student's attempt.

It also owns the shape check for student answers (``normalize_answer``).
"""

import json
import logging
from typing import Any, Callable, Dict, List, Mapping, Optional

from pydantic import BaseModel

from quizengine.schemas.attempt import SafeAnswerValue
from quizengine.schemas.question import (
    ItemId,
    MatchPair,
    Question,
    QuestionType,
    coerce_match_pairs,
    ensure_exhaustive,
    item_key,
)

logger = logging.getLogger(__name__)

# Several accepted fill-in answers are stored one per line in the text slot
FILL_BLANK_SEPARATOR = "\n"


class AnswerSlots(BaseModel):
    """The three storage slots of a persisted question's correct answer."""
    numeric: Optional[int] = None
    text: Optional[str] = None
    structured: Optional[str] = None


# -------------------------------------------------------------------
# Decoding (slots -> canonical)
# -------------------------------------------------------------------

def _parse_structured(slots: AnswerSlots, question_type: QuestionType) -> Any:
    raw = slots.structured
    if raw is None or raw == "":
        return None
    try:
        return json.loads(raw)
    except (TypeError, ValueError) as e:
        logger.warning(f"Malformed structured answer for {question_type.value} question: {e}")
        return None


def _decode_single_choice(slots: AnswerSlots) -> int:
    return int(slots.numeric or 0)


def _decode_true_false(slots: AnswerSlots) -> bool:
    value = slots.numeric or 0
    if value not in (0, 1):
        logger.warning(f"True/false answer stored as {value}, expected 0 or 1; reading as false")
        return False
    return value == 1


def _decode_fill_blank(slots: AnswerSlots):
    text = slots.text or ""
    if FILL_BLANK_SEPARATOR not in text:
        return text
    accepted = [line.strip() for line in text.split(FILL_BLANK_SEPARATOR) if line.strip()]
    if len(accepted) == 1:
        return accepted[0]
    return accepted


def _decode_essay(slots: AnswerSlots) -> str:
    return slots.text or ""


def _decode_multiple_choice(slots: AnswerSlots) -> List[int]:
    parsed = _parse_structured(slots, QuestionType.MULTIPLE_CHOICE)
    # Legacy rows stored a single index
    if isinstance(parsed, int) and not isinstance(parsed, bool):
        return [parsed]
    if not isinstance(parsed, list) or not all(
        isinstance(v, int) and not isinstance(v, bool) for v in parsed
    ):
        if parsed is not None:
            logger.warning("Multiple choice answer is not a list of indices; using []")
        return []
    return parsed


def _decode_matching(slots: AnswerSlots) -> List[MatchPair]:
    parsed = _parse_structured(slots, QuestionType.MATCHING)
    if parsed is None:
        return []
    pairs = coerce_match_pairs(parsed)
    if pairs is None:
        logger.warning("Matching answer has an unexpected shape; using []")
        return []
    return pairs


def _decode_ordering(slots: AnswerSlots) -> List[ItemId]:
    parsed = _parse_structured(slots, QuestionType.ORDERING)
    if not isinstance(parsed, list) or not all(
        isinstance(v, (int, str)) and not isinstance(v, bool) for v in parsed
    ):
        if parsed is not None:
            logger.warning("Ordering answer is not a list of item ids; using []")
        return []
    return parsed


_DECODERS: Dict[QuestionType, Callable[[AnswerSlots], Any]] = {
    QuestionType.SINGLE_CHOICE: _decode_single_choice,
    QuestionType.TRUE_FALSE: _decode_true_false,
    QuestionType.FILL_BLANK: _decode_fill_blank,
    QuestionType.ESSAY: _decode_essay,
    QuestionType.MULTIPLE_CHOICE: _decode_multiple_choice,
    QuestionType.MATCHING: _decode_matching,
    QuestionType.ORDERING: _decode_ordering,
}
ensure_exhaustive(_DECODERS, "answer decoder")


def decode(question_type: str, slots: AnswerSlots) -> Any:
    """
    Read the canonical correct answer for ``question_type`` from ``slots``.

    Args:
        question_type: one of the ``QuestionType`` values
        slots: raw slot values as stored

    Returns:
        Canonical answer (int, bool, str, list of str, list of ints,
        list of MatchPair or list of item ids depending on the type).
    """
    return _DECODERS[QuestionType(question_type)](slots)


# -------------------------------------------------------------------
# Encoding (canonical -> slots)
# -------------------------------------------------------------------

def _encode_numeric(value: Any) -> AnswerSlots:
    return AnswerSlots(numeric=int(value))


def _encode_true_false(value: Any) -> AnswerSlots:
    return AnswerSlots(numeric=1 if value is True else 0)


def _encode_fill_blank(value: Any) -> AnswerSlots:
    if isinstance(value, list):
        return AnswerSlots(text=FILL_BLANK_SEPARATOR.join(str(v).strip() for v in value))
    return AnswerSlots(text=(value or "").strip())


def _encode_essay(value: Any) -> AnswerSlots:
    return AnswerSlots(text=value or "")


def _encode_structured(value: Any) -> AnswerSlots:
    return AnswerSlots(structured=json.dumps(list(value or [])))


def _encode_matching(value: Any) -> AnswerSlots:
    pairs = coerce_match_pairs(value) or []
    return AnswerSlots(structured=json.dumps([p.model_dump() for p in pairs]))


_ENCODERS: Dict[QuestionType, Callable[[Any], AnswerSlots]] = {
    QuestionType.SINGLE_CHOICE: _encode_numeric,
    QuestionType.TRUE_FALSE: _encode_true_false,
    QuestionType.FILL_BLANK: _encode_fill_blank,
    QuestionType.ESSAY: _encode_essay,
    QuestionType.MULTIPLE_CHOICE: _encode_structured,
    QuestionType.MATCHING: _encode_matching,
    QuestionType.ORDERING: _encode_structured,
}
ensure_exhaustive(_ENCODERS, "answer encoder")


def encode(question_type: str, canonical: Any) -> AnswerSlots:
    """Inverse of ``decode``; only the authoring path persists questions."""
    return _ENCODERS[QuestionType(question_type)](canonical)


def encode_question(question: Question) -> AnswerSlots:
    return encode(question.type, question.correct_answer)


# -------------------------------------------------------------------
# Shape check for student answers
# -------------------------------------------------------------------

def _is_index(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _normalize_single_choice(question, value):
    if _is_index(value) and 0 <= value < len(question.options):
        return value
    return None


def _normalize_multiple_choice(question, value):
    if _is_index(value):
        value = [value]
    if not isinstance(value, list) or not value:
        return None
    if not all(_is_index(v) and 0 <= v < len(question.options) for v in value):
        return None
    if len(set(value)) != len(value):
        return None
    return sorted(value)


def _normalize_true_false(question, value):
    return value if isinstance(value, bool) else None


def _normalize_text(question, value):
    return value if isinstance(value, str) else None


def _normalize_matching(question, value):
    if isinstance(value, list):
        pairs = coerce_match_pairs(value)
        if pairs is None:
            return None
        value = {item_key(p.left_id): item_key(p.right_id) for p in pairs}
    if not isinstance(value, Mapping) or not value:
        return None
    left_ids = {item_key(i.id) for i in question.left}
    right_ids = {item_key(i.id) for i in question.right}
    mapping = {item_key(k): item_key(v) for k, v in value.items()}
    if not set(mapping) <= left_ids or not set(mapping.values()) <= right_ids:
        return None
    return mapping


def _normalize_ordering(question, value):
    if not isinstance(value, list) or len(value) != len(question.items):
        return None
    ids_by_key = {item_key(i.id): i.id for i in question.items}
    keys = [item_key(v) for v in value if isinstance(v, (int, str)) and not isinstance(v, bool)]
    if len(keys) != len(value) or len(set(keys)) != len(keys):
        return None
    if not set(keys) <= set(ids_by_key):
        return None
    return [ids_by_key[k] for k in keys]


_NORMALIZERS: Dict[QuestionType, Callable[[Any, Any], Optional[SafeAnswerValue]]] = {
    QuestionType.SINGLE_CHOICE: _normalize_single_choice,
    QuestionType.MULTIPLE_CHOICE: _normalize_multiple_choice,
    QuestionType.TRUE_FALSE: _normalize_true_false,
    QuestionType.FILL_BLANK: _normalize_text,
    QuestionType.ESSAY: _normalize_text,
    QuestionType.MATCHING: _normalize_matching,
    QuestionType.ORDERING: _normalize_ordering,
}
ensure_exhaustive(_NORMALIZERS, "answer shape check")


def normalize_answer(question: Question, value: Any) -> Optional[SafeAnswerValue]:
    """
    Return ``value`` in the stored shape for ``question``, or None when it
    does not fit the question (wrong type, out-of-range index, unknown item).
    """
    if value is None:
        return None
    return _NORMALIZERS[question.kind](question, value)


def is_valid_answer(question: Question, value: Any) -> bool:
    return normalize_answer(question, value) is not None
