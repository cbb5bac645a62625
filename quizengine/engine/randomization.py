# quizengine/engine/randomization.py

"""
Per-attempt display order for shuffled questions.

The order is seeded from (attempt_id, question_id): a reload of the same
attempt shows the same order, a retake gets a new one. Answers are always
recorded against the original option indices and item ids.
"""

import hashlib
import random
from typing import Any, Dict, List, Optional

from quizengine.schemas.question import (
    CHOICE_TYPES,
    Item,
    OrderingQuestion,
    Question,
    QuestionType,
    item_key,
)


def _rng(attempt_id: str, question_id: str) -> random.Random:
    digest = hashlib.sha256(f"{attempt_id}:{question_id}".encode("utf-8")).digest()
    return random.Random(int.from_bytes(digest[:8], "big"))


def shuffled_choices(question: Question, attempt_id: Optional[str]) -> List[int]:
    """Original option indices in display order."""
    order = list(range(len(question.options)))
    if not question.shuffle or not attempt_id:
        return order
    _rng(attempt_id, question.id).shuffle(order)
    return order


def shuffled_items(question: OrderingQuestion, attempt_id: Optional[str]) -> List[Item]:
    items = list(question.items)
    if not question.shuffle or not attempt_id or len(items) < 2:
        return items

    _rng(attempt_id, question.id).shuffle(items)

    # Never present the solved sequence
    solution = [item_key(i) for i in question.correct_answer]
    if [item_key(i.id) for i in items] == solution:
        items = items[1:] + items[:1]
    return items


def question_view(question: Question, attempt_id: Optional[str]) -> Dict[str, Any]:
    """Student-facing dict: no correct answer, shuffled order applied."""
    view = question.public_dict()
    if question.kind in CHOICE_TYPES:
        view["display_order"] = shuffled_choices(question, attempt_id)
    elif question.kind == QuestionType.ORDERING:
        view["items"] = [item.model_dump(mode="json") for item in shuffled_items(question, attempt_id)]
    return view
