# quizengine/schemas/question.py

"""
Question type model.

Seven question kinds form a closed set. Each kind is its own frozen pydantic
model and ``Question`` is the discriminated union over ``type``. Consumers
(codec, validator, grader) dispatch through tables keyed on ``QuestionType``
and call ``ensure_exhaustive`` at import time, so a new kind without a
handler fails loudly instead of silently defaulting.
"""

from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError


class QuestionType(str, Enum):
    """Supported question types."""
    MULTIPLE_CHOICE = "multiple_choice"
    SINGLE_CHOICE = "single_choice"
    TRUE_FALSE = "true_false"
    FILL_BLANK = "fill_blank"
    ESSAY = "essay"
    MATCHING = "matching"
    ORDERING = "ordering"


class Difficulty(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


CHOICE_TYPES = frozenset({QuestionType.MULTIPLE_CHOICE, QuestionType.SINGLE_CHOICE})

ItemId = Union[int, str]


def ensure_exhaustive(table: Mapping[QuestionType, Any], name: str) -> None:
    """Raise if ``table`` lacks an entry for any member of ``QuestionType``."""
    missing = [t.value for t in QuestionType if t not in table]
    if missing:
        raise TypeError(f"{name} has no handler for question type(s): {', '.join(missing)}")


def item_key(item_id: ItemId) -> str:
    """Item ids arrive as ints or strings depending on the source; compare by text."""
    return str(item_id)


# -------------------------------------------------------------------
# Shared building blocks
# -------------------------------------------------------------------

class Item(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: ItemId
    text: str


class MatchPair(BaseModel):
    model_config = ConfigDict(frozen=True)

    left_id: ItemId
    right_id: ItemId


class QuestionBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    prompt: str
    points: int = Field(default=1, gt=0)
    difficulty: Difficulty = Difficulty.MEDIUM
    explanation: Optional[str] = None
    hint: Optional[str] = None
    order_index: int = 0

    @property
    def kind(self) -> QuestionType:
        return QuestionType(self.type)

    def public_dict(self) -> Dict[str, Any]:
        """Fields safe to show a student before grading."""
        return self.model_dump(mode="json", exclude={"correct_answer", "explanation"})


# -------------------------------------------------------------------
# Variants
# -------------------------------------------------------------------

class SingleChoiceQuestion(QuestionBase):
    type: Literal["single_choice"] = "single_choice"
    options: List[str] = Field(min_length=2)
    shuffle: bool = False
    correct_answer: int = 0


class MultipleChoiceQuestion(QuestionBase):
    type: Literal["multiple_choice"] = "multiple_choice"
    options: List[str] = Field(min_length=2)
    shuffle: bool = False
    correct_answer: List[int] = Field(default_factory=list)


class TrueFalseQuestion(QuestionBase):
    type: Literal["true_false"] = "true_false"
    correct_answer: bool = False


class FillBlankQuestion(QuestionBase):
    type: Literal["fill_blank"] = "fill_blank"
    case_sensitive: bool = False
    correct_answer: Union[str, List[str]] = ""

    @property
    def accepted_answers(self) -> List[str]:
        if isinstance(self.correct_answer, str):
            return [self.correct_answer]
        return list(self.correct_answer)


class EssayQuestion(QuestionBase):
    type: Literal["essay"] = "essay"
    min_words: Optional[int] = Field(default=None, ge=0)
    max_words: Optional[int] = Field(default=None, ge=0)
    correct_answer: str = ""


class MatchingQuestion(QuestionBase):
    type: Literal["matching"] = "matching"
    left: List[Item] = Field(min_length=2)
    right: List[Item] = Field(min_length=2)
    partial_credit: bool = False
    correct_answer: List[MatchPair] = Field(default_factory=list)


class OrderingQuestion(QuestionBase):
    type: Literal["ordering"] = "ordering"
    items: List[Item] = Field(min_length=2)
    shuffle: bool = True
    partial_credit: bool = False
    correct_answer: List[ItemId] = Field(default_factory=list)


Question = Annotated[
    Union[
        SingleChoiceQuestion,
        MultipleChoiceQuestion,
        TrueFalseQuestion,
        FillBlankQuestion,
        EssayQuestion,
        MatchingQuestion,
        OrderingQuestion,
    ],
    Field(discriminator="type"),
]

QUESTION_CLASSES: Dict[QuestionType, type] = {
    QuestionType.SINGLE_CHOICE: SingleChoiceQuestion,
    QuestionType.MULTIPLE_CHOICE: MultipleChoiceQuestion,
    QuestionType.TRUE_FALSE: TrueFalseQuestion,
    QuestionType.FILL_BLANK: FillBlankQuestion,
    QuestionType.ESSAY: EssayQuestion,
    QuestionType.MATCHING: MatchingQuestion,
    QuestionType.ORDERING: OrderingQuestion,
}
ensure_exhaustive(QUESTION_CLASSES, "QUESTION_CLASSES")

question_adapter: TypeAdapter = TypeAdapter(Question)
question_list_adapter: TypeAdapter = TypeAdapter(List[Question])


def parse_question(data: Mapping[str, Any]) -> Question:
    """Validate a mapping into the matching question variant."""
    return question_adapter.validate_python(data)


# -------------------------------------------------------------------
# Authoring input
# -------------------------------------------------------------------

def coerce_items(raw: Optional[List[Any]]) -> Optional[List[Item]]:
    """
    Accept items as ``{"id", "text"}`` mappings, ``Item`` instances or bare
    strings (ids become list positions). Returns None if any entry is unusable.
    """
    if raw is None:
        return None
    items: List[Item] = []
    for index, entry in enumerate(raw):
        if isinstance(entry, Item):
            items.append(entry)
        elif isinstance(entry, str):
            items.append(Item(id=index, text=entry))
        elif isinstance(entry, Mapping) and "id" in entry:
            try:
                items.append(Item(id=entry["id"], text=str(entry.get("text") or "")))
            except ValidationError:
                return None
        else:
            return None
    return items


def coerce_match_pairs(raw: Any) -> Optional[List[MatchPair]]:
    """
    Accept matching answers as a list of pair mappings (``left_id``/``right_id``
    or ``leftId``/``rightId``), ``MatchPair`` instances, or a ``{left: right}``
    mapping. Returns None if the shape is unusable.
    """
    try:
        return _build_match_pairs(raw)
    except ValidationError:
        return None


def _build_match_pairs(raw: Any) -> Optional[List[MatchPair]]:
    if isinstance(raw, Mapping):
        return [MatchPair(left_id=left, right_id=right) for left, right in raw.items()]
    if not isinstance(raw, list):
        return None
    pairs: List[MatchPair] = []
    for entry in raw:
        if isinstance(entry, MatchPair):
            pairs.append(entry)
            continue
        if not isinstance(entry, Mapping):
            return None
        left = entry.get("left_id", entry.get("leftId"))
        right = entry.get("right_id", entry.get("rightId"))
        if left is None or right is None:
            return None
        pairs.append(MatchPair(left_id=left, right_id=right))
    return pairs


class QuestionDraft(BaseModel):
    """
    Loosely-typed question as submitted by an author.

    Every field is optional so that the authoring validator can report what is
    missing rather than pydantic rejecting the payload outright.
    """
    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    type: Optional[str] = None
    prompt: Optional[str] = None
    points: Optional[int] = 1
    difficulty: Optional[str] = Difficulty.MEDIUM.value

    options: Optional[List[Any]] = None
    left: Optional[List[Any]] = None
    right: Optional[List[Any]] = None
    items: Optional[List[Any]] = None

    shuffle: Optional[bool] = None
    case_sensitive: bool = False
    partial_credit: bool = False
    min_words: Optional[int] = None
    max_words: Optional[int] = None

    correct_answer: Any = None

    explanation: Optional[str] = None
    hint: Optional[str] = None
    order_index: int = 0

    def ordering_items(self) -> Optional[List[Item]]:
        # Older authoring screens sent ordering items as plain ``options``
        return coerce_items(self.items if self.items is not None else self.options)

    def to_question(self, question_id: Optional[str] = None) -> Question:
        """
        Build the strict variant. Call only after the draft validated cleanly;
        pydantic errors propagate otherwise.
        """
        data: Dict[str, Any] = {
            "id": question_id or self.id,
            "type": self.type,
            "prompt": (self.prompt or "").strip(),
            "points": self.points if self.points is not None else 1,
            "difficulty": self.difficulty or Difficulty.MEDIUM.value,
            "explanation": self.explanation,
            "hint": self.hint,
            "order_index": self.order_index,
        }

        kind = QuestionType(self.type)
        answer = self.correct_answer

        if kind in CHOICE_TYPES:
            data["options"] = list(self.options or [])
            if self.shuffle is not None:
                data["shuffle"] = self.shuffle
            if kind == QuestionType.MULTIPLE_CHOICE and isinstance(answer, int) and not isinstance(answer, bool):
                answer = [answer]
        elif kind == QuestionType.TRUE_FALSE:
            answer = bool(answer)
        elif kind == QuestionType.FILL_BLANK:
            data["case_sensitive"] = self.case_sensitive
            # Stored answers are trimmed, the same way they read back from storage
            if isinstance(answer, list):
                answer = [a.strip() if isinstance(a, str) else a for a in answer]
                if len(answer) == 1:
                    answer = answer[0]
            elif isinstance(answer, str):
                answer = answer.strip()
        elif kind == QuestionType.ESSAY:
            data["min_words"] = self.min_words
            data["max_words"] = self.max_words
            answer = answer or ""
        elif kind == QuestionType.MATCHING:
            data["left"] = coerce_items(self.left)
            data["right"] = coerce_items(self.right)
            data["partial_credit"] = self.partial_credit
            answer = coerce_match_pairs(answer)
        elif kind == QuestionType.ORDERING:
            data["items"] = self.ordering_items()
            data["partial_credit"] = self.partial_credit
            if self.shuffle is not None:
                data["shuffle"] = self.shuffle

        data["correct_answer"] = answer
        return parse_question(data)
