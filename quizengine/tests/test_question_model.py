"""Question type model and authoring drafts"""
import pytest
from pydantic import ValidationError

from quizengine.engine.codec import decode, encode_question
from quizengine.schemas.question import (
    QUESTION_CLASSES,
    MatchPair,
    QuestionDraft,
    QuestionType,
    ensure_exhaustive,
    parse_question,
)


class TestQuestionUnion:

    def test_discriminator_picks_variant(self, questions):
        assert {q.kind for q in questions} == set(QuestionType)
        assert type(questions[0]).__name__ == "SingleChoiceQuestion"

    def test_questions_are_immutable(self, single_choice):
        with pytest.raises(ValidationError):
            single_choice.points = 10

    def test_points_must_be_positive(self):
        with pytest.raises(ValidationError):
            parse_question({"id": "x", "type": "true_false", "prompt": "?", "points": 0})

    def test_unknown_type_is_rejected(self):
        with pytest.raises(ValidationError):
            parse_question({"id": "x", "type": "hotspot", "prompt": "?"})

    def test_public_dict_hides_answer_and_explanation(self, single_choice):
        view = single_choice.public_dict()
        assert "correct_answer" not in view
        assert "explanation" not in view
        assert view["options"] == ["London", "Berlin", "Paris", "Madrid"]

    def test_fill_blank_accepted_answers(self):
        q = parse_question({"id": "x", "type": "fill_blank", "prompt": "___", "correct_answer": ["colour", "color"]})
        assert q.accepted_answers == ["colour", "color"]


class TestExhaustiveness:

    def test_every_type_has_a_class(self):
        assert set(QUESTION_CLASSES) == set(QuestionType)

    def test_missing_member_raises(self):
        partial = {t: object() for t in QuestionType if t != QuestionType.ESSAY}
        with pytest.raises(TypeError) as exc:
            ensure_exhaustive(partial, "test table")
        assert "essay" in str(exc.value)

    def test_dispatch_tables_cover_every_type(self):
        from quizengine.engine import codec, scorer, validator

        for table in (codec._DECODERS, codec._ENCODERS, codec._NORMALIZERS, validator._TYPE_VALIDATORS, scorer._RULES):
            assert set(table) == set(QuestionType)


class TestQuestionDraft:

    def test_draft_accepts_incomplete_input(self):
        draft = QuestionDraft.model_validate({"type": "single_choice"})
        assert draft.prompt is None
        assert draft.correct_answer is None

    def test_multiple_choice_single_index_is_wrapped(self):
        draft = QuestionDraft(type="multiple_choice", prompt="Pick", options=["a", "b"], correct_answer=1)
        assert draft.to_question("q1").correct_answer == [1]

    def test_true_false_stored_form_becomes_bool(self):
        draft = QuestionDraft(type="true_false", prompt="Sky is blue", correct_answer=1)
        assert draft.to_question("q1").correct_answer is True

    def test_single_item_fill_blank_list_collapses(self):
        draft = QuestionDraft(type="fill_blank", prompt="___", correct_answer=["brown"])
        assert draft.to_question("q1").correct_answer == "brown"

    def test_fill_blank_answers_are_trimmed(self):
        draft = QuestionDraft(type="fill_blank", prompt="The ___ fox", correct_answer=[" colour ", "color"])
        question = draft.to_question("q1")
        assert question.correct_answer == ["colour", "color"]
        assert decode("fill_blank", encode_question(question)) == question.correct_answer

    def test_fill_blank_single_answer_is_trimmed(self):
        draft = QuestionDraft(type="fill_blank", prompt="The ___ fox", correct_answer=" brown ")
        assert draft.to_question("q1").correct_answer == "brown"

    def test_matching_accepts_camel_case_pairs(self):
        draft = QuestionDraft(
            type="matching",
            prompt="Match",
            left=[{"id": 1, "text": "A"}, {"id": 2, "text": "B"}],
            right=[{"id": 1, "text": "x"}, {"id": 2, "text": "y"}],
            correct_answer=[{"leftId": 1, "rightId": 2}, {"leftId": 2, "rightId": 1}],
        )
        question = draft.to_question("q1")
        assert question.correct_answer == [MatchPair(left_id=1, right_id=2), MatchPair(left_id=2, right_id=1)]

    def test_ordering_items_fall_back_to_options(self):
        draft = QuestionDraft(type="ordering", prompt="Order", options=["first", "second"], correct_answer=[0, 1])
        question = draft.to_question("q1")
        assert [i.text for i in question.items] == ["first", "second"]
        assert question.shuffle is True
