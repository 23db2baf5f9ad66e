from eduportal.schemas.answer import FreeTextResponse, MultipleChoiceResponse
from eduportal.services.answer_store import AnswerStore


def test_set_get_and_overwrite():
    store = AnswerStore()
    assert store.get_answer("q1") is None

    store.set_answer("q1", MultipleChoiceResponse(selected_option_id="a"))
    store.set_answer("q1", MultipleChoiceResponse(selected_option_id="b"))
    store.set_answer("q2", FreeTextResponse(text=""))

    assert store.get_answer("q1").selected_option_id == "b"
    # An empty string is a stored answer, not a missing one
    assert store.get_answer("q2").text == ""
    assert "q2" in store
    assert len(store) == 2
    assert store.answered_question_ids() == ["q1", "q2"]


def test_clear():
    store = AnswerStore()
    store.set_answer("q1", FreeTextResponse(text="energy"))
    store.clear()
    assert len(store) == 0
    assert "q1" not in store
