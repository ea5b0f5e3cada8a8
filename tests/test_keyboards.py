from recallbot.keyboards import (
    fits_callback,
    kb_answers,
    kb_clean_confirm,
    kb_question_list,
    kb_study_keys,
    kb_vote,
    kb_without_button,
)
from recallbot.models import Question


def _data(markup) -> list[list[str]]:
    return [[button.callback_data for button in row] for row in markup.inline_keyboard]


def test_answer_keyboard_carries_correct_index():
    markup = kb_answers(17, 2, 6)
    assert _data(markup) == [
        ["q:17:2:0", "q:17:2:1", "q:17:2:2", "q:17:2:3"],
        ["q:17:2:4", "q:17:2:5"],
    ]
    assert [b.text for b in markup.inline_keyboard[0]] == ["A", "B", "C", "D"]


def test_without_button_drops_empty_rows():
    markup = kb_answers(3, 0, 5)
    trimmed = kb_without_button(markup, "q:3:0:4")
    assert _data(trimmed) == [["q:3:0:0", "q:3:0:1", "q:3:0:2", "q:3:0:3"]]
    assert kb_without_button(None, "q:3:0:0").inline_keyboard == []


def test_vote_keyboard_shows_counts():
    markup = kb_vote(9, 4, 1)
    assert _data(markup) == [["vote:9:up", "vote:9:down"]]
    assert "4" in markup.inline_keyboard[0][0].text
    assert "1" in markup.inline_keyboard[0][1].text


def test_study_keys_over_limit_are_skipped():
    long_key = "Теория" * 10
    assert not fits_callback(f"study_select:{long_key}")
    markup = kb_study_keys(["Physics", long_key, "Biology"])
    assert _data(markup) == [["study_select:Physics"], ["study_select:Biology"]]
    assert kb_study_keys([long_key]) is None
    assert kb_study_keys([]) is None


def test_question_list_navigation():
    questions = [Question(id=i) for i in range(1, 6)]
    markup = kb_question_list(questions, 2, 3, "en")
    rows = _data(markup)
    assert rows[0] == ["del:1:2", "del:2:2", "del:3:2", "del:4:2"]
    assert rows[1] == ["del:5:2"]
    assert rows[2] == ["page:1", "page:3"]

    last = _data(kb_question_list(questions[:1], 3, 3, "en"))
    assert last == [["del:1:3"], ["page:2"]]


def test_clean_confirm_falls_back_for_long_keys():
    assert _data(kb_clean_confirm("Physics", "en")) == [["clean:confirm:Physics", "clean:cancel"]]
    long_key = "x" * 70
    assert _data(kb_clean_confirm(long_key, "en")) == [["clean:confirm", "clean:cancel"]]
