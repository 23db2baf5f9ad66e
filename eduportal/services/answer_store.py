from typing import Dict, Iterator, List, Optional

from eduportal.schemas.answer import AnswerResponse


class AnswerStore:
    """In-progress responses keyed by question id. Content is not validated."""

    def __init__(self):
        self._answers: Dict[str, AnswerResponse] = {}

    def set_answer(self, question_id: str, response: AnswerResponse) -> None:
        self._answers[question_id] = response

    def get_answer(self, question_id: str) -> Optional[AnswerResponse]:
        return self._answers.get(question_id)

    def answered_question_ids(self) -> List[str]:
        return list(self._answers)

    def clear(self) -> None:
        self._answers.clear()

    def __len__(self) -> int:
        return len(self._answers)

    def __contains__(self, question_id: object) -> bool:
        return question_id in self._answers

    def __iter__(self) -> Iterator[str]:
        return iter(self._answers)
