import threading

MIN_QUESTION_LENGTH = 3

ANSWER_PROMPT_TEMPLATE = "Answer this question briefly and directly:\n\nQuestion: {question}"


def extract_question(text: str) -> str | None:
    if "?" not in text:
        return None

    question_lines = [line for line in text.splitlines() if "?" in line]
    if not question_lines:
        return None

    last_line = question_lines[-1]
    question = last_line[: last_line.rindex("?") + 1].strip()
    question = _trim_to_last_sentence(question)

    if len(question) < MIN_QUESTION_LENGTH:
        return None
    return question


def _trim_to_last_sentence(question: str) -> str:
    body = question[:-1]
    for index in range(len(body) - 1, -1, -1):
        if body[index] in ".!?" and index + 1 < len(body) and body[index + 1].isspace():
            return question[index + 1 :].strip()
    return question


def normalize_question(question: str) -> str:
    return question.strip().casefold()


def build_answer_prompt(question: str) -> str:
    return ANSWER_PROMPT_TEMPLATE.format(question=question)


class AnsweredQuestions:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._seen: set[str] = set()

    def __len__(self) -> int:
        with self._lock:
            return len(self._seen)

    def __contains__(self, question: str) -> bool:
        with self._lock:
            return normalize_question(question) in self._seen

    def claim(self, question: str) -> bool:
        key = normalize_question(question)
        with self._lock:
            if key in self._seen:
                return False
            self._seen.add(key)
            return True

    def clear(self) -> None:
        with self._lock:
            self._seen.clear()
