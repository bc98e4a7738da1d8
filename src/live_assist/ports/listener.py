class SessionListener:
    def on_input_transcript(self, text: str) -> None:
        pass

    def on_turn_complete(self, text: str) -> None:
        pass

    def on_model_output(self, text: str) -> None:
        pass

    def on_session_closed(self, error: Exception | None) -> None:
        pass


class AnswerListener:
    def on_question_detected(self, question: str) -> None:
        pass

    def on_answer_chunk(self, question: str, chunk: str) -> None:
        pass

    def on_answer_complete(self, question: str) -> None:
        pass
