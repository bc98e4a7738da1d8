import sys
from datetime import datetime
from typing import TextIO

from live_assist.ports.listener import AnswerListener, SessionListener


class ConsoleListener(SessionListener, AnswerListener):
    """Prints the rolling transcript, detected questions and streamed answers."""

    def __init__(self, stream: TextIO | None = None, show_transcript: bool = True) -> None:
        self._stream = stream or sys.stdout
        self._show_transcript = show_transcript
        self._mid_line = False

    def on_input_transcript(self, text: str) -> None:
        if not self._show_transcript or not text:
            return
        self._write(text)
        self._mid_line = not text.endswith("\n")

    def on_turn_complete(self, text: str) -> None:
        self._end_line()

    def on_session_closed(self, error: Exception | None) -> None:
        self._end_line()
        if error is not None:
            self._write(f"Session closed: {error}\n")

    def on_question_detected(self, question: str) -> None:
        self._end_line()
        stamp = datetime.now().strftime("%H:%M:%S")
        self._write(f"[{stamp}] Q: {question}\nA: ")
        self._mid_line = True

    def on_answer_chunk(self, question: str, chunk: str) -> None:
        self._write(chunk)
        self._mid_line = True

    def on_answer_complete(self, question: str) -> None:
        self._end_line()
        self._write("\n")

    def _end_line(self) -> None:
        if self._mid_line:
            self._write("\n")
            self._mid_line = False

    def _write(self, text: str) -> None:
        self._stream.write(text)
        self._stream.flush()
