import asyncio
import logging

from live_assist.domain.questions import AnsweredQuestions, extract_question
from live_assist.domain.session import LiveSession
from live_assist.ports.listener import AnswerListener, SessionListener

logger = logging.getLogger(__name__)


class QuestionResponder(SessionListener):
    """Answers each new question heard in a completed turn, once per recording."""

    def __init__(
        self,
        answer_listener: AnswerListener,
        answered: AnsweredQuestions | None = None,
    ) -> None:
        self._answer_listener = answer_listener
        self._answered = answered or AnsweredQuestions()
        self._session: LiveSession | None = None
        self._cancel_event = asyncio.Event()
        self._tasks: set[asyncio.Task] = set()

    @property
    def answered(self) -> AnsweredQuestions:
        return self._answered

    @property
    def pending_answers(self) -> int:
        return len(self._tasks)

    def attach(self, session: LiveSession) -> None:
        if self._session is not None:
            self._session.unsubscribe(self)
        self._session = session
        session.subscribe(self)

    def start_recording(self) -> None:
        self._answered.clear()
        self._cancel_event = asyncio.Event()
        logger.debug("Answered questions cleared")

    def on_turn_complete(self, text: str) -> None:
        question = extract_question(text)
        if question is None:
            return

        if self._session is None:
            logger.warning("Question detected without a live session: %s", question)
            return

        if not self._answered.claim(question):
            logger.debug("Question already answered: %s", question)
            return

        logger.info("Question: %s", question)
        self._answer_listener.on_question_detected(question)

        task = asyncio.create_task(self._answer(self._session, question, self._cancel_event))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _answer(self, session: LiveSession, question: str, cancel_event: asyncio.Event) -> None:
        def forward(chunk: str) -> None:
            self._answer_listener.on_answer_chunk(question, chunk)

        try:
            await session.stream_answer_for_question(question, forward, cancel_event)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Answer task failed for: %s", question)
        finally:
            self._answer_listener.on_answer_complete(question)

    async def aclose(self, cancel_pending: bool = False, timeout: float | None = None) -> None:
        if cancel_pending:
            self._cancel_event.set()
        tasks = list(self._tasks)
        if tasks:
            await asyncio.wait(tasks, timeout=timeout)
        if self._session is not None:
            self._session.unsubscribe(self)
            self._session = None
