from __future__ import annotations

import asyncio
import enum
import logging
import time
from typing import Any, Callable

from exam_portal.client.api import ALREADY_ATTEMPTED, PortalApiError, PortalClient
from exam_portal.client.storage import KeyValueStorage

_LOG = logging.getLogger("exam_portal.client.exam")

EXAM_DURATION_SECONDS = 5 * 60 * 60
MAX_SUBMIT_ATTEMPTS = 3
MIRROR_FLUSH_SECONDS = 0.5

KEY_ANSWERS = "examAnswers"
KEY_TIME_REMAINING = "examTimeRemaining"
KEY_QUESTION_ORDER = "examQuestionOrder"
KEY_MIRROR = "quiz-answers"


class ExamState(str, enum.Enum):
    LOADING = "loading"
    READY = "ready"
    SUBMITTING = "submitting"
    COMPLETED = "completed"
    ERROR = "error"


def _schedule_on_running_loop(delay: float, callback: Callable[[], None]):
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        return None
    return loop.call_later(delay, callback)


class ExamStateStore:
    """Single owner of the persisted answer map, question order and remaining time.

    Every change is written to the primary storage at once so a reload never
    loses progress. The longer-lived mirror is written at most once per flush
    interval; a change arriving inside the interval schedules a trailing
    write, and close() writes whatever is still pending.
    """

    def __init__(
        self,
        storage: KeyValueStorage,
        mirror: KeyValueStorage | None = None,
        *,
        flush_interval: float = MIRROR_FLUSH_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        scheduler: Callable[[float, Callable[[], None]], Any] = _schedule_on_running_loop,
    ):
        self.storage = storage
        self.mirror = mirror
        self.flush_interval = flush_interval
        self._clock = clock
        self._scheduler = scheduler
        self._answers: dict[int, int] = {}
        self._remaining: int | None = None
        self._question_order: list[str] | None = None
        self._dirty = False
        self._last_flush: float | None = None
        self._pending_flush = None

    @property
    def answers(self) -> dict[int, int]:
        return dict(self._answers)

    @property
    def remaining(self) -> int | None:
        return self._remaining

    @property
    def question_order(self) -> list[str] | None:
        return list(self._question_order) if self._question_order is not None else None

    @property
    def dirty(self) -> bool:
        return self._dirty

    def load(self) -> None:
        raw_answers = self.storage.get(KEY_ANSWERS) or {}
        answers: dict[int, int] = {}
        for key, value in raw_answers.items():
            try:
                answers[int(key)] = int(value)
            except (TypeError, ValueError):
                continue
        self._answers = answers
        raw_remaining = self.storage.get(KEY_TIME_REMAINING)
        try:
            self._remaining = int(raw_remaining) if raw_remaining is not None else None
        except (TypeError, ValueError):
            self._remaining = None
        raw_order = self.storage.get(KEY_QUESTION_ORDER)
        self._question_order = [str(item) for item in raw_order] if isinstance(raw_order, list) else None

    def set_question_order(self, question_ids: list[str]) -> None:
        self._question_order = [str(item) for item in question_ids]
        self.storage.set(KEY_QUESTION_ORDER, self._question_order)

    def reset_answers(self) -> None:
        self._answers = {}
        self.storage.remove(KEY_ANSWERS)
        self._mark_dirty()

    def set_answer(self, ordinal: int, option: int) -> None:
        self._answers[ordinal] = option
        self.storage.set(KEY_ANSWERS, {str(k): v for k, v in self._answers.items()})
        self._mark_dirty()

    def set_remaining(self, seconds: int) -> None:
        self._remaining = seconds
        self.storage.set(KEY_TIME_REMAINING, seconds)
        self._mark_dirty()

    def _mark_dirty(self) -> None:
        self._dirty = True
        if not self.maybe_flush():
            self._schedule_trailing_flush()

    def maybe_flush(self) -> bool:
        if not self._dirty or self.mirror is None:
            return False
        now = self._clock()
        if self._last_flush is not None and now - self._last_flush < self.flush_interval:
            return False
        self.flush()
        return True

    def _schedule_trailing_flush(self) -> None:
        if self.mirror is None or self._pending_flush is not None:
            return
        wait = self.flush_interval
        if self._last_flush is not None:
            wait = max(self.flush_interval - (self._clock() - self._last_flush), 0.0)
        self._pending_flush = self._scheduler(wait, self._trailing_flush)

    def _trailing_flush(self) -> None:
        self._pending_flush = None
        if self._dirty:
            self.flush()

    def _cancel_pending_flush(self) -> None:
        if self._pending_flush is not None:
            self._pending_flush.cancel()
            self._pending_flush = None

    def flush(self) -> None:
        self._cancel_pending_flush()
        if self.mirror is not None and self._dirty:
            self.mirror.set(
                KEY_MIRROR,
                {"answers": {str(k): v for k, v in self._answers.items()}, "timeRemaining": self._remaining},
            )
            self._last_flush = self._clock()
        self._dirty = False

    def close(self) -> None:
        self.flush()

    def clear(self) -> None:
        self._cancel_pending_flush()
        self._answers = {}
        self._remaining = None
        self._question_order = None
        self._dirty = False
        self.storage.remove(KEY_ANSWERS)
        self.storage.remove(KEY_TIME_REMAINING)
        self.storage.remove(KEY_QUESTION_ORDER)
        if self.mirror is not None:
            self.mirror.remove(KEY_MIRROR)


class ExamSession:
    def __init__(
        self,
        api: PortalClient,
        store: ExamStateStore,
        *,
        form_id: str | None = None,
        duration_seconds: int = EXAM_DURATION_SECONDS,
        max_submit_attempts: int = MAX_SUBMIT_ATTEMPTS,
    ):
        self.api = api
        self.store = store
        self.form_id = form_id
        self.duration_seconds = duration_seconds
        self.max_submit_attempts = max(int(max_submit_attempts), 1)
        self.state = ExamState.LOADING
        self.questions: list[dict] = []
        self.current_question = 0
        self.remaining_seconds = duration_seconds
        self.is_submitting = False
        self.error_message: str | None = None
        self._countdown: asyncio.Task | None = None

    @property
    def answers(self) -> dict[int, int]:
        return self.store.answers

    @property
    def answered_count(self) -> int:
        return len(self.store.answers)

    async def load(self) -> ExamState:
        self.state = ExamState.LOADING
        try:
            data = await self.api.fetch_questions(self.form_id)
        except PortalApiError as exc:
            self.error_message = exc.message
            self.state = ExamState.ERROR
            return self.state
        self.questions = list(data.get("questions") or [])
        if not self.questions:
            self.error_message = "No questions available for this exam."
            self.state = ExamState.ERROR
            return self.state

        self.store.load()
        self._restore_question_order()
        restored = self.store.remaining
        self.remaining_seconds = restored if restored is not None else self.duration_seconds
        self.current_question = 0
        self.error_message = None
        self.state = ExamState.READY
        return self.state

    def _restore_question_order(self) -> None:
        """Stored answers are ordinals into the order saved with them; reuse it."""
        by_id = {str(q.get("id")): q for q in self.questions}
        saved = self.store.question_order
        if saved is not None and len(set(saved)) == len(saved) and all(qid in by_id for qid in saved):
            seen = set(saved)
            self.questions = [by_id[qid] for qid in saved] + [
                q for q in self.questions if str(q.get("id")) not in seen
            ]
        else:
            if self.store.answers:
                _LOG.warning("Discarding saved answers: question order is missing or no longer matches")
                self.store.reset_answers()
        self.store.set_question_order([str(q.get("id")) for q in self.questions])

    def _require_ready(self) -> None:
        if self.state != ExamState.READY:
            raise RuntimeError(f"exam is not accepting input in state {self.state.value}")

    def select_answer(self, option: int) -> int:
        """Record a 1-based option for the current question and advance."""
        self._require_ready()
        options = self.questions[self.current_question].get("options") or []
        if not 1 <= option <= len(options):
            raise ValueError(f"option must be between 1 and {len(options)}")
        self.store.set_answer(self.current_question, option)
        self.current_question = self._next_after(self.current_question)
        return self.current_question

    def _next_after(self, index: int) -> int:
        last = len(self.questions) - 1
        answers = self.store.answers
        for candidate in range(index + 1, last + 1):
            if candidate not in answers:
                return candidate
        return min(index + 1, last)

    def go_to(self, index: int) -> int:
        if not 0 <= index < len(self.questions):
            raise IndexError(f"question {index} does not exist")
        self.current_question = index
        return index

    def next(self) -> int:
        return self.go_to(min(self.current_question + 1, len(self.questions) - 1))

    def previous(self) -> int:
        return self.go_to(max(self.current_question - 1, 0))

    def tick(self) -> bool:
        """Advance the countdown one second; True once time has run out."""
        if self.state != ExamState.READY or self.remaining_seconds <= 0:
            return False
        self.remaining_seconds = max(self.remaining_seconds - 1, 0)
        self.store.set_remaining(self.remaining_seconds)
        return self.remaining_seconds == 0

    async def run_countdown(self, interval: float = 1.0) -> None:
        if self.state == ExamState.READY and self.remaining_seconds <= 0:
            await self.submit()
            return
        while self.state in (ExamState.READY, ExamState.SUBMITTING):
            await asyncio.sleep(interval)
            if self.tick():
                _LOG.info("exam time over; submitting automatically")
                await self.submit()
                return

    def start_countdown(self) -> asyncio.Task:
        if self._countdown is None or self._countdown.done():
            self._countdown = asyncio.create_task(self.run_countdown())
        return self._countdown

    def submission_payload(self) -> dict[str, int]:
        payload: dict[str, int] = {}
        for ordinal, option in sorted(self.store.answers.items()):
            if 0 <= ordinal < len(self.questions):
                payload[str(self.questions[ordinal]["id"])] = option
        return payload

    async def submit(self) -> bool:
        if self.is_submitting or self.state != ExamState.READY:
            return False
        self.is_submitting = True
        self.state = ExamState.SUBMITTING
        payload = self.submission_payload()
        last_error: PortalApiError | None = None
        try:
            for attempt in range(1, self.max_submit_attempts + 1):
                try:
                    await self.api.submit(payload)
                except PortalApiError as exc:
                    if exc.terminal:
                        return self._fail_terminal(exc)
                    last_error = exc
                    _LOG.warning("submission attempt %s/%s failed: %s", attempt, self.max_submit_attempts, exc.message)
                    continue
                self.store.clear()
                self.error_message = None
                self.state = ExamState.COMPLETED
                return True
            self.error_message = f"Failed to submit exam: {last_error.message if last_error else 'unknown error'}"
            self.state = ExamState.READY
            return False
        finally:
            self.is_submitting = False

    def _fail_terminal(self, exc: PortalApiError) -> bool:
        if exc.code == ALREADY_ATTEMPTED:
            self.store.clear()
        self.error_message = exc.message
        self.state = ExamState.ERROR
        return False

    async def close(self) -> None:
        if self._countdown is not None and not self._countdown.done():
            self._countdown.cancel()
            try:
                await self._countdown
            except asyncio.CancelledError:
                pass
        self.store.close()
