from __future__ import annotations

import logging
import time
from collections import Counter
from datetime import date
from typing import Callable, Sequence

from pydantic import ValidationError

from validation_trainer.core.errors import ProgressStorageError
from validation_trainer.schemas.conversation import ConversationMessage
from validation_trainer.schemas.feedback import ValidationFeedback
from validation_trainer.schemas.progress import PracticeSession, UserProgress
from validation_trainer.services.storage import KeyValueStore

logger = logging.getLogger("validation.progress")

DEFAULT_SESSION_LIMIT = 50
DEFAULT_SESSION_LENGTH_MS = 60_000
# Millisecond clock readings stay below this until the year 5138.
SCALED_TIMESTAMP_FLOOR = 10**14


def _now_ms() -> int:
    return int(time.time() * 1000)


def message_time_ms(timestamp: int) -> int:
    """Millisecond wall time of a message timestamp.

    Accepts plain millisecond timestamps as well as the scaled values from
    ``new_message_timestamp``.
    """
    if timestamp >= SCALED_TIMESTAMP_FLOOR:
        return timestamp // 1000
    return timestamp


def category_for(scenario_id: str) -> str:
    return scenario_id.split("-", 1)[0]


def next_streak(previous_streak: int, last_practice: date, today: date) -> int:
    gap_days = (today - last_practice).days
    if gap_days == 0:
        return previous_streak
    if gap_days == 1:
        return previous_streak + 1
    return 1


def create_session(
    scenario_id: str,
    scenario_title: str,
    messages: Sequence[ConversationMessage],
    feedback: ValidationFeedback,
    start_time: int | None = None,
    now_ms: int | None = None,
) -> PracticeSession:
    end_time = now_ms if now_ms is not None else _now_ms()
    if start_time is None:
        start_time = (
            message_time_ms(messages[0].timestamp)
            if messages
            else end_time - DEFAULT_SESSION_LENGTH_MS
        )
    return PracticeSession(
        id=f"{scenario_id}-{end_time}",
        scenario_id=scenario_id,
        scenario_title=scenario_title,
        start_time=min(start_time, end_time),
        end_time=end_time,
        messages=tuple(messages),
        feedback=feedback,
    )


class ProgressLedger:
    def __init__(
        self,
        store: KeyValueStore,
        storage_key: str = "validation-progress",
        session_limit: int = DEFAULT_SESSION_LIMIT,
        today: Callable[[], date] = date.today,
    ) -> None:
        self._store = store
        self._storage_key = storage_key
        self._session_limit = max(1, session_limit)
        self._today = today

    def load(self) -> UserProgress | None:
        raw = self._store.get(self._storage_key)
        if not raw:
            return None
        try:
            return UserProgress.model_validate_json(raw)
        except ValidationError as exc:
            logger.error("discarding unreadable progress document: %s", exc)
            return None

    def save(self, progress: UserProgress) -> None:
        payload = progress.model_dump_json(by_alias=True)
        try:
            self._store.set(self._storage_key, payload)
        except ProgressStorageError:
            logger.exception("failed to save progress")
            raise

    def record_session(self, session: PracticeSession) -> UserProgress:
        """Fold ``session`` into the stored aggregate without saving it."""
        today = self._today()
        category = category_for(session.scenario_id)
        existing = self.load()

        if existing is None:
            return UserProgress(
                total_sessions=1,
                current_streak=1,
                last_practice_date=today,
                average_score=float(session.feedback.overall_score),
                common_mistakes=dict(Counter(session.feedback.mistakes)),
                category_progress={category: 1},
                sessions=[session],
            )

        sessions = [*existing.sessions, session][-self._session_limit :]
        average = sum(s.feedback.overall_score for s in sessions) / len(sessions)

        mistakes = Counter(existing.common_mistakes)
        mistakes.update(session.feedback.mistakes)

        categories = dict(existing.category_progress)
        categories[category] = categories.get(category, 0) + 1

        return UserProgress(
            total_sessions=existing.total_sessions + 1,
            current_streak=next_streak(
                existing.current_streak, existing.last_practice_date, today
            ),
            last_practice_date=today,
            average_score=average,
            common_mistakes=dict(mistakes),
            category_progress=categories,
            sessions=sessions,
        )

    def complete_session(self, session: PracticeSession) -> UserProgress:
        progress = self.record_session(session)
        self.save(progress)
        logger.info(
            "recorded session %s (score=%s, streak=%s, retained=%s)",
            session.id,
            session.feedback.overall_score,
            progress.current_streak,
            len(progress.sessions),
        )
        return progress
