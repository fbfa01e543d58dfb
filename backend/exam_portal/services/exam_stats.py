"""
Exam Portal - Exam Statistics
Folds submission events into each exam's running statistics
"""
import logging
from collections.abc import Iterable

from exam_portal.core.config import settings
from exam_portal.schemas.exam import ExamStatistics
from exam_portal.services.events import SubmissionEvent, SubmissionEventType

logger = logging.getLogger(__name__)


# Events whose payload carries band_score / previous_band_score
SCORING_EVENTS = frozenset({
    SubmissionEventType.SUBMISSION_FINALIZED,
    SubmissionEventType.SUBMISSION_GRADED,
    SubmissionEventType.SCORE_REVISED,
})


class ExamStatisticsCollector:
    """
    Maintains attempt count, average band, pass rate and average completion
    time per exam.

    Scoring events carry the new band and the band this attempt was last
    counted with. No previous band means the attempt is counted now;
    otherwise its contribution is revised in place.
    """

    def __init__(self, passing_band: float | None = None):
        self.passing_band = settings.PASSING_BAND_SCORE if passing_band is None else passing_band

    def apply(self, statistics: ExamStatistics, events: Iterable[SubmissionEvent]) -> ExamStatistics:
        """Return updated statistics; the input is not modified."""
        stats = statistics.model_copy()
        for event in events:
            if event.type not in SCORING_EVENTS:
                continue
            band = event.payload.get("band_score")
            if band is None:
                continue

            previous = event.payload.get("previous_band_score")
            if previous is None:
                self._add_attempt(stats, band, event.payload.get("completion_time") or 0)
            else:
                self._revise_attempt(stats, previous, band)

            logger.debug(f"Exam {event.exam_id} statistics updated from {event.type.value}")
        return stats

    def _passed(self, band: float) -> int:
        return 1 if band >= self.passing_band else 0

    def _add_attempt(self, stats: ExamStatistics, band: float, completion_time: float) -> None:
        previous = stats.total_attempts
        n = previous + 1
        stats.total_attempts = n
        stats.average_score = (stats.average_score * previous + band) / n
        stats.pass_rate = (stats.pass_rate * previous + self._passed(band)) / n
        stats.average_completion_time = (stats.average_completion_time * previous + completion_time) / n

    def _revise_attempt(self, stats: ExamStatistics, old_band: float, new_band: float) -> None:
        n = stats.total_attempts
        if n == 0:
            # Attempt predates statistics tracking
            self._add_attempt(stats, new_band, 0)
            return
        stats.average_score += (new_band - old_band) / n
        stats.pass_rate += (self._passed(new_band) - self._passed(old_band)) / n
