"""
Exam Portal - Exam Statistics Tests
"""
from datetime import datetime, timezone

import pytest

from exam_portal.schemas.exam import ExamStatistics
from exam_portal.services.events import SubmissionEvent, SubmissionEventType
from exam_portal.services.exam_stats import ExamStatisticsCollector


def _event(event_type: SubmissionEventType, **payload) -> SubmissionEvent:
    return SubmissionEvent(
        type=event_type,
        submission_id="sub-1",
        exam_id="exam-1",
        user_id="user-1",
        occurred_at=datetime(2024, 5, 1, tzinfo=timezone.utc),
        payload=payload,
    )


def finalized(band, completion_time=0):
    return _event(SubmissionEventType.SUBMISSION_FINALIZED, band_score=band, completion_time=completion_time)


def graded(band, previous=None, completion_time=0):
    return _event(
        SubmissionEventType.SUBMISSION_GRADED,
        band_score=band,
        previous_band_score=previous,
        completion_time=completion_time,
    )


@pytest.fixture
def collector() -> ExamStatisticsCollector:
    return ExamStatisticsCollector(passing_band=6.0)


def test_first_attempt(collector):
    stats = collector.apply(ExamStatistics(), [finalized(7.0, completion_time=600)])

    assert stats == ExamStatistics(
        total_attempts=1,
        average_score=7.0,
        pass_rate=1.0,
        average_completion_time=600,
    )


def test_running_averages(collector):
    stats = collector.apply(
        ExamStatistics(),
        [finalized(7.0, 600), finalized(5.0, 1200), finalized(6.0, 900)],
    )

    assert stats.total_attempts == 3
    assert stats.average_score == pytest.approx(6.0)
    # 7.0 and 6.0 pass, 5.0 does not
    assert stats.pass_rate == pytest.approx(2 / 3)
    assert stats.average_completion_time == pytest.approx(900)


def test_input_is_not_modified(collector):
    original = ExamStatistics(total_attempts=2, average_score=6.5, pass_rate=0.5)
    collector.apply(original, [finalized(9.0)])
    assert original.total_attempts == 2
    assert original.average_score == 6.5


def test_grading_revises_existing_attempt(collector):
    stats = collector.apply(ExamStatistics(), [finalized(8.0)])
    stats = collector.apply(stats, [graded(5.5, previous=8.0)])

    assert stats.total_attempts == 1
    assert stats.average_score == pytest.approx(5.5)
    assert stats.pass_rate == pytest.approx(0.0)


def test_grading_without_earlier_band_counts_attempt(collector):
    # Submitted with only writing and speaking answered: no band at submit
    stats = collector.apply(ExamStatistics(), [finalized(None), graded(6.5, previous=None, completion_time=300)])

    assert stats.total_attempts == 1
    assert stats.average_score == 6.5
    assert stats.pass_rate == 1.0
    assert stats.average_completion_time == 300


def test_revision_on_untracked_exam_counts_attempt(collector):
    stats = collector.apply(ExamStatistics(), [graded(7.0, previous=6.0)])
    assert stats.total_attempts == 1
    assert stats.average_score == 7.0


@pytest.mark.parametrize(
    "event_type",
    [
        SubmissionEventType.MODULE_STARTED,
        SubmissionEventType.MODULE_COMPLETED,
        SubmissionEventType.SUBMISSION_CANCELLED,
        SubmissionEventType.VIOLATION_RECORDED,
    ],
)
def test_other_events_ignored(collector, event_type):
    stats = collector.apply(ExamStatistics(), [_event(event_type, band_score=9.0)])
    assert stats == ExamStatistics()


def test_passing_band_from_settings():
    from exam_portal.core.config import settings

    assert ExamStatisticsCollector().passing_band == settings.PASSING_BAND_SCORE


def test_manual_score_between_submit_and_grade(submission, clock):
    from exam_portal.schemas.exam import MODULES, Module
    from exam_portal.schemas.submission import ManualScoresUpdate, SpeakingScore, WritingScore
    from exam_portal.services.lifecycle import SubmissionLifecycle

    collector = ExamStatisticsCollector(passing_band=6.0)
    stats = ExamStatistics(total_attempts=1, average_score=8.0, pass_rate=1.0)

    lifecycle = SubmissionLifecycle(submission, clock=clock)
    for module in MODULES:
        lifecycle.complete_module(module)
    lifecycle.finalize({})
    lifecycle.record_manual_score(Module.WRITING, WritingScore(overall_score=5.0))
    lifecycle.rescore()
    lifecycle.grade("examiner-1", ManualScoresUpdate(speaking=SpeakingScore(overall_score=5.0)))

    stats = collector.apply(stats, lifecycle.events)

    assert stats.total_attempts == 2
    assert stats.average_score == pytest.approx(6.5)
    assert stats.pass_rate == pytest.approx(0.5)


def test_revision_events_move_average(collector):
    stats = collector.apply(ExamStatistics(), [finalized(8.0)])
    revised = _event(SubmissionEventType.SCORE_REVISED, band_score=7.0, previous_band_score=8.0)

    stats = collector.apply(stats, [revised])

    assert stats.total_attempts == 1
    assert stats.average_score == pytest.approx(7.0)
