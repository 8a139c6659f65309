"""Tests for workflow statistics and execution history pagination."""

from datetime import datetime, timedelta

import pytest

from automation_engine.core.exceptions import WorkflowValidationError
from automation_engine.core.statistics import StatisticsAggregator, success_rate
from automation_engine.models import ActionOutcome, ExecutionStatusEnum

from conftest import invoice_definition, manual_context

NOW = datetime(2024, 3, 10, 12, 0)

OK = ActionOutcome(type="notify", order=1, success=True, attempts=1)
RETRIED_FAILURE = ActionOutcome(type="flag", order=2, success=False, error="boom", attempts=3)


@pytest.fixture
def history(workflow_manager, recorder):
    """A workflow with five executions: one old, three sealed and one running."""
    workflow = workflow_manager.create_workflow(invoice_definition())

    def record(started_at, outcomes=None, duration_ms=0):
        execution = recorder.start(workflow, manual_context(), started_at=started_at)
        if outcomes is not None:
            recorder.complete(execution, outcomes, duration_ms,
                              completed_at=started_at + timedelta(milliseconds=duration_ms))
        return execution

    record(datetime(2024, 1, 1, 9, 0), [OK], 50)
    record(datetime(2024, 3, 9, 10, 0), [OK], 100)
    record(datetime(2024, 3, 9, 11, 0), [RETRIED_FAILURE], 300)
    record(datetime(2024, 3, 10, 1, 0), [OK, OK.model_copy(update={"success": False})], 200)
    record(datetime(2024, 3, 10, 2, 0))
    return workflow


class TestStatisticsAggregator:
    """Test cases for StatisticsAggregator.get_stats."""

    def test_overview(self, statistics, history):
        stats = statistics.get_stats(history.id, days=30, now=NOW)
        overview = stats.overview

        assert overview.total_executions == 4
        assert overview.successful_executions == 1
        assert overview.failed_executions == 2
        assert overview.running == 1
        assert overview.success_rate == 25.0
        assert overview.avg_duration_ms == 200.0
        assert overview.total_duration_ms == 600
        assert overview.total_retries == 2
        assert stats.since == NOW - timedelta(days=30)

    def test_status_breakdown(self, statistics, history):
        stats = statistics.get_stats(history.id, days=30, now=NOW)

        assert stats.status_breakdown == {"SUCCESS": 1, "FAILED": 1, "PARTIAL": 1, "RUNNING": 1}

    def test_trend_by_utc_day(self, statistics, history):
        trend = statistics.get_stats(history.id, days=30, now=NOW).trend

        assert [point.date for point in trend] == ["2024-03-09", "2024-03-10"]
        assert (trend[0].total, trend[0].success, trend[0].failed, trend[0].success_rate) == (2, 1, 1, 50.0)
        assert (trend[1].total, trend[1].success, trend[1].failed, trend[1].success_rate) == (2, 0, 1, 0.0)

    def test_trend_in_reporting_timezone(self, statistics, history):
        stats = statistics.get_stats(history.id, days=30, tz="America/New_York", now=NOW)

        assert stats.timezone == "America/New_York"
        assert [(point.date, point.total) for point in stats.trend] == [("2024-03-09", 4)]

    def test_default_timezone_and_window(self, repository, history):
        aggregator = StatisticsAggregator(repository, default_timezone="Asia/Tokyo", default_days=100)

        stats = aggregator.get_stats(history.id, now=NOW)

        assert stats.days == 100
        assert stats.overview.total_executions == 5
        assert stats.trend[-1].date == "2024-03-10"

    def test_window_includes_only_recent_executions(self, statistics, history):
        stats = statistics.get_stats(history.id, days=1, now=NOW)

        assert stats.overview.total_executions == 2

    def test_empty_window(self, statistics, workflow_manager):
        workflow = workflow_manager.create_workflow(invoice_definition())

        stats = statistics.get_stats(workflow.id, now=NOW)

        assert stats.overview.total_executions == 0
        assert stats.overview.success_rate == 0.0
        assert stats.overview.avg_duration_ms == 0.0
        assert stats.trend == []

    @pytest.mark.parametrize("days", [0, 366, -5])
    def test_invalid_days(self, statistics, history, days):
        with pytest.raises(WorkflowValidationError):
            statistics.get_stats(history.id, days=days, now=NOW)

    def test_invalid_timezone(self, statistics, history):
        with pytest.raises(WorkflowValidationError):
            statistics.get_stats(history.id, tz="Mars/Olympus_Mons", now=NOW)

    def test_success_rate_helper(self):
        assert success_rate(0, 0) == 0.0
        assert success_rate(1, 3) == 33.33
        assert success_rate(2, 2) == 100.0


class TestExecutionHistory:
    """Test cases for StatisticsAggregator.list_executions."""

    def test_newest_first_with_pagination(self, statistics, history):
        first = statistics.list_executions(history.id, page=1, limit=2)
        last = statistics.list_executions(history.id, page=3, limit=2)

        assert first.pagination.total == 5
        assert first.pagination.total_pages == 3
        assert [e.started_at for e in first.executions] == [datetime(2024, 3, 10, 2, 0), datetime(2024, 3, 10, 1, 0)]
        assert first.executions[0].status == ExecutionStatusEnum.RUNNING
        assert [e.started_at for e in last.executions] == [datetime(2024, 1, 1, 9, 0)]

    def test_status_filter_is_case_insensitive(self, statistics, history):
        page = statistics.list_executions(history.id, status="failed")

        assert page.pagination.total == 1
        assert page.executions[0].error_message == "flag: boom"
        assert page.executions[0].retry_count == 2

    def test_page_past_the_end(self, statistics, history):
        page = statistics.list_executions(history.id, page=10, limit=20)

        assert page.executions == []
        assert page.pagination.total == 5

    def test_no_executions(self, statistics, workflow_manager):
        workflow = workflow_manager.create_workflow(invoice_definition())

        page = statistics.list_executions(workflow.id)

        assert page.pagination.total == 0
        assert page.pagination.total_pages == 0

    @pytest.mark.parametrize("kwargs", [{"page": 0}, {"limit": 0}, {"limit": 101}, {"status": "EXPLODED"}])
    def test_invalid_arguments(self, statistics, history, kwargs):
        with pytest.raises(WorkflowValidationError):
            statistics.list_executions(history.id, **kwargs)


class TestRetention:
    """Test cases for deleting old execution history."""

    def test_delete_executions_before_keeps_running(self, repository, history):
        deleted = repository.delete_executions_before(datetime(2024, 3, 11))

        executions, total = repository.list_executions(history.id, offset=0, limit=10)
        assert deleted == 4
        assert total == 1
        assert executions[0].status == ExecutionStatusEnum.RUNNING

    def test_counters_survive_cleanup(self, repository, workflow_manager, history):
        repository.delete_executions_before(datetime(2024, 2, 1))

        assert repository.list_executions(history.id, offset=0, limit=10)[1] == 4
        assert workflow_manager.get_workflow(history.id).execution_count == 4
