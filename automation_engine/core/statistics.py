"""Statistics Aggregator: read-only stats and paginated execution history."""

import math
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ..models.core import utc_now
from ..models.execution import (
    ExecutionPage, ExecutionStatusEnum, Pagination, StatsOverview, TrendPoint,
    WorkflowExecution, WorkflowStats,
)
from ..storage.repository import WorkflowRepository
from .exceptions import WorkflowValidationError
from .logging import get_logger

logger = get_logger(__name__)

MAX_PAGE_SIZE = 100
MAX_STATS_DAYS = 365

_FAILED_STATUSES = {ExecutionStatusEnum.FAILED, ExecutionStatusEnum.PARTIAL}


def success_rate(successful: int, total: int) -> float:
    """Percentage rounded to two decimals; 0 when there is nothing to rate."""
    if total <= 0:
        return 0.0
    return round(successful / total * 100, 2)


class StatisticsAggregator:
    """Computes workflow statistics from execution records.

    A window of ``days`` covers executions started in the trailing
    ``days * 24h``. Totals and success rates include runs still in
    progress; the average duration only considers sealed runs. PARTIAL runs
    count as failures. Trend points are calendar days in the reporting timezone,
    ascending, for days that have at least one execution.
    """

    def __init__(self, repository: WorkflowRepository, default_timezone: str = "UTC",
                 default_days: int = 30):
        self.repository = repository
        self.default_timezone = default_timezone
        self.default_days = default_days

    def get_stats(self, workflow_id: str, days: Optional[int] = None, tz: Optional[str] = None,
                  now: Optional[datetime] = None) -> WorkflowStats:
        """
        Aggregate a workflow's executions over a trailing window.

        Args:
            workflow_id: Workflow to report on
            days: Window length in days
            tz: IANA timezone used to bucket the trend by calendar day
            now: Reference time (naive UTC), defaults to now

        Returns:
            Overview, status breakdown and per-day trend

        Raises:
            WorkflowValidationError: If ``days`` or ``tz`` are invalid
        """
        days = self.default_days if days is None else days
        if not 1 <= days <= MAX_STATS_DAYS:
            raise WorkflowValidationError(f"days must be between 1 and {MAX_STATS_DAYS}")
        tz_name = tz or self.default_timezone
        zone = _zone(tz_name)

        since = (now or utc_now()) - timedelta(days=days)
        executions = self.repository.executions_since(workflow_id, since)

        return WorkflowStats(
            workflow_id=workflow_id,
            days=days,
            timezone=tz_name,
            since=since,
            overview=self._overview(executions),
            status_breakdown=dict(Counter(execution.status.value for execution in executions)),
            trend=self._trend(executions, zone),
        )

    def list_executions(self, workflow_id: str, page: int = 1, limit: int = 20,
                        status: Optional[str] = None) -> ExecutionPage:
        """
        A page of a workflow's executions, newest first.

        Raises:
            WorkflowValidationError: If page, limit or status are invalid
        """
        if page < 1:
            raise WorkflowValidationError("page must be at least 1")
        if not 1 <= limit <= MAX_PAGE_SIZE:
            raise WorkflowValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}")
        if status is not None:
            try:
                status = ExecutionStatusEnum(status.upper()).value
            except ValueError:
                raise WorkflowValidationError(f"Unknown execution status: {status}")

        executions, total = self.repository.list_executions(
            workflow_id, offset=(page - 1) * limit, limit=limit, status=status
        )
        return ExecutionPage(
            executions=executions,
            pagination=Pagination(
                page=page,
                limit=limit,
                total=total,
                total_pages=math.ceil(total / limit) if total else 0,
            ),
        )

    @staticmethod
    def _overview(executions: List[WorkflowExecution]) -> StatsOverview:
        successful = sum(1 for e in executions if e.status == ExecutionStatusEnum.SUCCESS)
        failed = sum(1 for e in executions if e.status in _FAILED_STATUSES)
        running = sum(1 for e in executions if e.status == ExecutionStatusEnum.RUNNING)
        durations = [e.duration_ms for e in executions
                     if e.status != ExecutionStatusEnum.RUNNING and e.duration_ms is not None]
        total_duration = sum(durations)

        return StatsOverview(
            total_executions=len(executions),
            successful_executions=successful,
            failed_executions=failed,
            running=running,
            success_rate=success_rate(successful, len(executions)),
            avg_duration_ms=round(total_duration / len(durations), 2) if durations else 0.0,
            total_duration_ms=total_duration,
            total_retries=sum(e.retry_count for e in executions),
        )

    @staticmethod
    def _trend(executions: List[WorkflowExecution], zone: ZoneInfo) -> List[TrendPoint]:
        buckets: Dict[str, Dict[str, int]] = {}
        for execution in executions:
            day = execution.started_at.replace(tzinfo=timezone.utc).astimezone(zone).date().isoformat()
            bucket = buckets.setdefault(day, {"total": 0, "success": 0, "failed": 0})
            bucket["total"] += 1
            if execution.status == ExecutionStatusEnum.SUCCESS:
                bucket["success"] += 1
            elif execution.status in _FAILED_STATUSES:
                bucket["failed"] += 1

        return [
            TrendPoint(
                date=day,
                total=counts["total"],
                success=counts["success"],
                failed=counts["failed"],
                success_rate=success_rate(counts["success"], counts["total"]),
            )
            for day, counts in sorted(buckets.items())
        ]


def _zone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        raise WorkflowValidationError(f"Unknown timezone: {name}")
