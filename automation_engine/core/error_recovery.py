"""Retry policy and health checks for the automation engine."""

import asyncio
import time
import random
from typing import Callable, Any, Optional, Dict, List, Type
from functools import wraps
from datetime import datetime, timezone

from .exceptions import WorkflowEngineError, TransientError, StorageError
from .logging import get_logger, ErrorRecoveryLogger


logger = get_logger(__name__)


class RetryConfig:
    """Configuration for retry behavior.

    Delays grow as ``base_delay * exponential_base ** (attempt - 1)``, capped
    at ``max_delay``. With jitter on, each delay is scaled into [50%, 100%].
    """

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 60.0,
        exponential_base: float = 2.0,
        jitter: bool = True,
        retryable_exceptions: Optional[List[Type[Exception]]] = None
    ):
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter = jitter
        self.retryable_exceptions = retryable_exceptions or [TransientError, StorageError]

    def should_retry(self, exception: Exception, attempt: int) -> bool:
        """Determine if an exception raised on ``attempt`` should be retried."""
        if attempt >= self.max_attempts:
            return False

        # Engine errors carry their own retry decision
        if isinstance(exception, WorkflowEngineError):
            return exception.recoverable

        return any(isinstance(exception, exc_type) for exc_type in self.retryable_exceptions)

    def get_delay(self, attempt: int) -> float:
        """Calculate the delay to wait after the given failed attempt."""
        delay = self.base_delay * (self.exponential_base ** (attempt - 1))
        delay = min(delay, self.max_delay)

        if self.jitter:
            delay *= (0.5 + random.random() * 0.5)

        return delay


def with_retry(config: Optional[RetryConfig] = None):
    """Decorator to add retry logic to functions."""
    if config is None:
        config = RetryConfig()

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs):
            return _execute_with_retry(func, config, *args, **kwargs)
        return wrapper

    return decorator


def _execute_with_retry(func: Callable, config: RetryConfig, *args, **kwargs) -> Any:
    """Execute function with retry logic."""
    recovery_logger = ErrorRecoveryLogger(func.__name__)

    for attempt in range(1, config.max_attempts + 1):
        try:
            result = func(*args, **kwargs)
            if attempt > 1:
                recovery_logger.log_recovery_success(func.__name__, attempt)
            return result
        except Exception as e:
            if not config.should_retry(e, attempt):
                recovery_logger.log_recovery_failure(func.__name__, e, attempt)
                raise

            delay = config.get_delay(attempt)
            recovery_logger.log_recovery_attempt(func.__name__, e, attempt, config.max_attempts, delay)
            time.sleep(delay)


class HealthChecker:
    """Runs named health checks, each bounded by its own timeout.

    A check is a callable, sync or async, that returns a message string or a
    dict merged into its result; raising marks it unhealthy. Sync checks run
    in a worker thread so a hung database ping cannot stall the event loop.
    """

    def __init__(self):
        self.checks: Dict[str, Dict[str, Any]] = {}
        self.logger = get_logger("automation_engine.health")

    def register_check(self, name: str, check_func: Callable, timeout: float = 5.0):
        self.checks[name] = {"func": check_func, "timeout": timeout}
        self.logger.info(f"Registered health check: {name}")

    async def run_check(self, name: str) -> Dict[str, Any]:
        """Run one check and describe the outcome."""
        check = self.checks.get(name)
        if check is None:
            return {"status": "error", "message": f"Health check '{name}' not found", "timestamp": _now_iso()}

        func = check["func"]
        started = time.monotonic()
        try:
            if asyncio.iscoroutinefunction(func):
                outcome = await asyncio.wait_for(func(), timeout=check["timeout"])
            else:
                outcome = await asyncio.wait_for(asyncio.to_thread(func), timeout=check["timeout"])
            result = {"status": "healthy", "message": outcome if isinstance(outcome, str) else "Check passed"}
            if isinstance(outcome, dict):
                result.update(outcome)
        except asyncio.TimeoutError:
            self.logger.warning(f"Health check '{name}' timed out after {check['timeout']}s")
            result = {"status": "timeout", "message": f"Health check timed out after {check['timeout']}s"}
        except Exception as e:
            self.logger.warning(f"Health check '{name}' failed: {e}")
            result = {"status": "unhealthy", "message": str(e), "error_type": type(e).__name__}

        result["duration_ms"] = round((time.monotonic() - started) * 1000, 2)
        result["timestamp"] = _now_iso()
        return result

    async def run_all_checks(self) -> Dict[str, Any]:
        """Run every registered check; overall status is healthy only if all are."""
        results = {name: await self.run_check(name) for name in self.checks}
        healthy = all(result["status"] == "healthy" for result in results.values())
        return {
            "overall_status": "healthy" if healthy else "unhealthy",
            "checks": results,
            "timestamp": _now_iso()
        }


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()
