"""Action Executor: runs one configured action with timeout and retry."""

import threading
import time
from concurrent.futures import Future, TimeoutError as FutureTimeoutError
from typing import Callable, Optional, Set

from ..models.core import ActionConfig
from ..models.execution import ActionOutcome, ActionResult, ExecutionContext
from .action_registry import ActionRegistry
from .error_recovery import RetryConfig
from .exceptions import ActionExecutionError, ActionTimeoutError, WorkflowEngineError
from .logging import ErrorRecoveryLogger, get_logger

logger = get_logger(__name__)

UNKNOWN_ACTION_TYPE = "unknown action type"


class ActionExecutor:
    """Executes actions through the registry.

    Each attempt runs on its own daemon thread and is awaited with a timeout
    that starts once the thread is running. At most ``max_workers`` attempts
    are awaited at a time; further attempts wait for a slot before their
    clock starts. A timed-out attempt is abandoned: it gives its slot back,
    its thread keeps running until the handler returns, and it counts as a
    retryable failure. The executor does not de-duplicate: a handler may be
    invoked several times for one action.
    """

    def __init__(
        self,
        registry: ActionRegistry,
        retry_config: Optional[RetryConfig] = None,
        default_timeout: float = 30.0,
        max_workers: int = 10,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize the action executor.

        Args:
            registry: Registry used to resolve action types
            retry_config: Retry policy; handler exceptions of any type are retryable
                unless they are non-recoverable engine errors
            default_timeout: Per-attempt timeout in seconds when the action sets none
            max_workers: Number of attempts awaited concurrently
            sleep: Function used to wait between attempts
        """
        self.registry = registry
        self.retry_config = retry_config or RetryConfig(retryable_exceptions=[Exception])
        self.default_timeout = default_timeout
        self._sleep = sleep
        self._slots = threading.BoundedSemaphore(max_workers)
        self._threads: Set[threading.Thread] = set()
        self._threads_lock = threading.Lock()
        self.recovery_logger = ErrorRecoveryLogger("action_executor")

    def execute(self, action: ActionConfig, context: ExecutionContext) -> ActionOutcome:
        """
        Run one action to completion, retrying transient failures.

        Args:
            action: The configured action
            context: Execution context of the current run

        Returns:
            Outcome with the final result, attempt count and total duration
        """
        started = time.monotonic()
        handler = self.registry.get_handler(action.type)
        if handler is None:
            logger.error(f"Action '{action.type}' (order {action.order}) has no registered handler")
            return self._outcome(action, ActionResult(success=False, error=UNKNOWN_ACTION_TYPE), 0, started)

        timeout = action.timeout or self.default_timeout
        operation = f"action '{action.type}'"
        attempt = 0
        while True:
            attempt += 1
            try:
                result = self._run_attempt(handler, action, context, timeout)
                if result.success:
                    if attempt > 1:
                        self.recovery_logger.log_recovery_success(operation, attempt)
                    return self._outcome(action, result, attempt, started)
                error = ActionExecutionError(
                    result.error or "action reported failure",
                    action_type=action.type,
                )
            except Exception as e:
                error = e
                result = ActionResult(success=False, error=_describe(e))

            if not self.retry_config.should_retry(error, attempt):
                self.recovery_logger.log_recovery_failure(operation, error, attempt)
                return self._outcome(action, result, attempt, started)

            delay = self.retry_config.get_delay(attempt)
            self.recovery_logger.log_recovery_attempt(
                operation, error, attempt, self.retry_config.max_attempts, delay
            )
            self._sleep(delay)

    def _run_attempt(self, handler, action: ActionConfig, context: ExecutionContext, timeout: float) -> ActionResult:
        future: Future = Future()
        thread = threading.Thread(
            target=self._call_handler,
            args=(future, handler, action, context),
            name=f"action-{action.type}",
            daemon=True,
        )
        with self._slots:
            with self._threads_lock:
                self._threads.add(thread)
            thread.start()
            try:
                result = future.result(timeout=timeout)
            except FutureTimeoutError:
                logger.warning(f"Abandoned attempt of action '{action.type}' after {timeout}s; "
                               f"thread {thread.name} runs on until the handler returns")
                raise ActionTimeoutError(action.type, timeout)

        if not isinstance(result, ActionResult):
            raise ActionExecutionError(
                f"Handler for '{action.type}' returned {type(result).__name__}, expected ActionResult",
                action_type=action.type,
                recoverable=False,
            )
        return result

    def _call_handler(self, future: Future, handler, action: ActionConfig, context: ExecutionContext) -> None:
        future.set_running_or_notify_cancel()
        try:
            future.set_result(handler.execute(action.config, context))
        except Exception as e:
            future.set_exception(e)
        finally:
            with self._threads_lock:
                self._threads.discard(threading.current_thread())

    def running_attempts(self) -> int:
        """Handler threads still running, abandoned ones included."""
        with self._threads_lock:
            return len(self._threads)

    @staticmethod
    def _outcome(action: ActionConfig, result: ActionResult, attempts: int, started: float) -> ActionOutcome:
        return ActionOutcome(
            type=action.type,
            order=action.order,
            success=result.success,
            error=result.error,
            output=result.output,
            attempts=attempts,
            duration_ms=int((time.monotonic() - started) * 1000),
        )

    def shutdown(self, wait: bool = True) -> None:
        """Optionally wait, up to the default timeout each, for handler threads still running."""
        if wait:
            with self._threads_lock:
                threads = list(self._threads)
            for thread in threads:
                thread.join(timeout=self.default_timeout)
        remaining = self.running_attempts()
        if remaining:
            logger.warning(f"ActionExecutor shutdown with {remaining} handler thread(s) still running")
        logger.info("ActionExecutor shutdown completed")


def _describe(error: Exception) -> str:
    if isinstance(error, WorkflowEngineError):
        config_errors = error.details.get("config_errors")
        if config_errors:
            return f"{error.message}: {'; '.join(config_errors)}"
        return error.message
    return str(error) or type(error).__name__
