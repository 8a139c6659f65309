"""Application factory for creating FastAPI instances."""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

import requests
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.orm import sessionmaker

from .actions import NotificationSender, RecordMutator, register_builtin_actions
from .api.endpoints import router
from .config import AppConfig, get_config, validate_config
from .core.action_executor import ActionExecutor
from .core.action_registry import ActionRegistry
from .core.error_recovery import HealthChecker, RetryConfig
from .core.execution_recorder import ExecutionRecorder
from .core.logging import get_logger, setup_logging
from .core.statistics import StatisticsAggregator
from .core.workflow_engine import WorkflowEngine
from .core.workflow_manager import WorkflowManager
from .storage.database import create_database_engine, create_tables, get_session_factory
from .storage.repository import SqlAlchemyWorkflowRepository

logger = get_logger(__name__)


class ApplicationComponents:
    """Container for the engine components shared by the API."""

    def __init__(
        self,
        config: AppConfig,
        session_factory: sessionmaker,
        action_registry: ActionRegistry,
        workflow_manager: WorkflowManager,
        workflow_engine: WorkflowEngine,
        statistics: StatisticsAggregator,
        health_checker: HealthChecker,
    ):
        self.config = config
        self.session_factory = session_factory
        self.action_registry = action_registry
        self.workflow_manager = workflow_manager
        self.workflow_engine = workflow_engine
        self.statistics = statistics
        self.health_checker = health_checker

    def shutdown(self) -> None:
        self.workflow_engine.shutdown()


def build_components(
    config: AppConfig,
    session_factory: Optional[sessionmaker] = None,
    notification_sender: Optional[NotificationSender] = None,
    record_mutator: Optional[RecordMutator] = None,
    http_session: Optional[requests.Session] = None,
) -> ApplicationComponents:
    """
    Wire repository, registry, executor, recorder, engine and statistics.

    Args:
        config: Application configuration
        session_factory: Session factory to store through; one bound to
            ``config.database_url`` is created when omitted
        notification_sender: Delivery backend for the ``notify`` action
        record_mutator: Backend for ``update_record`` and ``flag``
        http_session: Session used by the ``webhook`` action

    Returns:
        The wired components
    """
    if session_factory is None:
        engine = create_database_engine(
            config.database_url,
            echo=config.database_echo,
            connect_args=config.get_database_connect_args(),
        )
        create_tables(engine)
        session_factory = get_session_factory(engine)

    repository = SqlAlchemyWorkflowRepository(session_factory)

    action_registry = ActionRegistry()
    register_builtin_actions(
        action_registry,
        notification_sender=notification_sender,
        record_mutator=record_mutator,
        http_session=http_session,
    )

    retry_config = RetryConfig(
        max_attempts=config.max_action_attempts,
        base_delay=config.retry_base_delay,
        max_delay=config.retry_max_delay,
        exponential_base=config.retry_exponential_base,
        jitter=config.retry_jitter,
        retryable_exceptions=[Exception],
    )
    action_executor = ActionExecutor(
        action_registry,
        retry_config=retry_config,
        default_timeout=config.action_timeout,
        max_workers=config.max_action_workers,
    )

    workflow_manager = WorkflowManager(repository, action_registry, default_action_timeout=config.action_timeout)
    workflow_engine = WorkflowEngine(
        workflow_manager,
        ExecutionRecorder(repository),
        action_executor,
        stop_on_error=config.stop_on_error,
        single_flight=config.single_flight,
        auto_disable_after=config.auto_disable_after,
    )
    statistics = StatisticsAggregator(
        repository,
        default_timezone=config.reporting_timezone,
        default_days=config.default_stats_days,
    )

    components = ApplicationComponents(
        config=config,
        session_factory=session_factory,
        action_registry=action_registry,
        workflow_manager=workflow_manager,
        workflow_engine=workflow_engine,
        statistics=statistics,
        health_checker=HealthChecker(),
    )
    setup_health_checks(components)
    logger.info(f"Components initialized with {len(action_registry.list_action_types())} action types")
    return components


def setup_health_checks(components: ApplicationComponents) -> None:
    """Register health check functions for the wired components."""

    def check_database():
        session = components.session_factory()
        try:
            session.execute(text("SELECT 1"))
        finally:
            session.close()
        return {"message": "Database connection successful"}

    def check_workflow_engine():
        active = components.workflow_engine.get_active_executions()
        return {
            "message": "Workflow engine operational",
            "active_executions": sum(active.values()),
            "running_action_threads": components.workflow_engine.action_executor.running_attempts(),
            "single_flight": components.workflow_engine.single_flight,
        }

    def check_action_registry():
        return {
            "message": "Action registry operational",
            "registered_actions": len(components.action_registry.list_action_types()),
        }

    checker = components.health_checker
    checker.register_check("database", check_database, timeout=5.0)
    checker.register_check("workflow_engine", check_workflow_engine, timeout=3.0)
    checker.register_check("action_registry", check_action_registry, timeout=2.0)


def initialize_database(config: AppConfig) -> sessionmaker:
    """Create the tables and indexes for ``config.database_url``."""
    engine = create_database_engine(
        config.database_url,
        echo=config.database_echo,
        connect_args=config.get_database_connect_args(),
    )
    create_tables(engine)
    logger.info("Database tables created")

    try:
        from .storage.migrations import run_migrations
        run_migrations(engine)
        logger.info("Database migrations completed")
    except Exception as e:
        logger.warning(f"Database migrations failed: {e}")

    return get_session_factory(engine)


def create_lifespan_handler(config: AppConfig):
    """Create application lifespan handler."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(
            level=config.log_level.value,
            log_file=config.log_file,
            log_format=config.log_format,
            structured=config.structured_logging,
            max_size=config.log_max_size,
            backup_count=config.log_backup_count,
        )
        logger.info(f"Starting {config.app_name} v{config.app_version}")

        owns_components = getattr(app.state, "components", None) is None
        if owns_components:
            try:
                app.state.components = build_components(config, initialize_database(config))
            except Exception as e:
                logger.error(f"Application startup failed: {e}")
                raise

        logger.info("Application startup completed successfully")
        yield

        logger.info(f"Shutting down {config.app_name}")
        if owns_components:
            try:
                app.state.components.shutdown()
            except Exception as e:
                logger.error(f"Error during graceful shutdown: {e}")

    return lifespan


def create_app(config: Optional[AppConfig] = None,
               components: Optional[ApplicationComponents] = None) -> FastAPI:
    """
    Create and configure a FastAPI application instance.

    Args:
        config: Configuration; loaded from the environment when omitted
        components: Pre-built components. When given, the lifespan leaves
            their construction and shutdown to the caller.
    """
    if config is None:
        config = components.config if components is not None else get_config()

    validate_config(config)

    app = FastAPI(
        title=config.app_name,
        description="Event-driven workflow automation: triggers, conditions, actions and execution history",
        version=config.app_version,
        debug=config.debug,
        lifespan=create_lifespan_handler(config),
    )
    if components is not None:
        app.state.components = components

    if config.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=config.cors_origins,
            allow_credentials=True,
            allow_methods=config.cors_methods,
            allow_headers=["*"],
        )

    from .core.middleware import ErrorHandlingMiddleware, RequestLoggingMiddleware

    if config.enable_request_logging:
        app.add_middleware(RequestLoggingMiddleware, slow_request_threshold=config.slow_request_threshold)
    app.add_middleware(ErrorHandlingMiddleware)

    app.include_router(router)
    add_health_endpoints(app, config)

    return app


def add_health_endpoints(app: FastAPI, config: AppConfig) -> None:
    """Add health check endpoints to the application."""
    service_name = config.app_name.lower().replace(" ", "-")

    @app.get("/")
    async def root():
        """Root endpoint for basic health check."""
        return {"message": f"{config.app_name} is running", "version": config.app_version}

    @app.get("/health")
    async def health_check():
        """Basic health check endpoint."""
        return {"status": "healthy", "service": service_name, "version": config.app_version}

    @app.get("/health/detailed")
    async def detailed_health_check():
        """Detailed health check endpoint with component status."""
        components = getattr(app.state, "components", None)
        if components is None:
            return JSONResponse(
                status_code=503,
                content={
                    "service": service_name,
                    "overall_status": "unhealthy",
                    "error": "Application components not initialized",
                    "timestamp": datetime.now(timezone.utc).isoformat()
                }
            )

        results = await components.health_checker.run_all_checks()
        status_code = 200 if results["overall_status"] == "healthy" else 503
        return JSONResponse(
            status_code=status_code,
            content={"service": service_name, "version": config.app_version, **results}
        )

    @app.get("/health/ready")
    async def readiness_check():
        """Readiness check endpoint for container orchestration."""
        components = getattr(app.state, "components", None)
        results = {}
        if components is not None:
            for check_name in ("database", "workflow_engine"):
                results[check_name] = await components.health_checker.run_check(check_name)

        ready = bool(results) and all(result.get("status") == "healthy" for result in results.values())
        return JSONResponse(
            status_code=200 if ready else 503,
            content={
                "ready": ready,
                "checks": results,
                "timestamp": datetime.now(timezone.utc).isoformat()
            }
        )
