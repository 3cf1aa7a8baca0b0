"""Application factory for creating FastAPI instances."""

from datetime import datetime
from typing import Optional
from fastapi import FastAPI
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager

from .config import AppConfig, get_config, validate_config
from .core.capabilities import DataFetcher, EmailSender, ExecutionSink, HttpClient, TextGenerator
from .core.execution_engine import ExecutionEngine
from .core.smart_executor import SmartExecutor
from .core.logging import setup_logging, get_logger
from .core.middleware import ErrorHandlingMiddleware, PerformanceMonitoringMiddleware
from .integrations import GeminiTextGenerator, HttpDataFetcher, RequestsHttpClient
from .storage import SqlExecutionSink, build_engine, create_tables
from .storage.migrations import run_execution_migrations
from .api.endpoints import router, init_dependencies


class ApplicationState:
    """Container for application state and components."""

    def __init__(self):
        self.config: Optional[AppConfig] = None
        self.sink: Optional[ExecutionSink] = None
        self.execution_engine: Optional[ExecutionEngine] = None
        self.smart_executor: Optional[SmartExecutor] = None
        self.database_engine = None
        self.logger = None


# Global application state
app_state = ApplicationState()


def initialize_sink(config: AppConfig, logger) -> ExecutionSink:
    """Create the database, run migrations and return the SQL execution sink."""
    try:
        database_engine = build_engine(
            config.database_url,
            echo=config.database_echo
        )
        create_tables(database_engine)
        logger.info("Database tables created")

        try:
            run_execution_migrations(database_engine)
        except Exception as e:
            # Indexes are an optimisation; the sink works without them
            logger.warning(f"Execution storage migrations failed: {str(e)}")

        app_state.database_engine = database_engine
        return SqlExecutionSink(database_engine, retry_attempts=config.sink_retry_attempts)

    except Exception as e:
        logger.error(f"Database initialization failed: {e}")
        raise


class Capabilities:
    """External capabilities shared by the execution engine and the smart executor."""

    def __init__(
        self,
        http_client: Optional[HttpClient] = None,
        text_generator: Optional[TextGenerator] = None,
        email_sender: Optional[EmailSender] = None,
        data_fetcher: Optional[DataFetcher] = None
    ):
        self.http_client = http_client
        self.text_generator = text_generator
        self.email_sender = email_sender
        self.data_fetcher = data_fetcher

    def resolve(self, config: AppConfig, logger) -> "Capabilities":
        """Fill in the capabilities left as None from configuration."""
        http_client = self.http_client or RequestsHttpClient(default_timeout=config.http_timeout)

        text_generator = self.text_generator
        if text_generator is None:
            text_generator = GeminiTextGenerator(api_key=config.gemini_api_key, timeout=config.ai_timeout)
            if not config.gemini_api_key:
                logger.warning("GEMINI_API_KEY not set - simulation mode enabled")

        data_fetcher = self.data_fetcher
        if data_fetcher is None and config.data_source_url:
            data_fetcher = HttpDataFetcher(http_client, config.data_source_url, timeout=config.http_timeout)

        return Capabilities(http_client, text_generator, self.email_sender, data_fetcher)


def initialize_engine(config: AppConfig, sink: ExecutionSink, capabilities: Capabilities, logger) -> ExecutionEngine:
    """Build the execution engine with its capabilities."""
    execution_engine = ExecutionEngine.from_config(
        config,
        sink,
        http_client=capabilities.http_client,
        text_generator=capabilities.text_generator,
        email_sender=capabilities.email_sender,
    )
    logger.info("Execution engine initialized")
    return execution_engine


def initialize_smart_executor(
    config: AppConfig,
    sink: ExecutionSink,
    capabilities: Capabilities,
    logger
) -> SmartExecutor:
    """Build the smart executor on the same capabilities as the engine."""
    smart_executor = SmartExecutor.from_config(
        config,
        sink,
        text_generator=capabilities.text_generator,
        email_sender=capabilities.email_sender,
        data_fetcher=capabilities.data_fetcher,
    )
    if not config.report_email:
        logger.info("No report email configured - smart execution email steps will be simulated")
    logger.info("Smart executor initialized")
    return smart_executor


def create_lifespan_handler(
    config: AppConfig,
    sink: Optional[ExecutionSink] = None,
    capabilities: Optional[Capabilities] = None
):
    """Create application lifespan handler."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(
            level=config.log_level.value,
            log_file=config.log_file,
            log_format=config.log_format,
            structured=config.structured_logging,
            max_size=config.log_max_size,
            backup_count=config.log_backup_count
        )
        logger = get_logger(__name__)
        logger.info(f"Starting {config.app_name} v{config.app_version}")

        execution_sink = sink or initialize_sink(config, logger)
        resolved = (capabilities or Capabilities()).resolve(config, logger)
        execution_engine = initialize_engine(config, execution_sink, resolved, logger)
        smart_executor = initialize_smart_executor(config, execution_sink, resolved, logger)

        app_state.config = config
        app_state.sink = execution_sink
        app_state.execution_engine = execution_engine
        app_state.smart_executor = smart_executor
        app_state.logger = logger

        init_dependencies(execution_engine, smart_executor)
        logger.info("Application startup completed successfully")

        yield

        logger.info(f"Shutting down {config.app_name}")
        if app_state.database_engine is not None:
            app_state.database_engine.dispose()
            app_state.database_engine = None

    return lifespan


def create_app(
    config: Optional[AppConfig] = None,
    sink: Optional[ExecutionSink] = None,
    http_client: Optional[HttpClient] = None,
    text_generator: Optional[TextGenerator] = None,
    email_sender: Optional[EmailSender] = None,
    data_fetcher: Optional[DataFetcher] = None
) -> FastAPI:
    """Create and configure FastAPI application instance.

    Capabilities left as None are built from configuration at startup.
    """
    if config is None:
        config = get_config()

    validate_config(config)

    app = FastAPI(
        title=config.app_name,
        description="Execution engine for agent automation workflows",
        version=config.app_version,
        debug=config.debug,
        lifespan=create_lifespan_handler(
            config, sink, Capabilities(http_client, text_generator, email_sender, data_fetcher)
        )
    )

    app.add_middleware(ErrorHandlingMiddleware)
    app.add_middleware(PerformanceMonitoringMiddleware)

    app.include_router(router)
    add_health_endpoints(app, config)

    return app


def add_health_endpoints(app: FastAPI, config: AppConfig) -> None:
    """Add health check endpoints to the application."""

    @app.get("/")
    async def root():
        """Root endpoint for basic health check."""
        return {"message": f"{config.app_name} is running", "version": config.app_version}

    @app.get("/health")
    async def health_check():
        """Basic health check endpoint."""
        return {
            "status": "healthy",
            "service": config.app_name.lower().replace(" ", "-"),
            "version": config.app_version
        }

    @app.get("/health/ready")
    def readiness_check():
        """Readiness check: the execution sink answers queries."""
        try:
            if app_state.sink is None:
                raise RuntimeError("Execution sink not initialized")
            app_state.sink.list_executions(limit=1)
            return {"ready": True, "timestamp": datetime.utcnow().isoformat()}
        except Exception as e:
            get_logger(__name__).error(f"Readiness check failed: {str(e)}")
            return JSONResponse(
                status_code=503,
                content={
                    "ready": False,
                    "error": str(e),
                    "timestamp": datetime.utcnow().isoformat()
                }
            )


def get_app_state() -> ApplicationState:
    """Get the current application state."""
    return app_state
