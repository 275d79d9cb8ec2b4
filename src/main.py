"""
FlowMind Assist - Main Application
==================================

Workplace help desk: document-grounded question answering and ticket routing.

Modules:
- Knowledge: Document upload, chunking, embeddings and question answering
- Routing: Ticket intake, department routing and reply suggestions

Clean Architecture Layers:
- Interfaces: FastAPI controllers
- Application: Services and DTOs
- Domain: Entities and value objects
- Infrastructure: Database, LLM, lexicon, scheduler
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

# Configuration and Core
from src.config import settings, Department, VALID_DEPARTMENTS
from src.core import ConfigurationException, ResourceNotFoundException, ValidationException

# Infrastructure
from src.infrastructure.database import (
    init_database, close_database, create_tables, get_session_context, ping_database
)
from src.infrastructure.llm import create_llm_client

# Knowledge Module
from src.knowledge.application import DocumentIngestionService, EmbeddingService
from src.knowledge.infrastructure import (
    LexiconConfigManager, EmbeddingRefreshScheduler, SQLAlchemyKnowledgeRepository
)
from src.knowledge.interfaces import knowledge_router

# Routing Module
from src.routing.application import TicketRoutingService
from src.routing.infrastructure import SQLAlchemyRoutingRuleRepository
from src.routing.interfaces import routing_router

# Logging and middleware
from src.shared.infrastructure.logging import setup_logging, get_logger
from src.shared.infrastructure.grafana import init_grafana_exporter
from src.shared.api.middleware import (
    CorrelationIDMiddleware,
    ResponseTimeMiddleware,
    LoggingMiddleware,
    validation_exception_handler,
    request_validation_exception_handler,
    not_found_exception_handler,
    global_exception_handler,
)

logger = get_logger(__name__)

DEPARTMENT_DESCRIPTIONS = {
    Department.HR: "Human resources, payroll, benefits and leave",
    Department.IT: "Software, hardware, network and security",
    Department.FINANCE: "Expenses, invoices and payments",
    Department.GENERAL: "Everything else",
}


async def seed_reference_data(lexicon_manager: LexiconConfigManager) -> None:
    """Install departments and stock routing rules into an empty database."""
    async with get_session_context() as session:
        knowledge_repository = SQLAlchemyKnowledgeRepository(session)
        if not await knowledge_repository.list_departments():
            for name in VALID_DEPARTMENTS:
                await knowledge_repository.create_department(name, DEPARTMENT_DESCRIPTIONS.get(name))
            logger.info("Seeded departments", extra={"departments": len(VALID_DEPARTMENTS)})

        if settings.seed_routing_rules:
            routing_service = TicketRoutingService(
                SQLAlchemyRoutingRuleRepository(session), None, lexicon_manager
            )
            await routing_service.create_default_rules()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan manager.

    STARTUP:
    1. Setup structured logging
    2. Initialize database and create tables
    3. Initialize LLM client
    4. Load lexicon and watch it for changes
    5. Initialize Grafana exporter
    6. Seed departments and routing rules
    7. Start embedding refresh scheduler

    SHUTDOWN:
    1. Stop scheduler
    2. Stop lexicon watcher
    3. Close database connections
    """
    # === STARTUP ===
    setup_logging(level=settings.log_level, environment=settings.environment, service=settings.app_name)
    logger.info("Starting FlowMind Assist", extra={
        "version": settings.app_version,
        "environment": settings.environment
    })

    logger.info("Initializing database")
    init_database()

    # If the database is not available the server still starts;
    # database-dependent endpoints will fail
    database_ready = True
    try:
        await create_tables()
    except Exception as e:
        database_ready = False
        logger.warning(f"Database not available - running in degraded mode: {e}")

    logger.info("Initializing LLM client", extra={"provider": settings.llm_provider})
    try:
        llm_client = create_llm_client()
    except ConfigurationException as e:
        logger.warning(f"LLM client not configured, using fallbacks only: {e.message}")
        llm_client = None

    logger.info("Loading lexicon")
    lexicon_manager = LexiconConfigManager()
    lexicon_manager.load(settings.lexicon_config_path)
    lexicon_manager.start_watching()

    try:
        if settings.grafana_host and settings.grafana_api_key and settings.grafana_instance_id:
            init_grafana_exporter(
                host=settings.grafana_host,
                api_key=settings.grafana_api_key,
                instance_id=settings.grafana_instance_id
            )
            logger.info("Grafana OTLP exporter initialized successfully")
        else:
            logger.info("Grafana OTLP exporter not configured - metrics will not be exported")
    except Exception as e:
        logger.warning(f"Grafana exporter initialization failed: {e}")

    if database_ready:
        try:
            await seed_reference_data(lexicon_manager)
        except Exception as e:
            logger.warning(f"Reference data not seeded: {e}")

    refresh_scheduler = None
    if database_ready and settings.embedding_refresh_interval > 0:

        async def embedding_refresh_job():
            """Background re-embedding of placeholder vectors."""
            async with get_session_context() as session:
                service = DocumentIngestionService(
                    SQLAlchemyKnowledgeRepository(session),
                    EmbeddingService(llm_client)
                )
                await service.refresh_fallback_embeddings()

        refresh_scheduler = EmbeddingRefreshScheduler(interval_seconds=settings.embedding_refresh_interval)
        await refresh_scheduler.start(embedding_refresh_job)

    # Store services in app state for dependency injection
    app.state.settings = settings
    app.state.llm_client = llm_client
    app.state.lexicon_manager = lexicon_manager
    app.state.refresh_scheduler = refresh_scheduler

    logger.info("FlowMind Assist started successfully")

    yield  # Application runs here

    # === SHUTDOWN ===
    logger.info("Shutting down FlowMind Assist")

    if refresh_scheduler:
        await refresh_scheduler.stop()

    lexicon_manager.stop_watching()

    await close_database()

    logger.info("FlowMind Assist shutdown complete")


app = FastAPI(
    title="FlowMind Assist API",
    description="""
    ## Workplace Help Desk

    Answers employee questions from company documents and routes support
    tickets to the right department.

    ---

    ### 📚 Knowledge Module

    - `POST /api/qa/ask` - Answer a question from uploaded documents
    - `GET /api/qa/recent` - Recently answered questions
    - `GET /api/qa/faqs` - FAQ generated from recent questions
    - `POST /api/documents/upload` - Upload a PDF, text or markdown document
    - `GET /api/documents` - List documents

    Retrieval falls back from semantic search to English/Azerbaijani keyword
    search to canned topic answers; every question gets an answer.

    ---

    ### 🎫 Routing Module

    - `POST /api/tickets` - Open a ticket and route it
    - `POST /api/tickets/{id}/suggest-replies` - Draft replies
    - `POST /api/tickets/{id}/routing-feedback` - Confirm or correct routing
    - `GET/POST /api/routing-rules` - Keyword routing rules
    - `GET /api/routing-accuracy` - Mean rule accuracy

    Routing tries keyword rules, then the LLM, then built-in department
    keywords.
    """,
    version=settings.app_version,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)
app.state.settings = settings

# === CORS Middleware ===
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# === Custom Middleware (from shared) ===
# Last added runs first: the correlation id is set before request logging
app.add_middleware(LoggingMiddleware)
app.add_middleware(ResponseTimeMiddleware)
app.add_middleware(CorrelationIDMiddleware)

app.add_exception_handler(RequestValidationError, request_validation_exception_handler)
app.add_exception_handler(ValidationException, validation_exception_handler)
app.add_exception_handler(ResourceNotFoundException, not_found_exception_handler)
app.add_exception_handler(Exception, global_exception_handler)

# === Include Module Routers ===
app.include_router(knowledge_router)
app.include_router(routing_router)


# === Health Check Endpoint ===

@app.get("/health", tags=["Health"])
async def health_check(request: Request):
    """
    Health check endpoint for load balancers and orchestrators.

    Reports database reachability, LLM availability, lexicon state and
    the refresh scheduler. Degraded dependencies do not fail the check.
    """
    state = request.app.state
    scheduler = getattr(state, "refresh_scheduler", None)
    checks = {
        "database": "connected" if await ping_database() else "unavailable",
        "llm_client": "available" if getattr(state, "llm_client", None) else "not_configured",
        "lexicon": "loaded" if getattr(state, "lexicon_manager", None) else "built_in",
        "embedding_refresh": "running" if scheduler and scheduler.is_running else "stopped",
    }
    return {
        "status": "healthy",
        "version": settings.app_version,
        "environment": settings.environment,
        "checks": checks
    }


@app.get("/", tags=["Root"])
async def root():
    """Root endpoint with API information."""
    return {
        "service": "FlowMind Assist",
        "version": settings.app_version,
        "architecture": "Clean Architecture / Modular Monolith",
        "docs": "/docs",
        "health": "/health",
        "modules": {
            "knowledge": {
                "prefix": "/api",
                "endpoints": [
                    "POST /api/qa/ask - Answer a question",
                    "GET /api/qa/recent - Recent questions",
                    "GET /api/qa/faqs - Generated FAQ",
                    "POST /api/documents/upload - Upload a document",
                    "GET /api/documents - List documents"
                ]
            },
            "routing": {
                "prefix": "/api",
                "endpoints": [
                    "POST /api/tickets - Open and route a ticket",
                    "POST /api/tickets/{id}/suggest-replies - Draft replies",
                    "POST /api/tickets/{id}/routing-feedback - Routing feedback",
                    "GET /api/routing-rules - List routing rules",
                    "POST /api/routing-rules - Add a routing rule",
                    "GET /api/routing-accuracy - Rule accuracy"
                ]
            }
        }
    }


# === Development Entry Point ===

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "src.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.environment == "development",
        log_level="info"
    )
