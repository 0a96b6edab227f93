from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from openai import OpenAIError

from .db import SQLiteStore
from .errors import ConversationError, StepLimitExceededError
from .llm import OpenAIChatModel
from .observability import setup_logging
from .orchestrator import TurnLocks
from .routers import chat as chat_router
from .settings import get_settings

openapi_tags = [
    {"name": "health", "description": "Service health and status endpoints."},
    {
        "name": "assistant",
        "description": "Chat with the todo assistant and load the current list and history.",
    },
]

_settings = get_settings()
setup_logging(_settings.log_level, _settings.log_format)
logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    store = SQLiteStore(settings.database_path)
    store.open()
    app.state.store = store
    app.state.chat_model = OpenAIChatModel(
        model=settings.openai_model,
        api_key=settings.openai_api_key,
        base_url=settings.openai_base_url,
    )
    app.state.turn_locks = TurnLocks()
    try:
        yield
    finally:
        store.close()


app = FastAPI(
    title="Todo Assistant",
    description="Backend API service for a todo list managed through a conversational assistant.",
    version="0.1.0",
    openapi_tags=openapi_tags,
    lifespan=lifespan,
)

# Configure CORS based on settings (.env -> CORS_ALLOW_ORIGINS), with '*' fallback
allow_all = (_settings.cors_allow_origins == ["*"]) or (len(_settings.cors_allow_origins) == 0)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if allow_all else _settings.cors_allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """
    Return a consistent JSON structure for request validation errors.

    Response format:
        {
            "error": "ValidationError",
            "detail": [... pydantic/fastapi error details ...],
            "message": "Request validation failed"
        }
    """
    return JSONResponse(
        status_code=422,
        content={
            "error": "ValidationError",
            "message": "Request validation failed",
            "detail": exc.errors(),
        },
    )


@app.exception_handler(OpenAIError)
async def model_error_handler(request: Request, exc: OpenAIError) -> JSONResponse:
    """The chat model call failed; the turn is lost but persisted steps remain."""
    logger.error("model_call_failed", error=str(exc), error_type=type(exc).__name__)
    return JSONResponse(
        status_code=502,
        content={"error": "ModelProviderError", "message": "The assistant is unavailable, please try again."},
    )


@app.exception_handler(StepLimitExceededError)
async def step_limit_handler(request: Request, exc: StepLimitExceededError) -> JSONResponse:
    return JSONResponse(
        status_code=500,
        content={"error": "StepLimitExceeded", "message": str(exc)},
    )


@app.exception_handler(ConversationError)
async def conversation_error_handler(request: Request, exc: ConversationError) -> JSONResponse:
    logger.error("conversation_invalid", error=str(exc))
    return JSONResponse(
        status_code=500,
        content={"error": "ConversationError", "message": str(exc)},
    )


# PUBLIC_INTERFACE
@app.get("/", summary="Health Check", tags=["health"])
def health_check():
    """
    Health check endpoint.

    Returns:
        A JSON object indicating service health and the configured chat model.
    """
    return {"message": "Healthy", "model": _settings.openai_model}


app.include_router(chat_router.router)
