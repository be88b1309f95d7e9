# main.py
# Description: FastAPI application for the learning assistant gateway.
#
# Imports
import logging
import os
import sys
from contextlib import asynccontextmanager
#
# 3rd-party Libraries
from dotenv import load_dotenv
from fastapi import FastAPI
from loguru import logger
#
# Local Imports
#
# Learning Assistant Endpoint
from learning_assistant_API.app.api.v1.endpoints.learning_assistant import (
    method_not_allowed_handler,
    router as learning_assistant_router,
)
from learning_assistant_API.app.core.RAG.rag_service import AssistantConfig, LearningAssistantApplication
#
########################################################################################################################
#
# Functions:

load_dotenv()


# --- Loguru Configuration with Intercept Handler ---

class InterceptHandler(logging.Handler):
    def emit(self, record):
        # Get corresponding Loguru level if it exists
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Find caller from where originated the logged message
        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )

LOG_FORMAT = "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"

_sink_id = None
current_log_level = None


def configure_logging(level: str) -> str:
    """(Re)install the stderr sink at ``level``; unknown levels fall back to INFO."""
    global _sink_id, current_log_level
    level = (level or "INFO").strip().upper()
    if _sink_id is not None:
        logger.remove(_sink_id)
    try:
        _sink_id = logger.add(sys.stderr, level=level, format=LOG_FORMAT, colorize=True)
    except ValueError:
        _sink_id = logger.add(sys.stderr, level="INFO", format=LOG_FORMAT, colorize=True)
        logger.warning(f"Unknown log level '{level}', using INFO")
        level = "INFO"
    current_log_level = level
    return level


# Remove default handler
logger.remove()
configure_logging(os.getenv("LOG_LEVEL") or "INFO")

loggers_to_intercept = ["uvicorn", "uvicorn.error", "uvicorn.access", "httpx"]
for logger_name in loggers_to_intercept:
    mod_logger = logging.getLogger(logger_name)
    mod_logger.handlers = [InterceptHandler()]
    mod_logger.propagate = False


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Tests may install their own instance before start-up
    if getattr(app.state, "learning_assistant", None) is None:
        config = AssistantConfig.from_toml()
        if config.log_level != current_log_level:
            configure_logging(config.log_level)
        app.state.learning_assistant = LearningAssistantApplication(config)
        logger.info(f"App Startup: corpus root is '{config.corpus.root}'")
    yield
    assistant = getattr(app.state, "learning_assistant", None)
    if assistant is not None:
        logger.info("App Shutdown: closing provider client")
        await assistant.aclose()


app = FastAPI(
    title="Learning Assistant API",
    version="0.1.0",
    description="Retrieval-augmented learning assistant for the site's prompts, assets, stages and academy",
    lifespan=lifespan,
)

# Router for the learning assistant endpoint
app.include_router(learning_assistant_router, prefix="/api")
app.add_exception_handler(405, method_not_allowed_handler)


# Health check
@app.get("/health")
async def health_check():
    assistant = getattr(app.state, "learning_assistant", None)
    if assistant is None:
        return {"status": "starting"}
    health = assistant.health()
    return {
        "status": health["status"],
        "documents": health["documents"],
        "cache": health["cache"],
        "model": health["model"],
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "learning_assistant_API.app.main:app",
        host=os.getenv("HOST", "127.0.0.1"),
        port=int(os.getenv("PORT", "8000")),
    )

#
## End of main.py
########################################################################################################################
