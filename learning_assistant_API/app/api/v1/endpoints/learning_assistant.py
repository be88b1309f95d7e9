# learning_assistant.py
# Description: FastAPI endpoint for the retrieval-augmented learning assistant.
#
# Chat mode:   { messages: [{ role, content }], context?: [{ title, url, snippet }], page?: { title, url } }
# Direct mode: { message, context?: string, systemPrompt?: string, maxTokens?: number }
#
# Imports
import json
from typing import Any, Dict
#
# 3rd-party Libraries
from fastapi import APIRouter, Depends, Request, Response, status
from fastapi.exception_handlers import http_exception_handler
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
#
# Local Imports
from learning_assistant_API.app.api.v1.API_Deps.Assistant_Deps import (
    get_client_ip,
    get_learning_assistant,
    get_request_origin,
    is_allowed_origin,
)
from learning_assistant_API.app.api.v1.schemas.learning_assistant_schemas import (
    ErrorResponse,
    LearningAssistantRequest,
    LearningAssistantResponse,
)
from learning_assistant_API.app.core.RAG.exceptions import (
    ClientError,
    LearningAssistantError,
    UnexpectedError,
)
from learning_assistant_API.app.core.RAG.rag_service.app import LearningAssistantApplication
#
#######################################################################################################################
#
# Functions:

router = APIRouter(tags=["Learning Assistant"])

ASSISTANT_PATH = "/learning-assistant"


def _cors_headers(request: Request, assistant: LearningAssistantApplication) -> Dict[str, str]:
    headers = {
        "Access-Control-Allow-Methods": "POST, OPTIONS",
        "Access-Control-Allow-Headers": "Content-Type",
    }
    origin = get_request_origin(request)
    if origin and is_allowed_origin(request, assistant.config.allowed_origins):
        headers["Access-Control-Allow-Origin"] = origin
        headers["Vary"] = "Origin"
    return headers


def _error_response(error: LearningAssistantError, headers: Dict[str, str]) -> JSONResponse:
    return JSONResponse(
        status_code=error.http_status,
        content=error.to_response_body(),
        headers={**headers, **error.headers},
    )


async def _parse_body(request: Request) -> LearningAssistantRequest:
    raw = await request.body()
    data: Any = {}
    if raw.strip():
        try:
            data = json.loads(raw)
        except ValueError as e:
            raise ClientError("Invalid request body", details=str(e))
    if not isinstance(data, dict):
        data = {}
    try:
        return LearningAssistantRequest.model_validate(data)
    except ValidationError as e:
        raise ClientError("Invalid request body", details=str(e))


@router.options(ASSISTANT_PATH, include_in_schema=False)
async def learning_assistant_preflight(
    request: Request,
    assistant: LearningAssistantApplication = Depends(get_learning_assistant),
):
    return Response(status_code=status.HTTP_200_OK, headers=_cors_headers(request, assistant))


def _method_not_allowed(headers: Dict[str, str]) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_405_METHOD_NOT_ALLOWED,
        content={"error": "Method Not Allowed"},
        headers={**headers, "Allow": "POST"},
    )


@router.api_route(
    ASSISTANT_PATH,
    methods=["GET", "HEAD", "PUT", "PATCH", "DELETE", "TRACE"],
    include_in_schema=False,
)
async def learning_assistant_method_not_allowed(
    request: Request,
    assistant: LearningAssistantApplication = Depends(get_learning_assistant),
):
    return _method_not_allowed(_cors_headers(request, assistant))


async def method_not_allowed_handler(request: Request, exc: StarletteHTTPException):
    """
    405 handler for methods no route lists (e.g. PROPFIND).

    On the assistant endpoint the answer keeps the endpoint's shape; any other
    path gets FastAPI's default rendering.
    """
    if request.url.path.rstrip("/").endswith(f"/api{ASSISTANT_PATH}"):
        return _method_not_allowed({})
    return await http_exception_handler(request, exc)


@router.post(
    ASSISTANT_PATH,
    summary="Answer a question, grounded in the site corpus",
    responses={
        200: {"model": LearningAssistantResponse},
        400: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        429: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
    },
)
async def learning_assistant(
    request: Request,
    assistant: LearningAssistantApplication = Depends(get_learning_assistant),
):
    """
    Chat mode retrieves sources from the corpus and grounds the reply in
    them; direct mode forwards a single message with optional context.

    Replies are cached for a few minutes; ``X-Cache`` and the ``cache``
    field report whether this response was served from the cache.
    """
    headers = _cors_headers(request, assistant)

    if not is_allowed_origin(request, assistant.config.allowed_origins):
        logger.warning(f"Rejected request from origin '{get_request_origin(request) or '<none>'}'")
        return _error_response(ClientError("Forbidden", http_status=status.HTTP_403_FORBIDDEN), headers)

    try:
        assistant.require_api_key()

        client_id = get_client_ip(request)
        assistant.check_request_limit(client_id)

        body = await _parse_body(request)
        if body.is_chat_mode:
            reply = await assistant.handle_chat(
                client_id,
                body.conversation(),
                client_context=body.client_context(),
                page=body.page_info(),
            )
        else:
            reply = await assistant.handle_direct(
                body.message,
                context=body.direct_context(),
                system_prompt=body.system_prompt,
                max_tokens=body.max_tokens,
            )
    except LearningAssistantError as e:
        if e.http_status >= 500:
            logger.error(f"Learning assistant error: {e.to_dict()}")
        else:
            logger.info(f"Learning assistant request refused: {e}")
        return _error_response(e, headers)
    except Exception as e:
        logger.exception(f"Unexpected learning assistant error: {e}")
        return _error_response(UnexpectedError.from_exception(e), headers)

    headers["X-Cache"] = reply.cache_status
    return JSONResponse(status_code=status.HTTP_200_OK, content=reply.to_response_body(), headers=headers)

#
# End of learning_assistant.py
#######################################################################################################################
