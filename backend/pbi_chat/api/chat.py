"""
Chat and Power BI API endpoints
"""
import logging
from functools import lru_cache

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from pbi_chat.core.exceptions import LLMServiceError, ServiceNotConfiguredError
from pbi_chat.dax.validator import validate_dax_query
from pbi_chat.schemas.chat import (
    ChatRequest,
    ChatResponse,
    DaxValidationRequest,
    DaxValidationResponse,
    SessionHistory,
)
from pbi_chat.schemas.powerbi import (
    EmbedConfigResponse,
    FilterRequest,
    FilterResponse,
    SemanticModelStatus,
)
from pbi_chat.schemas.visualization import VisualizationQueryRequest, VisualizationQueryResponse
from pbi_chat.services.chat_service import ChatService

logger = logging.getLogger(__name__)

router = APIRouter()


@lru_cache()
def get_chat_service() -> ChatService:
    """Shared service instance; sessions live in its store"""
    return ChatService()


def error_response(status_code: int, error: str, details: str = None) -> JSONResponse:
    """Top-level {error, details} body, as read by the browser client"""
    content = {"error": error}
    if details is not None:
        content["details"] = details
    return JSONResponse(status_code=status_code, content=content)


@router.post(
    "/chat",
    response_model=ChatResponse,
    response_model_exclude_none=True
)
async def chat(request: ChatRequest, chat_service: ChatService = Depends(get_chat_service)):
    """
    Answer a chat message

    - **message**: user message
    - **sessionId**: session to continue (optional, a new one is created otherwise)
    - **impersonatedUserName**: effective identity for row-level security (optional)

    Response:
    - **response**: answer text
    - **isPowerBIData**: whether the answer is backed by a query result
    - **daxQuery**, **queryResults**, **table**: the executed query and its results
    """
    try:
        return await chat_service.process_message(
            message=request.message,
            session_id=request.session_id,
            impersonated_user=request.impersonated_user
        )
    except ValueError as e:
        return error_response(400, str(e))
    except ServiceNotConfiguredError as e:
        return error_response(500, "Azure OpenAI credentials are not configured", str(e))
    except LLMServiceError as e:
        logger.error(f"Azure OpenAI API Error: {e}")
        return error_response(500, "Failed to get response from Azure OpenAI", str(e))
    except Exception as e:
        logger.exception("Server Error")
        return error_response(500, "Internal server error", str(e))


@router.post("/pbi-filter", response_model=FilterResponse)
async def pbi_filter(request: FilterRequest, chat_service: ChatService = Depends(get_chat_service)):
    """Translate a natural-language request into report filters"""
    try:
        return await chat_service.process_filter_message(request.message)
    except ValueError as e:
        return error_response(400, str(e))


@router.get(
    "/pbi-token",
    response_model=EmbedConfigResponse,
    response_model_exclude_none=True
)
async def pbi_token(chat_service: ChatService = Depends(get_chat_service)):
    """Embed URL and token for the report"""
    return await chat_service.get_embed_config()


@router.get(
    "/semantic-model-status",
    response_model=SemanticModelStatus,
    response_model_exclude_none=True
)
async def semantic_model_status(chat_service: ChatService = Depends(get_chat_service)):
    return await chat_service.get_semantic_model_status()


@router.post(
    "/visualization-query",
    response_model=VisualizationQueryResponse,
    response_model_exclude_none=True
)
async def visualization_query(
    request: VisualizationQueryRequest,
    chat_service: ChatService = Depends(get_chat_service)
):
    """Build (and run, when the dataset is configured) the query behind a chart"""
    return await chat_service.process_visualization(request)


@router.post(
    "/validate-dax",
    response_model=DaxValidationResponse,
    response_model_exclude_none=True
)
async def validate_dax(request: DaxValidationRequest):
    result = validate_dax_query(request.query)
    if result.valid:
        return DaxValidationResponse(valid=True, query=result.query)
    return DaxValidationResponse(
        valid=False,
        error=result.error,
        kind=result.kind.value,
        fixed_query=result.fixed_query
    )


@router.get("/sessions/{session_id}", response_model=SessionHistory)
async def get_session(session_id: str, chat_service: ChatService = Depends(get_chat_service)):
    if session_id not in chat_service.session_store:
        return error_response(404, "Session not found")
    return chat_service.get_session(session_id)


@router.delete("/sessions/{session_id}", status_code=204)
async def delete_session(session_id: str, chat_service: ChatService = Depends(get_chat_service)):
    if not chat_service.clear_session(session_id):
        return error_response(404, "Session not found")
