"""
Chat service - orchestrator
Coordinates DAX generation, validation, execution and the fallbacks between them
"""
import json
import logging
from dataclasses import dataclass
from typing import Optional

from pbi_chat.core.config import Settings, settings as default_settings
from pbi_chat.core.exceptions import (
    LLMServiceError,
    PowerBIServiceError,
    ServiceNotConfiguredError,
)
from pbi_chat.dax.validator import validate_dax_query
from pbi_chat.dax.visualization import generate_dax_for_visualization
from pbi_chat.schemas.chat import ChatResponse, SessionHistory
from pbi_chat.schemas.powerbi import EmbedConfigResponse, FilterResponse, SemanticModelStatus
from pbi_chat.schemas.visualization import VisualizationQueryRequest, VisualizationQueryResponse
from pbi_chat.services.llm_service import LLMService, NOT_DAX_QUERY, strip_code_fences
from pbi_chat.services.powerbi_service import PowerBIService
from pbi_chat.services.result_formatter import summarize_for_prompt, to_table
from pbi_chat.services.session_store import SessionStore

logger = logging.getLogger(__name__)

INVALID_QUERY_PREFIX = (
    "I couldn't generate a valid DAX query for your question. "
    "I'll try to answer with my general knowledge instead. "
)
RETRY_ERROR_PREFIX = (
    "I had trouble generating a valid DAX query. "
    "I'll answer with my general knowledge instead. "
)
PROCESSING_ERROR_PREFIX = (
    "I encountered an issue processing your question. "
    "I'll try to answer with my general knowledge instead. "
)
QUERY_FAILED_RESPONSE = (
    "I encountered difficulty querying your Power BI dataset. "
    "This might be because I don't have the right table or column names for your specific dataset. "
    "Could you try asking in a different way or provide some information about what tables "
    "are available in your dataset?"
)


@dataclass
class DaxResolution:
    """Outcome of the generate/validate/retry loop"""
    query: Optional[str] = None
    fallback_prefix: str = ""
    attempts: int = 1

    @property
    def resolved(self) -> bool:
        return self.query is not None


class ChatService:
    """Chat orchestrator service"""

    def __init__(
        self,
        llm_service: Optional[LLMService] = None,
        powerbi_service: Optional[PowerBIService] = None,
        session_store: Optional[SessionStore] = None,
        config: Optional[Settings] = None
    ):
        self.settings = config or default_settings
        self.llm_service = llm_service or LLMService(self.settings)
        self.powerbi_service = powerbi_service or PowerBIService(self.settings)
        if session_store is None:
            session_store = SessionStore(self.settings.SESSION_HISTORY_LIMIT, self.settings.SESSION_LIMIT)
        self.session_store = session_store

    async def process_message(
        self,
        message: Optional[str],
        session_id: Optional[str] = None,
        impersonated_user: Optional[str] = None
    ) -> ChatResponse:
        """
        Answer a chat message, from the semantic model when possible

        Pipeline:
        1. DAX generation, validation and at most one regeneration
        2. Query execution
        3. Explanation of the results
        Questions that cannot be turned into a valid query are answered by the
        general chat instead.

        Raises:
            ValueError: empty message
            ServiceNotConfiguredError: Azure OpenAI credentials missing
            LLMServiceError: the general chat fallback itself failed
        """
        if not message or not message.strip():
            raise ValueError("Message is required")
        if not self.settings.openai_configured:
            raise ServiceNotConfiguredError(
                "Azure OpenAI credentials are not configured. Please set AZURE_OPENAI_API_KEY, "
                "AZURE_OPENAI_ENDPOINT, and AZURE_OPENAI_DEPLOYMENT_NAME in your .env file"
            )

        session_id = session_id or self.session_store.new_session_id()

        if not self.settings.powerbi_dataset_configured:
            logger.info("Power BI semantic model not configured. Falling back to standard chat.")
            return await self._standard_chat(message, session_id)

        logger.info(f"Using Power BI semantic model integration for: {message}")

        try:
            resolution = await self.resolve_dax_query(message)
        except LLMServiceError as e:
            logger.error(f"DAX generation failed: {e}")
            return await self._standard_chat(message, session_id, prefix=PROCESSING_ERROR_PREFIX)
        except Exception:
            logger.exception("Unexpected error while generating the DAX query")
            return await self._standard_chat(message, session_id, prefix=PROCESSING_ERROR_PREFIX)

        if not resolution.resolved:
            return await self._standard_chat(message, session_id, prefix=resolution.fallback_prefix)

        dax_query = resolution.query
        try:
            query_results = await self.powerbi_service.execute_query(dax_query, impersonated_user)
            explanation = await self.llm_service.explain_results(
                message, dax_query, summarize_for_prompt(query_results)
            )
        except PowerBIServiceError as e:
            logger.error(f"Error executing query: {e}")
            if e.details:
                logger.error(f"PBI Error details: {e.details}")
            return self._reply(session_id, message, ChatResponse(response=QUERY_FAILED_RESPONSE))
        except LLMServiceError as e:
            logger.error(f"Explaining query results failed: {e}")
            return await self._standard_chat(message, session_id, prefix=PROCESSING_ERROR_PREFIX)
        except Exception:
            logger.exception("Unexpected error while querying the semantic model")
            return await self._standard_chat(message, session_id, prefix=PROCESSING_ERROR_PREFIX)

        return self._reply(
            session_id,
            message,
            ChatResponse(
                response=explanation,
                is_power_bi_data=True,
                dax_query=dax_query,
                query_results=query_results,
                table=to_table(query_results)
            )
        )

    async def resolve_dax_query(self, message: str) -> DaxResolution:
        """
        Turn a question into an executable DAX query

        A mechanical fix from the validator is used as is. A query without a fix
        is regenerated once with the validation error; if that also fails, the
        question goes to the general chat. Generation and validation run at most
        twice each.

        Raises:
            LLMServiceError: the first generation call failed
        """
        dax_content = await self.llm_service.generate_dax(message)
        logger.info(f"Generated DAX query: {dax_content}")

        if dax_content == NOT_DAX_QUERY:
            return DaxResolution()

        validation = validate_dax_query(dax_content)
        if validation.valid:
            return DaxResolution(query=validation.query)

        logger.warning(f"DAX validation failed: {validation.error}")
        if validation.fixed_query:
            logger.info(f"Using fixed DAX query: {validation.fixed_query}")
            return DaxResolution(query=validation.fixed_query)

        try:
            retry_content = await self.llm_service.generate_dax(
                message, failed_query=dax_content, error=validation.error
            )
        except LLMServiceError as e:
            logger.error(f"Error retrying DAX query generation: {e}")
            return DaxResolution(fallback_prefix=RETRY_ERROR_PREFIX, attempts=2)

        logger.info(f"Retry generated DAX query: {retry_content}")
        if retry_content == NOT_DAX_QUERY:
            return DaxResolution(attempts=2)

        retry_validation = validate_dax_query(retry_content)
        if retry_validation.valid:
            return DaxResolution(query=retry_validation.query, attempts=2)
        if retry_validation.fixed_query:
            return DaxResolution(query=retry_validation.fixed_query, attempts=2)

        logger.warning(f"Retried DAX query is still invalid: {retry_validation.error}")
        return DaxResolution(fallback_prefix=INVALID_QUERY_PREFIX, attempts=2)

    async def _standard_chat(
        self,
        message: str,
        session_id: str,
        prefix: str = ""
    ) -> ChatResponse:
        history = self.session_store.get_history(session_id)
        content = await self.llm_service.answer(message, history)
        return self._reply(session_id, message, ChatResponse(response=prefix + content))

    def _reply(self, session_id: str, message: str, response: ChatResponse) -> ChatResponse:
        self.session_store.append(session_id, "user", message)
        self.session_store.append(session_id, "assistant", response.response)
        response.session_id = session_id
        return response

    async def process_visualization(
        self,
        request: VisualizationQueryRequest
    ) -> VisualizationQueryResponse:
        """
        Build and run the query behind a chart definition

        Synthesis failures and execution errors come back as a text-only
        response; this method does not raise for them.
        """
        synthesis = generate_dax_for_visualization(request)
        if not synthesis.succeeded:
            logger.warning(f"Visualization query synthesis failed: {synthesis.error}")
            return VisualizationQueryResponse(
                response=f"I couldn't build a query for this chart: {synthesis.error}",
                error=synthesis.error
            )

        if not self.settings.powerbi_dataset_configured:
            return VisualizationQueryResponse(
                response="Power BI semantic model is not configured. The query was generated but not executed.",
                dax_query=synthesis.query
            )

        try:
            query_results = await self.powerbi_service.execute_query(
                synthesis.query, request.impersonated_user
            )
        except PowerBIServiceError as e:
            logger.error(f"Error executing visualization query: {e}")
            return VisualizationQueryResponse(
                response="I couldn't retrieve the data for this chart from your Power BI dataset.",
                dax_query=synthesis.query,
                error=e.details or str(e)
            )

        title = request.title or f"{request.type} chart"
        return VisualizationQueryResponse(
            response=f"Data for {title}",
            is_power_bi_data=True,
            dax_query=synthesis.query,
            query_results=query_results,
            table=to_table(query_results)
        )

    async def process_filter_message(self, message: Optional[str]) -> FilterResponse:
        """
        Translate a request into report filters

        Errors are described in the explanation rather than raised.

        Raises:
            ValueError: empty message
        """
        if not message or not message.strip():
            raise ValueError("Message is required")
        if not self.settings.openai_configured:
            return FilterResponse(
                explanation="Azure OpenAI credentials are not configured. Please add your keys to the .env file."
            )

        try:
            content = await self.llm_service.generate_filters(message)
        except LLMServiceError as e:
            if e.status_code == 401:
                explanation = "Authentication error with Azure OpenAI. Your API key may be invalid or expired."
            elif e.status_code == 404:
                explanation = "Azure OpenAI resource not found. Check your deployment name and endpoint URL."
            else:
                explanation = f"Error connecting to Azure OpenAI: {e}"
            return FilterResponse(explanation=explanation)

        try:
            return FilterResponse.model_validate(json.loads(strip_code_fences(content)))
        except ValueError as e:
            logger.error(f"Error parsing OpenAI response as JSON: {e}")
            logger.debug(f"Raw response: {content}")
            return FilterResponse(
                explanation="I received a response but couldn't parse it into a valid filter. "
                            "This usually happens when the AI response isn't properly formatted JSON."
            )

    async def get_embed_config(self) -> EmbedConfigResponse:
        """Embedding configuration, or a development placeholder"""
        if not self.settings.powerbi_report_configured:
            logger.info("Power BI credentials not fully configured, returning development mode response")
            return EmbedConfigResponse(
                status="development",
                message="Power BI credentials not fully configured. "
                        "Add your credentials to the .env file to enable embedding.",
                mock_embed_url="https://app.powerbi.com/reportEmbed?reportId=sample&groupId=sample",
                mock_token="development_token"
            )

        try:
            config = await self.powerbi_service.generate_embed_config()
        except PowerBIServiceError as e:
            return EmbedConfigResponse(
                status="error",
                message="Error generating Power BI token. Check server logs for details.",
                error=e.details or str(e)
            )
        return EmbedConfigResponse(status="production", **config)

    async def get_semantic_model_status(self) -> SemanticModelStatus:
        if not self.settings.powerbi_dataset_configured:
            return SemanticModelStatus(
                configured=False,
                message="Power BI Semantic Model is not configured."
            )

        try:
            dataset = await self.powerbi_service.get_dataset()
        except PowerBIServiceError as e:
            logger.error(f"Power BI Semantic Model validation error: {e}")
            return SemanticModelStatus(
                configured=True,
                active=False,
                message="Power BI Semantic Model is configured but there was an error connecting to it.",
                error=e.details or str(e)
            )

        return SemanticModelStatus(
            configured=True,
            active=True,
            message="Power BI Semantic Model is configured and available.",
            dataset_name=dataset.get("name"),
            dataset_id=dataset.get("id")
        )

    def get_session(self, session_id: str) -> SessionHistory:
        return SessionHistory(
            session_id=session_id,
            messages=self.session_store.get_history(session_id)
        )

    def clear_session(self, session_id: str) -> bool:
        return self.session_store.clear(session_id)
