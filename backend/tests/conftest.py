"""Pytest configuration and fixtures for the chat backend tests."""

import pytest
from unittest.mock import AsyncMock, MagicMock

from pbi_chat.core.config import Settings
from pbi_chat.services.chat_service import ChatService
from pbi_chat.services.session_store import SessionStore


CREDENTIALS = {
    "AZURE_OPENAI_API_KEY": "test-key",
    "AZURE_OPENAI_ENDPOINT": "https://example.openai.azure.com",
    "AZURE_OPENAI_DEPLOYMENT_NAME": "gpt-test",
    "POWERBI_CLIENT_ID": "client-id",
    "POWERBI_CLIENT_SECRET": "client-secret",
    "POWERBI_TENANT_ID": "tenant-id",
    "POWERBI_WORKSPACE_ID": "workspace-id",
    "POWERBI_DATASET_ID": "dataset-id",
    "POWERBI_REPORT_ID": "report-id",
}


def make_settings(**overrides) -> Settings:
    values = dict(CREDENTIALS)
    values.update(overrides)
    return Settings(_env_file=None, **values)


# =============================================================================
# SETTINGS FIXTURES
# =============================================================================

@pytest.fixture
def configured_settings() -> Settings:
    """Azure OpenAI and Power BI fully configured."""
    return make_settings()


@pytest.fixture
def chat_only_settings() -> Settings:
    """Azure OpenAI configured, Power BI not."""
    return make_settings(
        POWERBI_CLIENT_ID="",
        POWERBI_CLIENT_SECRET="",
        POWERBI_TENANT_ID="",
        POWERBI_WORKSPACE_ID="",
        POWERBI_DATASET_ID="",
        POWERBI_REPORT_ID="",
    )


@pytest.fixture
def unconfigured_settings() -> Settings:
    """No credentials at all."""
    return make_settings(**{key: "" for key in CREDENTIALS})


# =============================================================================
# RESULT FIXTURES
# =============================================================================

@pytest.fixture
def sample_query_results() -> dict:
    """One entry of an executeQueries "results" array."""
    return {
        "tables": [
            {
                "rows": [
                    {"sales[Item]": "Mountain-100", "[Value]": 120},
                    {"sales[Item]": "Road-250", "[Value]": 75},
                ]
            }
        ]
    }


# =============================================================================
# SERVICE FIXTURES
# =============================================================================

@pytest.fixture
def llm_service():
    """LLM service double with async operations."""
    llm = MagicMock()
    llm.generate_dax = AsyncMock(return_value='EVALUATE ROW("Total", SUM(sales[Quantity]))')
    llm.explain_results = AsyncMock(return_value="Total quantity is 195.")
    llm.answer = AsyncMock(return_value="General answer.")
    llm.generate_filters = AsyncMock(return_value='{"filters": [], "explanation": "none"}')
    return llm


@pytest.fixture
def powerbi_service(sample_query_results):
    """Power BI service double with async operations."""
    pbi = MagicMock()
    pbi.execute_query = AsyncMock(return_value=sample_query_results)
    pbi.generate_embed_config = AsyncMock(return_value={
        "embedUrl": "https://app.powerbi.com/reportEmbed?reportId=report-id",
        "reportId": "report-id",
        "token": "embed-token",
        "tokenExpiry": "2026-10-19T14:00:00Z",
    })
    pbi.get_dataset = AsyncMock(return_value={"id": "dataset-id", "name": "Sales Model"})
    return pbi


@pytest.fixture
def chat_service(llm_service, powerbi_service, configured_settings) -> ChatService:
    return ChatService(
        llm_service=llm_service,
        powerbi_service=powerbi_service,
        session_store=SessionStore(history_limit=20),
        config=configured_settings,
    )
