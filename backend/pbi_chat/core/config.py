"""
Environment configuration
"""
from pydantic_settings import BaseSettings
from pydantic import field_validator
from typing import List, Union


class Settings(BaseSettings):
    """Application settings"""

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # CORS (a comma-separated string is accepted as well)
    CORS_ORIGINS: Union[str, List[str]] = "http://localhost:3000,http://localhost:8080,http://127.0.0.1:8080"

    @field_validator('CORS_ORIGINS', mode='before')
    @classmethod
    def parse_cors_origins(cls, v):
        """Turn a comma-separated CORS_ORIGINS string into a list"""
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v

    # Azure OpenAI
    AZURE_OPENAI_API_KEY: str = ""
    AZURE_OPENAI_ENDPOINT: str = ""
    AZURE_OPENAI_DEPLOYMENT_NAME: str = ""
    AZURE_OPENAI_API_VERSION: str = "2024-02-15-preview"
    LLM_MAX_TOKENS: int = 800
    DAX_TEMPERATURE: float = 0.3
    CHAT_TEMPERATURE: float = 0.7
    LLM_TIMEOUT: float = 60.0

    # Power BI service principal
    POWERBI_CLIENT_ID: str = ""
    POWERBI_CLIENT_SECRET: str = ""
    POWERBI_TENANT_ID: str = ""
    POWERBI_WORKSPACE_ID: str = ""
    POWERBI_DATASET_ID: str = ""
    POWERBI_REPORT_ID: str = ""
    POWERBI_AUTHORITY_URL: str = "https://login.microsoftonline.com"
    POWERBI_RESOURCE: str = "https://analysis.windows.net/powerbi/api"
    POWERBI_API_URL: str = "https://api.powerbi.com/v1.0/myorg"
    POWERBI_TIMEOUT: float = 15.0

    # Semantic model hints embedded in the generator prompts
    DAX_SCHEMA_HINT: str = (
        "tableName: sales | column names: CustomerName, EmailAddress, TaxAmount, Quantity, "
        "OrderDate, SalesOrderLineNumber, SalesOrderNumber, UnitPrice, Item"
    )
    FILTER_SCHEMA_HINT: str = "tableName: sales | column names: CustomerName, EmailAddress, TaxAmount"

    # In-memory chat sessions
    SESSION_HISTORY_LIMIT: int = 20
    SESSION_LIMIT: int = 1000
    CHAT_HISTORY_WINDOW: int = 5

    @property
    def openai_configured(self) -> bool:
        return bool(
            self.AZURE_OPENAI_API_KEY
            and self.AZURE_OPENAI_ENDPOINT
            and self.AZURE_OPENAI_DEPLOYMENT_NAME
        )

    @property
    def powerbi_principal_configured(self) -> bool:
        """Service principal and workspace are set"""
        return bool(
            self.POWERBI_CLIENT_ID
            and self.POWERBI_CLIENT_SECRET
            and self.POWERBI_TENANT_ID
            and self.POWERBI_WORKSPACE_ID
        )

    @property
    def powerbi_dataset_configured(self) -> bool:
        """Credentials needed to query the semantic model"""
        return self.powerbi_principal_configured and bool(self.POWERBI_DATASET_ID)

    @property
    def powerbi_report_configured(self) -> bool:
        """Credentials needed to embed the report"""
        return self.powerbi_principal_configured and bool(self.POWERBI_REPORT_ID)

    class Config:
        env_file = ".env"
        case_sensitive = True


# Process-wide settings instance
settings = Settings()
