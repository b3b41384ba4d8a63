"""
Power BI filter, embedding and semantic model schemas
"""
from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional, Any


class FilterRequest(BaseModel):
    message: Optional[str] = None


class PBIFilter(BaseModel):
    """A report filter proposed by the LLM"""
    table: str
    column: str
    operator: str = "In"
    values: List[Any] = []


class FilterResponse(BaseModel):
    filters: List[PBIFilter] = []
    explanation: str = ""


class EmbedConfigResponse(BaseModel):
    """Report embedding configuration for the client SDK"""
    model_config = ConfigDict(populate_by_name=True)

    status: str  # "development", "production" or "error"
    message: Optional[str] = None
    embed_url: Optional[str] = Field(default=None, alias="embedUrl")
    report_id: Optional[str] = Field(default=None, alias="reportId")
    token: Optional[str] = None
    token_expiry: Optional[str] = Field(default=None, alias="tokenExpiry")
    mock_embed_url: Optional[str] = Field(default=None, alias="mockEmbedUrl")
    mock_token: Optional[str] = Field(default=None, alias="mockToken")
    error: Optional[Any] = None


class SemanticModelStatus(BaseModel):
    """Reachability of the configured dataset"""
    model_config = ConfigDict(populate_by_name=True)

    configured: bool
    active: Optional[bool] = None
    message: str
    dataset_name: Optional[str] = Field(default=None, alias="datasetName")
    dataset_id: Optional[str] = Field(default=None, alias="datasetId")
    error: Optional[str] = None
