"""
Chat API request/response schemas
"""
from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional, Dict, Any


class Message(BaseModel):
    """Chat message"""
    role: str  # "user" or "assistant"
    content: str


class ChatRequest(BaseModel):
    """Chat request"""
    model_config = ConfigDict(populate_by_name=True)

    message: Optional[str] = None
    session_id: Optional[str] = Field(default=None, alias="sessionId")
    impersonated_user: Optional[str] = Field(default=None, alias="impersonatedUserName")


class ChatResponse(BaseModel):
    """Chat response"""
    model_config = ConfigDict(populate_by_name=True)

    response: str
    session_id: Optional[str] = Field(default=None, alias="sessionId")
    is_power_bi_data: bool = Field(default=False, alias="isPowerBIData")
    dax_query: Optional[str] = Field(default=None, alias="daxQuery")
    query_results: Optional[Dict[str, Any]] = Field(default=None, alias="queryResults")
    table: Optional[Dict[str, Any]] = None


class SessionHistory(BaseModel):
    """Messages recorded for a chat session"""
    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(alias="sessionId")
    messages: List[Message] = []


class DaxValidationRequest(BaseModel):
    query: Optional[str] = None


class DaxValidationResponse(BaseModel):
    """Validator verdict"""
    model_config = ConfigDict(populate_by_name=True)

    valid: bool
    query: Optional[str] = None
    error: Optional[str] = None
    kind: Optional[str] = None
    fixed_query: Optional[str] = Field(default=None, alias="fixedQuery")
