"""
Visualization query request/response schemas
"""
from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional, Dict, Any


class DataRole(BaseModel):
    """A chart slot bound to a table column"""
    model_config = ConfigDict(populate_by_name=True)

    name: str  # "category", "value"/"values", "secondValue"/"y"
    table: str
    column: str
    aggregation: Optional[str] = None


class VisualizationSpec(BaseModel):
    """Declarative chart definition"""
    model_config = ConfigDict(populate_by_name=True)

    type: str = "default"  # column, bar, line, pie, donut, scatter, table
    data_roles: List[DataRole] = Field(default_factory=list, alias="dataRoles")
    title: Optional[str] = None


class VisualizationQueryRequest(VisualizationSpec):
    """Chart definition plus the execution context"""
    impersonated_user: Optional[str] = Field(default=None, alias="impersonatedUserName")


class VisualizationQueryResponse(BaseModel):
    """Synthesized query and, when executed, its results"""
    model_config = ConfigDict(populate_by_name=True)

    response: str
    is_power_bi_data: bool = Field(default=False, alias="isPowerBIData")
    dax_query: Optional[str] = Field(default=None, alias="daxQuery")
    query_results: Optional[Dict[str, Any]] = Field(default=None, alias="queryResults")
    table: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
