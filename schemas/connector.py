"""
Pydantic schemas exchanged with data connectors
"""

from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from datetime import datetime


class AuthConfig(BaseModel):
    """Credentials and connection parameters for a source"""
    url: Optional[str] = None
    host: Optional[str] = None
    port: Optional[int] = None
    database: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    options: Dict[str, Any] = Field(default_factory=dict)


class ConnectionConfig(BaseModel):
    """Everything needed to open a connector session"""
    connection_id: str = Field(..., min_length=1)
    connector_type: str = Field(..., min_length=1)
    auth: AuthConfig = Field(default_factory=AuthConfig)


class QueryResult(BaseModel):
    """Result of a query executed on the source"""
    columns: List[str] = Field(default_factory=list)
    rows: List[Dict[str, Any]] = Field(default_factory=list)
    row_count: int = 0
    execution_time_ms: Optional[float] = None


class ConnectionTestResult(BaseModel):
    success: bool
    message: str = ""
    latency_ms: Optional[float] = None
    server_version: Optional[str] = None


class OAuthTokens(BaseModel):
    access_token: str
    refresh_token: Optional[str] = None
    expires_at: Optional[datetime] = None
    scope: Optional[str] = None
