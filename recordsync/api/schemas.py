"""
Response models for the replication API.

Datasets themselves travel as free-form JSON objects; only the envelopes
around them are modelled here.
"""

from pydantic import BaseModel
from typing import Optional, List, Dict, Any


class HealthResponse(BaseModel):
    status: str
    timestamp: str
    version: str
    db_health: bool


class PushResponse(BaseModel):
    success: bool
    version: int
    updated_at: str
    merged: Dict[str, Any]


class UserStats(BaseModel):
    user_key: str
    version: int
    updated_at: str
    collections: Dict[str, int]


class StatsResponse(BaseModel):
    stats: List[UserStats]


class ErrorResponse(BaseModel):
    detail: str
    debug: Optional[Any] = None
