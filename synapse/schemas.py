# synapse/schemas.py
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _Wire(BaseModel):
    # camelCase on the wire, snake_case attributes on the ORM side
    model_config = ConfigDict(from_attributes=True, populate_by_name=True, alias_generator=to_camel)


class DocumentOut(_Wire):
    id: str
    user_id: str
    title: str
    content_type: str = Field(alias="type")
    size: int = 0
    storage_path: Optional[str] = None
    status: str
    uploaded_at: Optional[datetime] = None
    analyzed_at: Optional[datetime] = None
    summary: Optional[str] = None
    key_points: Optional[List[str]] = None
    action_items: Optional[List[Dict[str, Any]]] = None
    alerts: Optional[List[Dict[str, Any]]] = None
    ai_score: Optional[int] = None
    insights: Optional[int] = None
    error: Optional[str] = None


class MessageOut(_Wire):
    id: str
    chat_id: str
    sender_id: str
    sender: str
    content: str
    timestamp: Optional[datetime] = None
    is_bot: bool = False
    is_system: bool = False


class MessageCreate(BaseModel):
    content: str = Field(..., min_length=1)


# Callable payloads are validated by the handlers so that a bad value maps to
# invalid-argument rather than a 422.
class ChatRequest(BaseModel):
    message: Any = None
    chatId: Optional[str] = None


class ChatResponse(BaseModel):
    response: str


class AnalyzeRequest(BaseModel):
    documentId: Any = None


class AnalyzeResponse(BaseModel):
    status: str


class UploadsPerDay(BaseModel):
    name: str
    uploads: int


class CategoryCount(BaseModel):
    name: str
    value: int


class AnalyticsOut(_Wire):
    documents_analyzed: int
    insights_generated: int
    uploads_per_day: List[UploadsPerDay]
    category_distribution: List[CategoryCount]
