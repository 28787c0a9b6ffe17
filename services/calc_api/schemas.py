from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from calc_engine import AiRewrite, LineResult


class EvaluateRequest(BaseModel):
    text: str


class EvaluateResponse(BaseModel):
    results: Dict[int, LineResult]
    variables: Dict[str, float]


class ReconcileRequest(BaseModel):
    text: str
    ai_rewrites: Dict[str, AiRewrite] = {}
    max_iterations: Optional[int] = None


class ReconcileResponse(BaseModel):
    results: Dict[int, LineResult]


class AnalyzeRequest(BaseModel):
    text: str
    document_id: Optional[int] = None
    ai_rewrites: Optional[Dict[str, AiRewrite]] = None


class AnalyzeResponse(BaseModel):
    results: Dict[int, LineResult]
    rewrites: Dict[int, AiRewrite]
    status: str
    accepted: bool
    reason: Optional[str]
    doc_id: str
    lines_hash: str
    elapsed_ms: int


class DocumentCreate(BaseModel):
    title: str = "Untitled.calc"
    content: str = ""


class DocumentUpdate(BaseModel):
    title: Optional[str] = None
    content: Optional[str] = None
    ai_logic: Optional[Dict[str, AiRewrite]] = None


class DocumentSummary(BaseModel):
    id: int
    title: str
    updated_at: Optional[datetime]


class DocumentOut(DocumentSummary):
    content: str
    created_at: Optional[datetime]
    ai_logic: Dict[int, AiRewrite]
    results: Dict[int, LineResult]


class LogOut(BaseModel):
    id: int
    kind: str
    message: str
    data: Optional[Any]
    created_at: Optional[datetime]


class StatusResponse(BaseModel):
    provider: str
    llm: str
    max_iterations: int
    debounce_ms: Dict[str, int]


class LogsResponse(BaseModel):
    logs: List[LogOut]


class SettingUpdate(BaseModel):
    value: Any


class SettingOut(BaseModel):
    key: str
    value: Any
