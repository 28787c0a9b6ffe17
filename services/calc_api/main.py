from __future__ import annotations

import json
import logging
import os
from contextlib import asynccontextmanager
from typing import Dict, List, Mapping, Optional

import uvicorn
from fastapi import Depends, FastAPI, HTTPException

from calc_engine import AiRewrite, evaluate_document, parse_rewrites, reconcile_text
from notebook import get_db, init_db
from notebook.crud import (
    add_log,
    clear_logs,
    create_document,
    delete_document,
    get_document,
    get_logs,
    get_setting,
    list_documents,
    load_ai_logic,
    rename_document,
    save_document,
    set_setting,
)
from notebook.models import Document
from .config import get_settings
from .providers import get_provider
from .schemas import (
    AnalyzeRequest,
    AnalyzeResponse,
    DocumentCreate,
    DocumentOut,
    DocumentSummary,
    DocumentUpdate,
    EvaluateRequest,
    EvaluateResponse,
    LogOut,
    LogsResponse,
    ReconcileRequest,
    ReconcileResponse,
    SettingOut,
    SettingUpdate,
    StatusResponse,
)
from .trace_store import TraceStore
from .workflow import STATUS_CONNECTED, STATUS_ERROR, RewriteWorkflow

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    await init_db()
    yield


app = FastAPI(
    title="NeoCalc Engine",
    description="Line-oriented calculator notepad with validated model rewrites.",
    version="0.1.0",
    lifespan=lifespan,
)

settings = get_settings()
provider = get_provider(settings)
workflow = RewriteWorkflow(provider, settings, TraceStore(settings.trace_path))


def _rewrite_map(raw: Optional[Mapping[str, AiRewrite]]) -> Dict[int, AiRewrite]:
    # Request bodies carry string keys; non-integer keys are dropped.
    if not raw:
        return {}
    return parse_rewrites({k: v.model_dump() for k, v in raw.items()})


def _document_out(doc: Document) -> DocumentOut:
    rewrites = load_ai_logic(doc)
    return DocumentOut(
        id=doc.id,
        title=doc.title,
        content=doc.content,
        created_at=doc.created_at,
        updated_at=doc.updated_at,
        ai_logic=rewrites,
        results=reconcile_text(doc.content, rewrites, settings.max_iterations),
    )


async def _require_document(db, doc_id: int) -> Document:
    doc = await get_document(db, doc_id)
    if doc is None:
        raise HTTPException(status_code=404, detail=f"Document {doc_id} not found")
    return doc


@app.get("/healthz")
def health():
    return {"status": "ok"}


@app.get("/status", response_model=StatusResponse)
async def status():
    reachable = await workflow.provider.health()
    return StatusResponse(
        provider=settings.provider,
        llm=STATUS_CONNECTED if reachable else STATUS_ERROR,
        max_iterations=settings.max_iterations,
        debounce_ms={"local": settings.local_debounce_ms, "ai": settings.ai_debounce_ms},
    )


@app.post("/evaluate", response_model=EvaluateResponse)
def evaluate_endpoint(req: EvaluateRequest):
    evaluation = evaluate_document(req.text)
    return EvaluateResponse(results=evaluation.results, variables=dict(evaluation.scope.friendly))


@app.post("/reconcile", response_model=ReconcileResponse)
def reconcile_endpoint(req: ReconcileRequest):
    cap = req.max_iterations if req.max_iterations is not None else settings.max_iterations
    results = reconcile_text(req.text, _rewrite_map(req.ai_rewrites), max(1, cap))
    return ReconcileResponse(results=results)


@app.post("/analyze", response_model=AnalyzeResponse)
async def analyze_endpoint(req: AnalyzeRequest, db=Depends(get_db)):
    doc = None
    previous = _rewrite_map(req.ai_rewrites)
    if req.document_id is not None:
        doc = await _require_document(db, req.document_id)
        if req.ai_rewrites is None:
            previous = load_ai_logic(doc)

    result = await workflow.run(req.text, ai_rewrites=previous)

    if result.accepted:
        message = f"Response in {result.elapsed_ms}ms"
        kind = "llm"
    else:
        message = "AI Response Rejected" if result.status != STATUS_ERROR else "LLM Request Failed"
        kind = "error"
    await add_log(
        db,
        kind,
        message,
        {
            "doc_id": result.request.meta.doc_id,
            "lines_hash": result.request.meta.lines_hash,
            "reason": result.reason,
            "rewrites": len(result.rewrites),
        },
        max_logs=settings.max_logs,
    )
    if doc is not None:
        await save_document(db, doc.id, req.text, result.rewrites if result.accepted else None)
    await db.commit()

    return AnalyzeResponse(
        results=result.results,
        rewrites=result.rewrites,
        status=result.status,
        accepted=result.accepted,
        reason=result.reason,
        doc_id=result.request.meta.doc_id,
        lines_hash=result.request.meta.lines_hash,
        elapsed_ms=result.elapsed_ms,
    )


@app.post("/documents", response_model=DocumentOut)
async def create_document_endpoint(req: DocumentCreate, db=Depends(get_db)):
    doc = await create_document(db, req.title, req.content)
    await db.commit()
    return _document_out(doc)


@app.get("/documents", response_model=List[DocumentSummary])
async def list_documents_endpoint(db=Depends(get_db)):
    docs = await list_documents(db)
    return [DocumentSummary(id=d.id, title=d.title, updated_at=d.updated_at) for d in docs]


@app.get("/documents/{doc_id}", response_model=DocumentOut)
async def get_document_endpoint(doc_id: int, db=Depends(get_db)):
    return _document_out(await _require_document(db, doc_id))


@app.put("/documents/{doc_id}", response_model=DocumentOut)
async def update_document_endpoint(doc_id: int, req: DocumentUpdate, db=Depends(get_db)):
    doc = await _require_document(db, doc_id)
    if req.title is not None:
        await rename_document(db, doc_id, req.title)
    if req.content is not None or req.ai_logic is not None:
        ai_logic = _rewrite_map(req.ai_logic) if req.ai_logic is not None else None
        await save_document(db, doc_id, req.content if req.content is not None else doc.content, ai_logic)
    await db.commit()
    return _document_out(doc)


@app.delete("/documents/{doc_id}")
async def delete_document_endpoint(doc_id: int, db=Depends(get_db)):
    if not await delete_document(db, doc_id):
        raise HTTPException(status_code=404, detail=f"Document {doc_id} not found")
    await db.commit()
    return {"status": "deleted", "id": doc_id}


@app.get("/logs", response_model=LogsResponse)
async def logs_endpoint(limit: int = 50, db=Depends(get_db)):
    rows = await get_logs(db, limit=limit)
    return LogsResponse(logs=[
        LogOut(
            id=r.id,
            kind=r.kind,
            message=r.message,
            data=json.loads(r.data_json) if r.data_json else None,
            created_at=r.created_at,
        )
        for r in rows
    ])


@app.delete("/logs")
async def clear_logs_endpoint(db=Depends(get_db)):
    await clear_logs(db)
    await db.commit()
    return {"status": "cleared"}


@app.get("/settings/{key}", response_model=SettingOut)
async def get_setting_endpoint(key: str, db=Depends(get_db)):
    value = await get_setting(db, key)
    if value is None:
        raise HTTPException(status_code=404, detail=f"Setting {key} not found")
    return SettingOut(key=key, value=value)


@app.put("/settings/{key}", response_model=SettingOut)
async def put_setting_endpoint(key: str, req: SettingUpdate, db=Depends(get_db)):
    await set_setting(db, key, req.value)
    await db.commit()
    return SettingOut(key=key, value=req.value)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    port = int(os.getenv("NEOCALC_PORT", "8000"))
    uvicorn.run(app, host="0.0.0.0", port=port)
