from __future__ import annotations

import json
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from calc_engine import AiRewrite, parse_rewrites

from .models import Document, LogEntry, Setting, utcnow

MAX_LOGS = 100


def _dumps(obj: Any) -> str:
    return json.dumps(obj, ensure_ascii=False, default=str)


def dump_ai_logic(ai_logic: Mapping[Any, Any]) -> str:
    out: Dict[str, Any] = {}
    for key, item in (ai_logic or {}).items():
        if isinstance(item, BaseModel):
            item = item.model_dump(exclude_none=True)
        out[str(key)] = item
    return _dumps(out)


def load_ai_logic(document: Optional[Document]) -> Dict[int, AiRewrite]:
    """Persisted rewrite map of a document; unreadable entries are dropped."""
    if document is None or not document.ai_logic_json:
        return {}
    try:
        raw = json.loads(document.ai_logic_json)
    except json.JSONDecodeError:
        return {}
    return parse_rewrites(raw)


# -- documents --------------------------------------------------------


async def create_document(db: AsyncSession, title: str = "Untitled.calc", content: str = "") -> Document:
    doc = Document(title=title, content=content, ai_logic_json="{}")
    db.add(doc)
    await db.flush()
    return doc


async def get_document(db: AsyncSession, doc_id: int) -> Optional[Document]:
    return await db.get(Document, doc_id)


async def list_documents(db: AsyncSession, limit: int = 200) -> List[Document]:
    res = await db.execute(
        select(Document).order_by(Document.updated_at.desc(), Document.id.desc()).limit(limit)
    )
    return list(res.scalars().all())


async def save_document(
    db: AsyncSession,
    doc_id: int,
    content: str,
    ai_logic: Optional[Mapping[Any, Any]] = None,
) -> Optional[Document]:
    """
    Store new content. The persisted rewrite map is only replaced when
    `ai_logic` is given, so plain edits keep the last accepted round.
    """
    doc = await get_document(db, doc_id)
    if doc is None:
        return None
    doc.content = content
    if ai_logic is not None:
        doc.ai_logic_json = dump_ai_logic(ai_logic)
    doc.updated_at = utcnow()
    await db.flush()
    return doc


async def rename_document(db: AsyncSession, doc_id: int, title: str) -> Optional[Document]:
    doc = await get_document(db, doc_id)
    if doc is None:
        return None
    doc.title = title
    doc.updated_at = utcnow()
    await db.flush()
    return doc


async def delete_document(db: AsyncSession, doc_id: int) -> bool:
    doc = await get_document(db, doc_id)
    if doc is None:
        return False
    await db.delete(doc)
    await db.flush()
    return True


# -- settings ---------------------------------------------------------


async def get_setting(db: AsyncSession, key: str, default: Any = None) -> Any:
    row = await db.get(Setting, key)
    if row is None or row.value_json is None:
        return default
    return json.loads(row.value_json)


async def set_setting(db: AsyncSession, key: str, value: Any) -> None:
    row = await db.get(Setting, key)
    if row is None:
        db.add(Setting(key=key, value_json=_dumps(value)))
    else:
        row.value_json = _dumps(value)
    await db.flush()


# -- debug log --------------------------------------------------------


async def add_log(
    db: AsyncSession,
    kind: str,
    message: str,
    data: Optional[Any] = None,
    max_logs: int = MAX_LOGS,
) -> LogEntry:
    """Append a log row and keep only the newest `max_logs` rows."""
    entry = LogEntry(kind=kind, message=message, data_json=_dumps(data) if data is not None else None)
    db.add(entry)
    await db.flush()

    newest = select(LogEntry.id).order_by(LogEntry.id.desc()).limit(max(1, max_logs))
    await db.execute(delete(LogEntry).where(LogEntry.id.not_in(newest)))
    return entry


async def get_logs(db: AsyncSession, limit: int = 50) -> List[LogEntry]:
    res = await db.execute(select(LogEntry).order_by(LogEntry.id.desc()).limit(limit))
    return list(res.scalars().all())


async def clear_logs(db: AsyncSession) -> None:
    await db.execute(delete(LogEntry))
