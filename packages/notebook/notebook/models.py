from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Integer, String, Text

from .db import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Document(Base):
    __tablename__ = "documents"
    id = Column(Integer, primary_key=True, index=True)
    title = Column(String, nullable=False, default="Untitled.calc")
    content = Column(Text, nullable=False, default="")
    ai_logic_json = Column(Text, nullable=False, default="{}")  # {line index: rewrite}
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, index=True)


class Setting(Base):
    __tablename__ = "settings"
    key = Column(String, primary_key=True)
    value_json = Column(Text, nullable=True)


class LogEntry(Base):
    __tablename__ = "logs"
    id = Column(Integer, primary_key=True, index=True)
    kind = Column(String, nullable=False, index=True)  # "llm", "error", "info"
    message = Column(Text, nullable=False)
    data_json = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)
