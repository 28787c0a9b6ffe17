from .db import AsyncSessionLocal, Base, get_db, init_db
from .models import Document, LogEntry, Setting
from .crud import (
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

__all__ = [
    "init_db", "get_db", "AsyncSessionLocal", "Base",
    "Document", "Setting", "LogEntry",
    "create_document", "get_document", "list_documents", "save_document",
    "rename_document", "delete_document",
    "get_setting", "set_setting",
    "add_log", "get_logs", "clear_logs",
    "load_ai_logic",
]
