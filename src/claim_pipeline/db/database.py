"""SQLite connection and schema initialization."""

import os
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path

# Tracks which database paths have had schema applied (avoid running on every connection)
_schema_initialized: set[str] = set()
_schema_lock = threading.Lock()

SCHEMA_SQL = """
-- Claims (one per insured event)
CREATE TABLE IF NOT EXISTS claims (
    id TEXT PRIMARY KEY,
    claim_number TEXT NOT NULL UNIQUE,
    client_name TEXT NOT NULL,
    policy_number TEXT NOT NULL,
    claim_type TEXT NOT NULL,
    status TEXT DEFAULT 'new',
    created_by TEXT,
    created_at TEXT DEFAULT (datetime('now')),
    updated_at TEXT DEFAULT (datetime('now'))
);

-- Uploaded files; status follows the processing pipeline
CREATE TABLE IF NOT EXISTS documents (
    id TEXT PRIMARY KEY,
    claim_id TEXT NOT NULL,
    file_name TEXT NOT NULL,
    file_path TEXT NOT NULL,
    file_size INTEGER DEFAULT 0,
    file_type TEXT,
    status TEXT DEFAULT 'uploaded',
    uploaded_by TEXT,
    created_at TEXT DEFAULT (datetime('now')),
    updated_at TEXT DEFAULT (datetime('now')),
    FOREIGN KEY (claim_id) REFERENCES claims(id) ON DELETE CASCADE
);

-- Text transformations (one row per document, created by the first step)
CREATE TABLE IF NOT EXISTS processed_documents (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    document_id TEXT NOT NULL UNIQUE,
    ocr_text TEXT,
    anonymized_text TEXT,
    cleaned_text TEXT,
    reviewed_text TEXT,
    reviewed_by TEXT,
    reviewed_at TEXT,
    created_at TEXT DEFAULT (datetime('now')),
    updated_at TEXT DEFAULT (datetime('now')),
    FOREIGN KEY (document_id) REFERENCES documents(id) ON DELETE CASCADE
);

-- LLM analysis reports (immutable once created)
CREATE TABLE IF NOT EXISTS reports (
    id TEXT PRIMARY KEY,
    claim_id TEXT NOT NULL,
    document_id TEXT NOT NULL,
    scope TEXT NOT NULL DEFAULT 'document',
    summary TEXT NOT NULL,
    relevance_analysis TEXT NOT NULL,
    exclusions_analysis TEXT NOT NULL,
    recommendation TEXT NOT NULL,
    justification TEXT NOT NULL,
    analysis_type_id TEXT,
    analysis_type_name TEXT,
    generated_by TEXT,
    created_at TEXT DEFAULT (datetime('now')),
    FOREIGN KEY (claim_id) REFERENCES claims(id) ON DELETE CASCADE,
    FOREIGN KEY (document_id) REFERENCES documents(id) ON DELETE CASCADE
);

-- Document audit log (state changes)
CREATE TABLE IF NOT EXISTS document_audit_log (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    document_id TEXT NOT NULL,
    claim_id TEXT,
    action TEXT NOT NULL,
    old_status TEXT,
    new_status TEXT,
    details TEXT,
    actor TEXT,
    created_at TEXT DEFAULT (datetime('now'))
);

-- Insurance conditions and other reference text for report prompts
CREATE TABLE IF NOT EXISTS insurance_context (
    id TEXT PRIMARY KEY,
    context_type TEXT NOT NULL,
    title TEXT NOT NULL,
    content TEXT NOT NULL,
    is_active INTEGER DEFAULT 1,
    created_at TEXT DEFAULT (datetime('now')),
    updated_at TEXT DEFAULT (datetime('now'))
);

-- Admin-defined system prompts for claim-level reports
CREATE TABLE IF NOT EXISTS analysis_types (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    description TEXT DEFAULT '',
    system_prompt TEXT NOT NULL,
    is_active INTEGER DEFAULT 1,
    created_by TEXT,
    created_at TEXT DEFAULT (datetime('now')),
    updated_at TEXT DEFAULT (datetime('now'))
);

-- Embedded knowledge base chunks (embedding stored as a JSON array)
CREATE TABLE IF NOT EXISTS insurance_knowledge_base (
    id TEXT PRIMARY KEY,
    title TEXT NOT NULL,
    content TEXT NOT NULL,
    chunk_text TEXT NOT NULL,
    chunk_index INTEGER NOT NULL,
    embedding TEXT,
    policy_types TEXT DEFAULT '[]',
    categories TEXT DEFAULT '[]',
    source_document TEXT,
    metadata TEXT,
    is_active INTEGER DEFAULT 1,
    created_by TEXT,
    created_at TEXT DEFAULT (datetime('now'))
);

-- Application roles
CREATE TABLE IF NOT EXISTS user_roles (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL,
    role TEXT NOT NULL,
    created_at TEXT DEFAULT (datetime('now')),
    UNIQUE (user_id, role)
);
CREATE INDEX IF NOT EXISTS idx_documents_claim_id ON documents(claim_id);
CREATE INDEX IF NOT EXISTS idx_reports_claim_id ON reports(claim_id);
CREATE INDEX IF NOT EXISTS idx_audit_document_id ON document_audit_log(document_id);
"""


def get_db_path() -> str:
    """Return path to SQLite database from CLAIMS_DB_PATH env or default data/claims.db."""
    path = os.environ.get("CLAIMS_DB_PATH", "data/claims.db")
    return path


def init_db(path: str | None = None) -> None:
    """Create tables if they do not exist."""
    db_path = path or get_db_path()
    p = Path(db_path)
    p.parent.mkdir(parents=True, exist_ok=True)
    with sqlite3.connect(db_path) as conn:
        conn.executescript(SCHEMA_SQL)
    with _schema_lock:
        _schema_initialized.add(db_path)


def _ensure_schema(db_path: str) -> None:
    """Run schema once per path. Thread-safe."""
    with _schema_lock:
        if db_path in _schema_initialized:
            return
    # Run init outside lock to avoid holding it during I/O
    init_db(db_path)


@contextmanager
def get_connection(path: str | None = None):
    """Context manager yielding a database connection.

    Everything executed inside the block is committed together on success and
    rolled back if the block raises, so each block is one transaction.
    """
    db_path = path or get_db_path()
    p = Path(db_path)
    p.parent.mkdir(parents=True, exist_ok=True)
    _ensure_schema(db_path)
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    try:
        yield conn
        conn.commit()
    except BaseException:
        conn.rollback()
        raise
    finally:
        conn.close()
