"""SQLite database module for claims, documents, reports and reference data."""

from claim_pipeline.db.database import get_connection, get_db_path, init_db
from claim_pipeline.db.reference import (
    AnalysisTypeRepository,
    ContextRepository,
    KnowledgeRepository,
    RoleRepository,
)
from claim_pipeline.db.repository import ClaimRepository, DocumentRepository, ReportRepository

__all__ = [
    "AnalysisTypeRepository",
    "ClaimRepository",
    "ContextRepository",
    "DocumentRepository",
    "KnowledgeRepository",
    "ReportRepository",
    "RoleRepository",
    "get_connection",
    "get_db_path",
    "init_db",
]
