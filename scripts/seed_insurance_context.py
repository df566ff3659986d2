"""Load insurance context entries and analysis types from JSON into SQLite.

Run from project root:
    python scripts/seed_insurance_context.py [path/to/insurance_context.json]

The file holds two optional lists:
    {"contexts": [{"context_type", "title", "content"}, ...],
     "analysis_types": [{"name", "system_prompt", "description"}, ...]}

Uses CLAIMS_DB_PATH (default data/claims.db). Entries whose title (context) or
name (analysis type) already exist are skipped, so re-running does not
duplicate them.
"""

import json
import sys
from pathlib import Path

# Project root (parent of scripts/)
_ROOT = Path(__file__).resolve().parent.parent

if str(_ROOT / "src") not in sys.path:
    sys.path.insert(0, str(_ROOT / "src"))

from claim_pipeline.db.database import get_connection, init_db  # noqa: E402
from claim_pipeline.db.reference import AnalysisTypeRepository, ContextRepository  # noqa: E402

_DEFAULT_PATH = _ROOT / "data" / "insurance_context.json"


def _existing(table: str, column: str) -> set[str]:
    with get_connection() as conn:
        rows = conn.execute(f"SELECT {column} FROM {table}").fetchall()
    return {r[0] for r in rows}


def seed(data: dict) -> tuple[int, int]:
    """Insert new entries; returns (contexts added, analysis types added)."""
    contexts = ContextRepository()
    analysis_types = AnalysisTypeRepository()

    known_titles = _existing("insurance_context", "title")
    added_contexts = 0
    for entry in data.get("contexts", []):
        title = (entry.get("title") or "").strip()
        content = entry.get("content") or ""
        if not title or not content.strip() or title in known_titles:
            continue
        contexts.add_context(entry.get("context_type") or "general", title, content)
        known_titles.add(title)
        added_contexts += 1

    known_names = _existing("analysis_types", "name")
    added_types = 0
    for entry in data.get("analysis_types", []):
        name = (entry.get("name") or "").strip()
        prompt = (entry.get("system_prompt") or "").strip()
        if not name or not prompt or name in known_names:
            continue
        analysis_types.add_analysis_type(name, prompt, description=entry.get("description", ""))
        known_names.add(name)
        added_types += 1

    return added_contexts, added_types


def main() -> None:
    path = Path(sys.argv[1]) if len(sys.argv) > 1 else _DEFAULT_PATH
    if not path.exists():
        print(f"Context file not found: {path}")
        sys.exit(1)

    with open(path, encoding="utf-8") as f:
        data = json.load(f)

    init_db()
    added_contexts, added_types = seed(data)
    print(f"Seeded {added_contexts} insurance context entries and {added_types} analysis types.")


if __name__ == "__main__":
    main()
