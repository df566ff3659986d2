"""CLI entry point for the claim document pipeline.

This module provides the command-line interface with full observability:
- Structured logging with claim and document context
- Optional metrics reporting
"""

import json
import logging
import os
import sys
from pathlib import Path

from pydantic import ValidationError

# Ensure src is on path when run as script
if __name__ == "__main__" and str(Path(__file__).resolve().parent.parent) not in sys.path:
    sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

DEFAULT_CLI_USER = "cli"

# Commands taking exactly one id or path argument
_SINGLE_ARG_COMMANDS = {
    "create-claim": "<claim.json>",
    "documents": "<claim_id>",
    "extract": "<document_id>",
    "anonymize": "<document_id>",
    "clean": "<document_id>",
    "batch": "<claim_id>",
    "report": "<document_id>",
    "final-report": "<claim_id>",
    "workflow": "<claim_id>",
    "history": "<document_id>",
    "claim-history": "<claim_id>",
    "kb-ingest": "<knowledge.json>",
}


def _setup_logging() -> None:
    """Configure logging for CLI usage."""
    from claim_pipeline.observability import get_logger

    get_logger("claim_pipeline")
    logging.getLogger("claim_pipeline").setLevel(
        logging.DEBUG if "--debug" in sys.argv else logging.INFO
    )


def _usage() -> str:
    return """Usage:
  claim-pipeline create-claim <claim.json>        Create a claim from JSON file
  claim-pipeline upload <claim_id> <file>...      Upload documents to a claim
  claim-pipeline documents <claim_id>             List a claim's documents
  claim-pipeline extract <document_id>            Run OCR on a document
  claim-pipeline anonymize <document_id>          Anonymize a document's OCR text
  claim-pipeline clean <document_id>              Clean a document's anonymized text
  claim-pipeline approve <document_id> <text>     Approve a document with the text in file <text>
  claim-pipeline batch <claim_id>                 Run extract, anonymize and clean on new documents
  claim-pipeline report <document_id>             Generate a report for an approved document
  claim-pipeline final-report <claim_id>          Generate the final report for a claim
  claim-pipeline workflow <claim_id>              Show workflow status and progress
  claim-pipeline claims                           List claims created by the user
  claim-pipeline history <document_id>            Show a document's audit log
  claim-pipeline claim-history <claim_id>         Show the audit log of all documents of a claim
  claim-pipeline kb-ingest <knowledge.json>       Add a document to the knowledge base (admin)
  claim-pipeline kb-search <query>                Search the knowledge base
  claim-pipeline dashboard                        Show dashboard counters for the user
  claim-pipeline grant-role <user_id> <role>      Grant admin or likvidator role (admin)
  claim-pipeline metrics [claim_id]               Show metrics (optionally for specific claim)

Options:
  --user=ID                                       Acting user (default: $CLAIM_PIPELINE_USER or cli)
  --instruction=TEXT                              Extra instruction for final-report
  --analysis-type=ID                              Analysis type for final-report
  --debug                                         Enable debug logging
  --json                                          Use JSON log format
"""


def _fail(message: str) -> None:
    print(f"Error: {message}", file=sys.stderr)
    sys.exit(1)


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False, default=str))


def _option(options: list[str], name: str) -> str | None:
    prefix = f"--{name}="
    for option in options:
        if option.startswith(prefix):
            return option[len(prefix):]
    return None


def _session(options: list[str]):
    from claim_pipeline.auth.session import resolve_session

    user_id = _option(options, "user") or os.environ.get("CLAIM_PIPELINE_USER", "").strip() or DEFAULT_CLI_USER
    return resolve_session(user_id)


def _load_json(path: Path) -> dict:
    if not path.exists():
        _fail(f"File not found: {path}")
    try:
        with open(path, encoding="utf-8") as f:
            return json.load(f)
    except json.JSONDecodeError as e:
        _fail(f"Invalid JSON in {path}: {e}")


def _build_pipeline():
    from claim_pipeline.pipeline.steps import build_document_pipeline

    try:
        return build_document_pipeline()
    except ValueError as e:
        _fail(f"Pipeline is not configured: {e}")


def _build_reports():
    from claim_pipeline.pipeline.reports import build_report_generator

    try:
        return build_report_generator()
    except ValueError as e:
        _fail(f"Report generation is not configured: {e}")


def cmd_create_claim(claim_path: Path, options: list[str]) -> None:
    """Create a claim from a JSON file."""
    import sqlite3

    from claim_pipeline.models.claim import ClaimInput
    from claim_pipeline.pipeline.intake import create_claim

    data = _load_json(claim_path)
    try:
        claim_input = ClaimInput.model_validate(data)
    except ValidationError as e:
        print("Error: Invalid claim data:", file=sys.stderr)
        print(e.json(), file=sys.stderr)
        sys.exit(1)
    try:
        claim = create_claim(claim_input, _session(options))
    except sqlite3.IntegrityError:
        _fail(f"Claim number already exists: {claim_input.claim_number}")
    _print_json(claim.model_dump(mode="json"))


def cmd_upload(claim_id: str, paths: list[Path], options: list[str]) -> None:
    """Upload one or more files to a claim."""
    from claim_pipeline.engines import StorageError, build_storage
    from claim_pipeline.pipeline.intake import upload_document

    session = _session(options)
    storage = build_storage()
    uploaded = []
    for path in paths:
        if not path.is_file():
            _fail(f"File not found: {path}")
        try:
            document = upload_document(claim_id, path.name, path.read_bytes(), session, storage)
        except (ValueError, StorageError) as e:
            _fail(f"{path.name}: {e}")
        uploaded.append(document.model_dump(mode="json"))
    _print_json(uploaded)


def cmd_documents(claim_id: str) -> None:
    """List documents of a claim."""
    from claim_pipeline.db.repository import ClaimRepository, DocumentRepository

    if ClaimRepository().get_claim(claim_id) is None:
        _fail(f"Claim not found: {claim_id}")
    documents = DocumentRepository().list_documents(claim_id)
    _print_json([d.model_dump(mode="json") for d in documents])


def cmd_step(step: str, document_id: str) -> None:
    """Run one automatic pipeline step on a document."""
    from claim_pipeline.pipeline.errors import PipelineError

    pipeline = _build_pipeline()
    try:
        text = getattr(pipeline, step)(document_id)
    except PipelineError as e:
        _fail(e.user_message)
    document = pipeline.documents.get_document(document_id)
    _print_json({
        "document_id": document_id,
        "step": step,
        "status": document.status.value,
        "text": text,
    })


def cmd_approve(document_id: str, text_path: Path, options: list[str]) -> None:
    """Approve a document with the reviewed text from a file."""
    from claim_pipeline.pipeline.errors import PipelineError

    if not text_path.is_file():
        _fail(f"File not found: {text_path}")
    final_text = text_path.read_text(encoding="utf-8")
    pipeline = _build_pipeline()
    try:
        processed = pipeline.approve(document_id, _session(options), final_text)
    except PipelineError as e:
        _fail(e.user_message)
    _print_json(processed.model_dump(mode="json"))


def cmd_batch(claim_id: str) -> None:
    """Process all uploaded documents of a claim."""
    from claim_pipeline.db.repository import ClaimRepository
    from claim_pipeline.pipeline.batch import process_claim_documents

    if ClaimRepository().get_claim(claim_id) is None:
        _fail(f"Claim not found: {claim_id}")
    pipeline = _build_pipeline()

    def on_progress(progress) -> None:
        outcome = progress.outcome
        state = "ok" if outcome.success else f"failed at {outcome.failed_step}: {outcome.error}"
        print(f"[{progress.percent:3d}%] {outcome.file_name}: {state}", file=sys.stderr)

    result = process_claim_documents(claim_id, pipeline, on_progress=on_progress)
    _print_json({**result.model_dump(mode="json"), "message": result.message})
    if result.total and result.failed == result.total:
        sys.exit(1)


def cmd_report(document_id: str, options: list[str]) -> None:
    """Generate a report for one approved document."""
    from claim_pipeline.pipeline.errors import PipelineError

    generator = _build_reports()
    try:
        report = generator.generate_document_report(document_id, _session(options))
    except PipelineError as e:
        _fail(e.user_message)
    _print_json(report.model_dump(mode="json"))


def cmd_final_report(claim_id: str, options: list[str]) -> None:
    """Generate the claim-level report."""
    from claim_pipeline.pipeline.errors import PipelineError

    generator = _build_reports()
    try:
        report = generator.generate_claim_report(
            claim_id,
            _session(options),
            custom_prompt=_option(options, "instruction"),
            analysis_type_id=_option(options, "analysis-type"),
        )
    except PipelineError as e:
        _fail(e.user_message)
    _print_json(report.model_dump(mode="json"))


def cmd_workflow(claim_id: str) -> None:
    """Print the aggregate workflow status of a claim."""
    from claim_pipeline.db.repository import ClaimRepository
    from claim_pipeline.pipeline.aggregation import get_claim_workflow

    claim = ClaimRepository().get_claim(claim_id)
    if claim is None:
        _fail(f"Claim not found: {claim_id}")
    summary = get_claim_workflow(claim_id)
    _print_json({"claim_id": claim_id, "claim_status": claim.status.value, **summary.model_dump(mode="json")})


def cmd_history(document_id: str) -> None:
    """Print a document's audit log."""
    from claim_pipeline.db.repository import DocumentRepository

    repo = DocumentRepository()
    if repo.get_document(document_id) is None:
        _fail(f"Document not found: {document_id}")
    _print_json(repo.get_document_history(document_id))


def cmd_claim_history(claim_id: str) -> None:
    """Print the audit log of every document in a claim."""
    from claim_pipeline.db.repository import ClaimRepository

    repo = ClaimRepository()
    if repo.get_claim(claim_id) is None:
        _fail(f"Claim not found: {claim_id}")
    _print_json(repo.get_claim_history(claim_id))


def cmd_claims(options: list[str]) -> None:
    """List the acting user's claims, newest first."""
    from claim_pipeline.db.repository import ClaimRepository

    claims = ClaimRepository().list_claims(_session(options).user_id)
    _print_json([c.model_dump(mode="json") for c in claims])


def cmd_kb_ingest(knowledge_path: Path, options: list[str]) -> None:
    """Add a knowledge document from JSON ({"title", "content", "policy_types", "categories"})."""
    from claim_pipeline.auth.session import PermissionDeniedError
    from claim_pipeline.engines import EngineError
    from claim_pipeline.rag.knowledge_base import build_knowledge_base

    data = _load_json(knowledge_path)
    if not isinstance(data, dict):
        _fail(f"Expected a JSON object in {knowledge_path}")
    try:
        ids = build_knowledge_base().ingest(
            data.get("title", ""),
            data.get("content", ""),
            _session(options),
            policy_types=data.get("policy_types"),
            categories=data.get("categories"),
            source_document=data.get("source_document"),
        )
    except (PermissionDeniedError, ValueError, EngineError) as e:
        _fail(str(e))
    _print_json({"title": data["title"].strip(), "chunks": len(ids), "ids": ids})


def cmd_kb_search(query: str) -> None:
    """Search the knowledge base."""
    from claim_pipeline.tools.logic import search_knowledge_base_impl

    result = json.loads(search_knowledge_base_impl(query))
    if isinstance(result, dict) and "error" in result:
        _fail(result["error"])
    _print_json(result)


def cmd_dashboard(options: list[str]) -> None:
    """Print dashboard counters for the acting user."""
    from claim_pipeline.pipeline.aggregation import dashboard_stats

    session = _session(options)
    _print_json(dashboard_stats(session.user_id).model_dump(mode="json"))


def cmd_grant_role(user_id: str, role: str, options: list[str]) -> None:
    """Grant a role to a user."""
    from claim_pipeline.auth.session import PermissionDeniedError, grant_role

    try:
        grant_role(_session(options), user_id, role)
    except PermissionDeniedError as e:
        _fail(str(e))
    except ValueError:
        _fail(f"Unknown role: {role}")
    _print_json({"user_id": user_id, "role": role})


def cmd_metrics(claim_id: str | None = None) -> None:
    """Display metrics for claims.

    Args:
        claim_id: Optional claim ID. If provided, shows metrics for that claim.
                 Otherwise, shows global metrics summary.
    """
    from claim_pipeline.observability import get_metrics

    metrics = get_metrics()

    if claim_id:
        summary = metrics.get_claim_summary(claim_id)
        if summary is None:
            print(f"No metrics found for claim: {claim_id}", file=sys.stderr)
            print("Note: Metrics are only available for claims processed in the current session.")
            sys.exit(1)
        print(json.dumps(summary.to_dict(), indent=2, default=str))
    else:
        global_stats = metrics.get_global_stats()
        if global_stats["total_claims"] == 0:
            print("No claims have been processed in the current session.")
            return
        print("Global Metrics Summary:")
        print(json.dumps(global_stats, indent=2, default=str))
        print("\nPer-Claim Summaries:")
        for summary in metrics.get_all_summaries():
            print(f"\n  {summary.claim_id}:")
            print(f"    LLM Calls: {summary.total_llm_calls}")
            print(f"    Tokens: {summary.total_tokens}")
            print(f"    Cost: ${summary.total_cost_usd:.4f}")
            print(f"    Latency: avg {summary.avg_latency_ms:.0f}ms, p95 {summary.p95_latency_ms:.0f}ms")
            for step, counts in sorted(summary.steps.items()):
                print(f"    {step}: {counts['succeeded']} ok, {counts['failed']} failed")


def main() -> None:
    """Run the claim pipeline CLI."""
    argv = [arg for arg in sys.argv[1:] if not arg.startswith("--")]
    options = [arg for arg in sys.argv[1:] if arg.startswith("--")]

    if "--json" in options:
        os.environ["CLAIM_PIPELINE_LOG_FORMAT"] = "json"
    if "--debug" in options:
        os.environ["CLAIM_PIPELINE_LOG_LEVEL"] = "DEBUG"

    _setup_logging()

    if not argv:
        print(_usage(), file=sys.stderr)
        sys.exit(1)

    from claim_pipeline.db.database import init_db

    init_db()
    command = argv[0].lower()

    if command in _SINGLE_ARG_COMMANDS:
        if len(argv) < 2:
            print(f"Error: {command} requires {_SINGLE_ARG_COMMANDS[command]}", file=sys.stderr)
            print(_usage(), file=sys.stderr)
            sys.exit(1)
        arg = argv[1]
        if command == "create-claim":
            cmd_create_claim(Path(arg), options)
        elif command == "documents":
            cmd_documents(arg)
        elif command in ("extract", "anonymize", "clean"):
            cmd_step(command, arg)
        elif command == "batch":
            cmd_batch(arg)
        elif command == "report":
            cmd_report(arg, options)
        elif command == "final-report":
            cmd_final_report(arg, options)
        elif command == "workflow":
            cmd_workflow(arg)
        elif command == "history":
            cmd_history(arg)
        elif command == "claim-history":
            cmd_claim_history(arg)
        else:
            cmd_kb_ingest(Path(arg), options)
        return

    if command == "upload":
        if len(argv) < 3:
            print("Error: upload requires <claim_id> <file>...", file=sys.stderr)
            sys.exit(1)
        cmd_upload(argv[1], [Path(p) for p in argv[2:]], options)
        return

    if command == "approve":
        if len(argv) < 3:
            print("Error: approve requires <document_id> <text_file>", file=sys.stderr)
            sys.exit(1)
        cmd_approve(argv[1], Path(argv[2]), options)
        return

    if command == "grant-role":
        if len(argv) < 3:
            print("Error: grant-role requires <user_id> <role>", file=sys.stderr)
            sys.exit(1)
        cmd_grant_role(argv[1], argv[2], options)
        return

    if command == "kb-search":
        if len(argv) < 2:
            print("Error: kb-search requires <query>", file=sys.stderr)
            sys.exit(1)
        cmd_kb_search(" ".join(argv[1:]))
        return

    if command == "claims":
        cmd_claims(options)
        return

    if command == "dashboard":
        cmd_dashboard(options)
        return

    if command == "metrics":
        cmd_metrics(argv[1] if len(argv) > 1 else None)
        return

    print(f"Error: Unknown command: {command}", file=sys.stderr)
    print(_usage(), file=sys.stderr)
    sys.exit(1)


if __name__ == "__main__":
    main()
