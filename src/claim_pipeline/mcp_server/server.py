"""MCP server exposing claim pipeline tools via stdio transport.

This server includes an observability endpoint for metrics.
"""

from typing import Optional

from mcp.server.fastmcp import FastMCP

from claim_pipeline.tools.logic import (
    approve_document_impl,
    generate_claim_report_impl,
    generate_document_report_impl,
    get_claim_metrics_impl,
    get_document_history_impl,
    get_document_text_impl,
    get_reports_impl,
    get_workflow_status_impl,
    ingest_knowledge_impl,
    list_documents_impl,
    process_claim_documents_impl,
    run_document_step_impl,
    search_knowledge_base_impl,
)

mcp = FastMCP("claim-pipeline", json_response=True)


@mcp.tool()
def get_workflow_status(claim_id: str) -> str:
    """Get the aggregate workflow status and progress of a claim's documents."""
    return get_workflow_status_impl(claim_id)


@mcp.tool()
def list_documents(claim_id: str) -> str:
    """List a claim's documents with their pipeline status, oldest first."""
    return list_documents_impl(claim_id)


@mcp.tool()
def get_document_text(document_id: str) -> str:
    """Get the text a reviewer should edit before approving a document."""
    return get_document_text_impl(document_id)


@mcp.tool()
def process_claim_documents(claim_id: str) -> str:
    """Run OCR, anonymization and cleaning on every newly uploaded document of a claim."""
    return process_claim_documents_impl(claim_id)


@mcp.tool()
def extract_text(document_id: str) -> str:
    """Run OCR on one uploaded document."""
    return run_document_step_impl(document_id, "extract")


@mcp.tool()
def anonymize_text(document_id: str) -> str:
    """Replace personal data in a document's OCR text with typed placeholders."""
    return run_document_step_impl(document_id, "anonymize")


@mcp.tool()
def clean_text(document_id: str) -> str:
    """Fix grammar and OCR artifacts in a document's anonymized text."""
    return run_document_step_impl(document_id, "clean")


@mcp.tool()
def approve_document(document_id: str, user_id: str, final_text: str) -> str:
    """Store the reviewer's final text and mark the document approved."""
    return approve_document_impl(document_id, user_id, final_text)


@mcp.tool()
def generate_document_report(document_id: str, user_id: str) -> str:
    """Generate an analysis report for one approved document."""
    return generate_document_report_impl(document_id, user_id)


@mcp.tool()
def generate_claim_report(
    claim_id: str,
    user_id: str,
    context_ids: Optional[list[str]] = None,
    custom_prompt: Optional[str] = None,
    analysis_type_id: Optional[str] = None,
) -> str:
    """Generate the final report over all approved documents of a claim.

    Args:
        claim_id: Claim to report on.
        user_id: Acting user.
        context_ids: Insurance context entries to include (all active when omitted).
        custom_prompt: Additional instructions for the analysis.
        analysis_type_id: Analysis type whose system prompt replaces the default.
    """
    return generate_claim_report_impl(
        claim_id, user_id, context_ids, custom_prompt, analysis_type_id
    )


@mcp.tool()
def get_reports(claim_id: str) -> str:
    """List the analysis reports of a claim."""
    return get_reports_impl(claim_id)


@mcp.tool()
def get_document_history(document_id: str) -> str:
    """Get the audit log of a document's status changes and edits."""
    return get_document_history_impl(document_id)


@mcp.tool()
def search_knowledge_base(
    query: str,
    policy_types: Optional[list[str]] = None,
    categories: Optional[list[str]] = None,
    match_count: Optional[int] = None,
    match_threshold: Optional[float] = None,
) -> str:
    """Search the insurance knowledge base by semantic similarity."""
    return search_knowledge_base_impl(query, policy_types, categories, match_count, match_threshold)


@mcp.tool()
def ingest_knowledge(
    user_id: str,
    title: str,
    content: str,
    policy_types: Optional[list[str]] = None,
    categories: Optional[list[str]] = None,
) -> str:
    """Add a document to the knowledge base (admin only). It is chunked and embedded before storage."""
    return ingest_knowledge_impl(user_id, title, content, policy_types, categories)


# ============================================================================
# OBSERVABILITY TOOLS
# ============================================================================


@mcp.tool()
def get_claim_metrics(claim_id: str | None = None) -> str:
    """Get metrics for claim processing.

    Args:
        claim_id: Optional claim ID. If provided, returns metrics for that claim.
                 If not provided, returns global metrics summary.

    Returns:
        JSON string with LLM call counts, tokens, estimated cost, latency
        and per-step success/failure counts.
    """
    return get_claim_metrics_impl(claim_id)


def main() -> None:
    from claim_pipeline.db.database import init_db

    init_db()
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
