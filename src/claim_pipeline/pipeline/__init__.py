"""Document processing pipeline: steps, batch orchestration, reports and aggregation.

Import from the submodules directly (``claim_pipeline.pipeline.steps``,
``claim_pipeline.pipeline.batch``, ...).
"""
