"""Integration tests for the claim document pipeline.

These tests run the real repositories, file storage, batch runner, report
generator and knowledge base together; only network engines are faked.

Test categories:
- test_workflow.py: End-to-end claim workflow tests
"""
