"""
Extraction capability for bank statement documents.

This package contains:
- client: OpenAI-compatible gateway client implementing the extraction capability
- prompts: System and user prompt builders
"""
