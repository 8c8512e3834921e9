"""
Core processing modules for bank statement conversion.

This package contains:
- config: Application configuration and settings
- exceptions: Custom exception classes
- logger: Logging configuration
- schema: Pydantic models for transactions, export options and stream events
- normalize: Date, amount and text normalization
- recovery: Structured-output recovery from model replies
- chunking: PDF page-range chunking
- dedupe: Duplicate transaction detection
- voucher: Tally voucher XML generation
- parsing: CSV / Excel statement parsing
- exporters: CSV, JSON and Excel exports
- stream: NDJSON progress stream encoding and consumption
"""
