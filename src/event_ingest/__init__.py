"""
Event ingestion pipeline.

Multi-source event listing ingestion with cross-source deduplication.
"""

__version__ = "0.1.0"
