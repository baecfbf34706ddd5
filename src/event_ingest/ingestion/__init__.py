"""
Ingestion layer for the event catalog.

Key Components:
- BaseSourceAdapter: Abstract base for all per-source adapters
- IngestionOrchestrator: Runs adapters in parallel or sequence with failure isolation
- EventDeduplicator: Clusters and merges cross-source duplicates
- ComplianceGate: robots.txt checks before crawl fetches
"""
