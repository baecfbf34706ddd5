"""
Ingestion error types.

IngestionError
├── AdapterError            adapter-level failure (isolated per source)
│   └── AdapterConfigError  adapter misconfiguration (missing key, bad URL)
├── SourceNotFoundError     unknown source name requested
└── CandidateValidationError  malformed dedup input (fatal for the run)
"""


class IngestionError(Exception):
    """Base class for ingestion pipeline errors."""


class AdapterError(IngestionError):
    """Raised when an adapter cannot complete its fetch."""

    def __init__(self, source_id: str, message: str):
        self.source_id = source_id
        super().__init__(f"[{source_id}] {message}")


class AdapterConfigError(AdapterError):
    """Raised when an adapter is missing required configuration."""


class SourceNotFoundError(IngestionError, KeyError):
    """Raised when a requested source has no registered adapter."""

    def __init__(self, source_name: str):
        self.source_name = source_name
        super().__init__(f"Source '{source_name}' not found")

    def __str__(self) -> str:
        return f"Source '{self.source_name}' not found"


class CandidateValidationError(IngestionError, ValueError):
    """Raised when a dedup candidate violates the adapter output contract."""

    def __init__(self, message: str, index: int | None = None):
        self.index = index
        prefix = f"Candidate #{index}: " if index is not None else ""
        super().__init__(f"{prefix}{message}")
