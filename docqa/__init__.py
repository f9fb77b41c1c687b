"""Document question answering backend: ingestion, hybrid retrieval and chat."""

__version__ = "0.1.0"
