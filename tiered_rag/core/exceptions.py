"""Exception types raised by the core components."""


class TieredRAGError(Exception):
    """Base class for errors raised by this package."""


class RetrievalError(TieredRAGError):
    """Knowledge base retrieval could not be performed.

    Raised when the embedding call or the vector query fails on the
    answer path. No answer can be attempted in that case.
    """


class EntryNotFoundError(TieredRAGError):
    """A knowledge or queue entry does not exist."""

    def __init__(self, kind: str, entry_id: str):
        super().__init__(f"{kind} entry not found: {entry_id}")
        self.kind = kind
        self.entry_id = entry_id


class ProviderNotConfiguredError(TieredRAGError):
    """An external provider is selected but lacks credentials or support."""
