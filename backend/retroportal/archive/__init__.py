from .client import ArchiveClient, SearchPage

__all__ = ["ArchiveClient", "SearchPage"]
