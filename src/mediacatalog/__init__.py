"""mediacatalog - persisted catalog layer for a media library indexer."""

__version__ = "0.1.0"
