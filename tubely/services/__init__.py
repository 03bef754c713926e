"""Application services: ingestion, thumbnails, signed links, metadata and reconciliation."""
