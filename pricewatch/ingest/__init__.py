"""Catalog ingestion: upstream client, pagination, record validation and persistence."""
