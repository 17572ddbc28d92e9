"""Service layer: device configuration lookup, storage, ingestion and views."""
