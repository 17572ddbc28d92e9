"""HTTP API: FastAPI application, ingest and view routers."""
