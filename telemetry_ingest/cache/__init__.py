"""Redis cache helpers for the snapshot view."""
