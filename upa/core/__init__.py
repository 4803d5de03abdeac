"""Core auction domain: models, lifecycle, clearing, catalog, auth, storage."""
