"""UPA CLI package."""
