"""HTTP API for running verification migrations."""
