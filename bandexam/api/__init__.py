"""HTTP surface for the session engine (FastAPI)."""
