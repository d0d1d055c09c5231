"""HTTP API: FastAPI app hosting caption projects (run with caption-studio-api)."""
