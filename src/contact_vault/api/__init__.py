"""HTTP API — FastAPI router and Pydantic schemas."""
