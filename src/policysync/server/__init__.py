"""Reference management API - FastAPI application backed by SQLAlchemy."""
