"""REST API routes for the reference management API."""
