"""File service API routes."""
