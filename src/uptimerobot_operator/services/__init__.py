"""Service layer for external APIs."""
