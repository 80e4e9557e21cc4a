"""Geometry, schema and document helpers for the free-body-diagram grader."""
