"""Upstream access, polling and job execution services."""
