"""Data models for the image relay."""
