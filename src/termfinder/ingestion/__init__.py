"""Content extraction from source files."""
