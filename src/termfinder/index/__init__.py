"""Corpus index, persistence and query evaluation."""
