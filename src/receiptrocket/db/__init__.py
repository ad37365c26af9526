"""Persistence layer for receipt metadata and user profiles."""
