"""Greenlight: ingestion-to-knowledge pipeline with human review."""

__version__ = "0.1.0"
