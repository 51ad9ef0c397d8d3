"""Operator web API for the parts ingestion pipeline."""
