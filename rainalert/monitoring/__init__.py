"""Flood monitoring: classification, ingest, evaluation, notification and scheduling."""
