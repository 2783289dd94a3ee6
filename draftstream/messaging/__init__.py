"""Inbound messages, reply capabilities, ingestion sources and dispatch."""
