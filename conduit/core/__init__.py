"""Streaming, resilience and tool orchestration core."""
