"""Shared utilities: errors, LLM clients, sample loading."""
