"""Shared utilities: structured logging and deterministic hashing."""
