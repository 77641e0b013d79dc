"""Embedding providers and batching client."""
