"""Anthropic provider."""
