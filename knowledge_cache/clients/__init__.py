"""Thin wrappers around third-party API clients."""
