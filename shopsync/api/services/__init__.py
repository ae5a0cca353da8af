"""Stores and API clients."""
