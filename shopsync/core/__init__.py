"""Core engine: configuration, persistence, queue and scheduler."""
