"""HTTP API and external service clients."""
