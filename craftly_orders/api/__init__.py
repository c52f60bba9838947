"""HTTP API for Craftly orders."""
