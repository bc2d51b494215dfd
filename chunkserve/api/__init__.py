"""HTTP API for serving compiled chunks."""
