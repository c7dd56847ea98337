"""HTTP and WebSocket surface for the shared table."""
