"""HTTP and WebSocket API for sensors and the dashboard."""
