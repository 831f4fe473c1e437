"""HTTP API for dueline."""
