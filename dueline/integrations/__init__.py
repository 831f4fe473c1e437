"""External integrations for dueline."""
