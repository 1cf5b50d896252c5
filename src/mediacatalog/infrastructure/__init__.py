"""Infrastructure layer - persistence and observability adapters."""
