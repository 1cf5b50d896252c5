"""Application layer - orchestrates domain and persistence for use cases."""
