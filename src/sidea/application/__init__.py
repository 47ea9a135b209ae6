"""Application layer - caches, services and background workers."""
