"""Infrastructure adapters: provider clients, vision, persistence, storage, logging."""
