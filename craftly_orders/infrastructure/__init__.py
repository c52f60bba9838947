"""Infrastructure layer: configuration, logging, persistence and collaborators."""
