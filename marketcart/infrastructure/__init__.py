"""Infrastructure layer - settings, logging, persistence and notifications."""
