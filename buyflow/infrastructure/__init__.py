"""Infrastructure layer - remote service client, platform adapters, config."""
