"""Core infrastructure: configuration, logging, errors, DI container, Docker client."""
