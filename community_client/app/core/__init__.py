"""Configuration, logging, persistence and error definitions."""
