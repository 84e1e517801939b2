"""Configuration and logging for the evdesk service."""
