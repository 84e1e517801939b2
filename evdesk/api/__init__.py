"""HTTP surface of the evdesk service."""
