"""evdesk: service ticket lifecycle and triage workflow for an EV repair shop."""

__version__ = "0.1.0"
