"""Database table definitions."""

from .models import BatteryCaseTable, ServiceTicketTable, TicketStatusUpdateTable, VehicleCaseTable

__all__ = [
    "BatteryCaseTable",
    "ServiceTicketTable",
    "TicketStatusUpdateTable",
    "VehicleCaseTable",
]
