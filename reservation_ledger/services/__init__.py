"""
Service Catalog Module

Directory of the scheduled services the ledger sells seats on. Each service
carries its route, timetable, total capacity and base fare per passenger.

Key Components:
- catalog.py: ServiceCatalog lookup, registration and route search
- schemas.py: Pydantic models for services, routes and stops
"""

from .catalog import ServiceCatalog, default_services
from .schemas import ServiceDescriptor, ServiceKind, ServiceRoute, Stop, ServiceAvailability

__all__ = [
    "ServiceCatalog",
    "default_services",
    "ServiceDescriptor",
    "ServiceKind",
    "ServiceRoute",
    "Stop",
    "ServiceAvailability"
]
