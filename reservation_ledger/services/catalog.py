from decimal import Decimal
from typing import Dict, List, Optional

from reservation_ledger.exceptions import DuplicateService, UnknownService
from reservation_ledger.logger_config import get_logger
from reservation_ledger.services.schemas import ServiceDescriptor, ServiceRoute

log = get_logger("catalog")

class ServiceCatalog:
    """In-process directory of scheduled services"""

    def __init__(self, services: Optional[List[ServiceDescriptor]] = None):
        self._services: Dict[str, ServiceDescriptor] = {}
        for descriptor in services or []:
            self.add(descriptor)

    def resolve(self, service_id: str) -> ServiceDescriptor:
        """Look up a service or raise UnknownService"""
        descriptor = self._services.get(service_id)
        if descriptor is None:
            raise UnknownService(service_id)
        return descriptor

    def get(self, service_id: str) -> Optional[ServiceDescriptor]:
        return self._services.get(service_id)

    def add(self, descriptor: ServiceDescriptor) -> None:
        if descriptor.service_id in self._services:
            raise DuplicateService(descriptor.service_id)
        self._services[descriptor.service_id] = descriptor
        log.info(f"Registered service {descriptor.service_id} ({descriptor.name})")

    def remove(self, service_id: str) -> ServiceDescriptor:
        descriptor = self.resolve(service_id)
        del self._services[service_id]
        log.info(f"Removed service {service_id}")
        return descriptor

    def search(self, source: str, destination: str) -> List[ServiceDescriptor]:
        """Direct services from source to destination, catalog order"""
        return [
            s for s in self._services.values()
            if s.route.source == source and s.route.destination == destination
        ]

    def all(self) -> List[ServiceDescriptor]:
        return list(self._services.values())

    def __contains__(self, service_id: str) -> bool:
        return service_id in self._services

    def __len__(self) -> int:
        return len(self._services)

def default_services() -> List[ServiceDescriptor]:
    """Demo services registered when a fresh store has no catalog"""
    return [
        ServiceDescriptor(
            service_id="ET001",
            name="Fast Express",
            route=ServiceRoute(source="CityA", destination="CityB"),
            capacity=10,
            base_fare=Decimal("55.00"),
            has_pantry_car=True
        ),
        ServiceDescriptor(
            service_id="SR205",
            name="Slow Runner",
            route=ServiceRoute(source="CityB", destination="CityC"),
            capacity=50,
            base_fare=Decimal("75.50"),
            has_pantry_car=False
        ),
    ]
