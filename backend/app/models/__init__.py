# Ontology Models
from app.models.ontology import (
    HotelProperty, Room, Reservation, Folio, FolioTransaction,
    ReservationPackage, TaxRate, NightAudit, Employee
)

__all__ = [
    'HotelProperty', 'Room', 'Reservation', 'Folio', 'FolioTransaction',
    'ReservationPackage', 'TaxRate', 'NightAudit', 'Employee'
]
