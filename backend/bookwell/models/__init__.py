from .catalog import Location, StaffMember, StaffLocation, Service, Product
from .appointments import (
    Appointment, AppointmentService, AppointmentProduct, AppointmentStatusHistory,
    BlockedTime, BookingSequence,
)
from .sync import DataChange

__all__ = [
    'Location', 'StaffMember', 'StaffLocation', 'Service', 'Product',
    'Appointment', 'AppointmentService', 'AppointmentProduct', 'AppointmentStatusHistory',
    'BlockedTime', 'BookingSequence',
    'DataChange',
]
