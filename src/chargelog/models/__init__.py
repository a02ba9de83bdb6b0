"""Data models for chargelog records."""

from chargelog.models._base import Timestamp, TrackerBaseModel
from chargelog.models.location import Address, ChargingLocation, Coordinates
from chargelog.models.profile import Identity, UserProfile
from chargelog.models.snapshot import ExportSnapshot
from chargelog.models.vehicle import Vehicle, VehicleInput
from chargelog.models.visit import Visit, VisitInput

__all__ = [
    "Address",
    "ChargingLocation",
    "Coordinates",
    "ExportSnapshot",
    "Identity",
    "Timestamp",
    "TrackerBaseModel",
    "UserProfile",
    "Vehicle",
    "VehicleInput",
    "Visit",
    "VisitInput",
]
