from enum import Enum
from typing import Optional

from pydantic import BaseModel


class TaskStatus(str, Enum):
    OPEN = "open"
    MATCHED = "matched"
    COMPLETED = "completed"


class ApplicationStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class MessageType(str, Enum):
    TEXT = "text"
    LOCATION_REQUEST = "location_request"
    LOCATION_RESPONSE = "location_response"
    LOCATION_SHARED = "location_shared"


class NegotiationState(str, Enum):
    NONE = "none"
    REQUESTED = "requested"
    SHARED = "shared"
    DECLINED = "declined"


class ErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    PRECONDITION_FAILED = "precondition_failed"
    STORE_UNAVAILABLE = "store_unavailable"
    UNAUTHENTICATED = "unauthenticated"
    DERIVED_STATE_STALE = "derived_state_stale"
    INTERNAL = "internal"


SYSTEM_SENDER = "system"


class Coordinates(BaseModel):
    lat: float
    lng: float


class Location(BaseModel):
    address: Optional[str] = None
    coordinates: Optional[Coordinates] = None
