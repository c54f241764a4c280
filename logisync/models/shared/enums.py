from enum import Enum

# Enums
class PackageStatus(str, Enum):
    PENDING = "pending"
    PICKED_UP = "picked_up"
    IN_TRANSIT = "in_transit"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    DELIVERY_ATTEMPTED = "delivery_attempted"  # Recoverable, driver will retry
    EXCEPTION = "exception"                    # Needs human follow-up
    CANCELLED = "cancelled"

class OrderStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    FULFILLED = "fulfilled"
    CANCELED = "canceled"

class UserRole(str, Enum):
    ADMIN = "admin"
    STAFF = "staff"
    DRIVER = "driver"

class SessionEndReason(str, Enum):
    STOPPED = "stopped"
    STALE = "stale"

def enum_values(enum_cls):
    """Persist enum values (the API spelling) instead of member names"""
    return [member.value for member in enum_cls]
