# logisync/services/logistics/status_machine.py
from typing import Dict, FrozenSet, Iterable, Optional, Union

from logisync.core.exceptions import InvalidStatusError, InvalidTransitionError
from logisync.models.shared.enums import PackageStatus

S = PackageStatus

# Happy path order, used for the derived shipment status
PROGRESSION = [S.PENDING, S.PICKED_UP, S.IN_TRANSIT, S.OUT_FOR_DELIVERY, S.DELIVERED]

TERMINAL_STATUSES: FrozenSet[PackageStatus] = frozenset({S.DELIVERED, S.CANCELLED})

# Packages a driver is physically carrying
ACTIVE_STATUSES: FrozenSet[PackageStatus] = frozenset({S.PICKED_UP, S.IN_TRANSIT, S.OUT_FOR_DELIVERY})

# Statuses a driver may submit (pending is only ever set at creation)
DRIVER_STATUSES: FrozenSet[PackageStatus] = frozenset(set(S) - {S.PENDING})

# Statuses that may be recorded without an active GPS tracking session
TRACKING_EXEMPT_STATUSES: FrozenSet[PackageStatus] = frozenset({S.PICKED_UP})

# Statuses that produce an organization notification
NOTIFIABLE_STATUSES: FrozenSet[PackageStatus] = frozenset({S.OUT_FOR_DELIVERY, S.DELIVERED, S.CANCELLED})

VALID_TRANSITIONS: Dict[PackageStatus, FrozenSet[PackageStatus]] = {
    S.PENDING: frozenset({S.PICKED_UP, S.DELIVERY_ATTEMPTED, S.EXCEPTION, S.CANCELLED}),
    S.PICKED_UP: frozenset({
        S.IN_TRANSIT, S.OUT_FOR_DELIVERY, S.DELIVERED,
        S.DELIVERY_ATTEMPTED, S.EXCEPTION, S.CANCELLED,
    }),
    S.IN_TRANSIT: frozenset({
        S.OUT_FOR_DELIVERY, S.DELIVERED, S.DELIVERY_ATTEMPTED, S.EXCEPTION, S.CANCELLED,
    }),
    S.OUT_FOR_DELIVERY: frozenset({
        S.IN_TRANSIT, S.DELIVERED, S.DELIVERY_ATTEMPTED, S.EXCEPTION, S.CANCELLED,
    }),
    S.DELIVERY_ATTEMPTED: frozenset({
        S.IN_TRANSIT, S.OUT_FOR_DELIVERY, S.DELIVERED,
        S.DELIVERY_ATTEMPTED, S.EXCEPTION, S.CANCELLED,
    }),
    # Manual resolution only: re-reporting or cancelling, anything else needs force
    S.EXCEPTION: frozenset({S.EXCEPTION, S.CANCELLED}),
    S.DELIVERED: frozenset(),
    S.CANCELLED: frozenset(),
}

DEFAULT_STATUS_MESSAGES: Dict[PackageStatus, str] = {
    S.PENDING: "Shipment created",
    S.PICKED_UP: "Package picked up by driver",
    S.IN_TRANSIT: "Package in transit to destination",
    S.OUT_FOR_DELIVERY: "Out for delivery",
    S.DELIVERED: "Package delivered successfully",
    S.DELIVERY_ATTEMPTED: "Delivery attempted - will retry",
    S.EXCEPTION: "Exception occurred - requires attention",
    S.CANCELLED: "Package cancelled",
}

# Customer-facing wording for status events
EVENT_MESSAGES: Dict[PackageStatus, str] = {
    S.PENDING: "Shipment is pending pickup",
    S.PICKED_UP: "Shipment has been picked up",
    S.IN_TRANSIT: "Shipment is on the way",
    S.OUT_FOR_DELIVERY: "Shipment is out for delivery",
    S.DELIVERED: "Shipment has been delivered",
    S.DELIVERY_ATTEMPTED: "Delivery attempt failed - will retry",
    S.EXCEPTION: "Shipment needs attention",
    S.CANCELLED: "Shipment has been cancelled",
}

# Locations the driver app sends when it has nothing better
GENERIC_LOCATIONS = frozenset({"Driver Location", "In transit", "Picked up from warehouse"})


def parse_status(value: Union[str, PackageStatus], allowed: Optional[Iterable[PackageStatus]] = None) -> PackageStatus:
    """Coerce a raw value into a PackageStatus, raising InvalidStatusError otherwise"""
    try:
        status = PackageStatus(value)
    except ValueError:
        raise InvalidStatusError(value)
    if allowed is not None and status not in allowed:
        raise InvalidStatusError(status.value)
    return status


def is_valid_transition(current: PackageStatus, new: PackageStatus) -> bool:
    return new in VALID_TRANSITIONS.get(current, frozenset())


def ensure_transition(current: PackageStatus, new: PackageStatus, enforce: bool = True, force: bool = False) -> None:
    """Raise InvalidTransitionError for an illegal edge unless enforcement is off or forced"""
    if not enforce or force:
        return
    if not is_valid_transition(current, new):
        raise InvalidTransitionError(current.value, new.value)


def default_message(status: PackageStatus) -> str:
    return DEFAULT_STATUS_MESSAGES.get(status, "Status updated by driver")


def smart_location(status: PackageStatus, origin_name: Optional[str] = None) -> str:
    """Readable location for a status when the driver sent a placeholder and no GPS fix exists"""
    if status == S.PICKED_UP:
        return f"Picked up from {origin_name}" if origin_name else "Picked up from warehouse"
    return {
        S.IN_TRANSIT: "In transit to destination",
        S.OUT_FOR_DELIVERY: "Out for delivery",
        S.DELIVERED: "Delivered to customer",
        S.DELIVERY_ATTEMPTED: "Delivery attempted",
        S.EXCEPTION: "Exception - requires attention",
        S.CANCELLED: "Cancelled",
    }.get(status, "Location update")


def derive_shipment_status(statuses: Iterable[Union[str, PackageStatus]]) -> PackageStatus:
    """Aggregate status of a shipment, computed from its package statuses.

    - no packages: pending
    - every package cancelled: cancelled
    - every non-cancelled package delivered: delivered
    - any package in exception: exception
    - otherwise the least advanced open package wins; a delivery attempt
      ranks alongside out_for_delivery
    """
    statuses = [PackageStatus(s) for s in statuses]
    if not statuses:
        return S.PENDING

    live = [s for s in statuses if s != S.CANCELLED]
    if not live:
        return S.CANCELLED

    open_statuses = [s for s in live if s != S.DELIVERED]
    if not open_statuses:
        return S.DELIVERED

    if S.EXCEPTION in open_statuses:
        return S.EXCEPTION

    def rank(status: PackageStatus) -> int:
        if status == S.DELIVERY_ATTEMPTED:
            return PROGRESSION.index(S.OUT_FOR_DELIVERY)
        return PROGRESSION.index(status)

    return min(open_statuses, key=rank)
