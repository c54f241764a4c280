# logisync/services/logistics/route_optimizer.py
"""
Greedy nearest-neighbour delivery routing.

Starting from the driver's position, repeatedly visit the closest unvisited
package. O(n^2) in the number of packages, which is fine for the tens of
stops a driver carries in a day. Not an optimal TSP tour.
"""
import logging
import math
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, List, Optional, Sequence

from logisync.core.config import settings
from logisync.services.logistics.geolocation import Coordinate, haversine_km, to_coordinate

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RouteStop:
    tracking_id: str
    stop_number: int
    latitude: float
    longitude: float
    distance_km: float
    estimated_minutes: int
    receiver_name: Optional[str] = None
    receiver_address: Optional[str] = None
    status: Optional[str] = None

    @property
    def coordinate(self) -> Coordinate:
        return Coordinate(self.latitude, self.longitude)


@dataclass
class RouteResult:
    stops: List[RouteStop] = field(default_factory=list)
    unroutable: List[Any] = field(default_factory=list)  # packages with no delivery location

    @property
    def total_distance_km(self) -> float:
        return round(sum(stop.distance_km for stop in self.stops), 2)

    @property
    def total_estimated_minutes(self) -> int:
        return sum(stop.estimated_minutes for stop in self.stops)


def _attr(item: Any, name: str):
    if isinstance(item, dict):
        return item.get(name)
    return getattr(item, name, None)


def package_coordinate(package: Any) -> Optional[Coordinate]:
    """Receiver coordinate of an ORM package or a plain dict; None when lat or lng is missing"""
    return to_coordinate(_attr(package, "receiver_latitude"), _attr(package, "receiver_longitude"))


def optimize_route(
    start: Coordinate,
    packages: Iterable[Any],
    minutes_per_km: Optional[float] = None,
    first_stop_number: int = 1,
) -> RouteResult:
    """Order packages by greedy nearest neighbour from ``start``.

    Packages without both coordinates are left out of the sequence and
    returned in ``unroutable``. On exact distance ties the package seen first
    in the input wins.
    """
    minutes_per_km = settings.ROUTE_MINUTES_PER_KM if minutes_per_km is None else minutes_per_km
    result = RouteResult()

    unvisited = []
    for package in packages:
        point = package_coordinate(package)
        if point is None:
            result.unroutable.append(package)
        else:
            unvisited.append((package, point))

    current = start
    while unvisited:
        nearest_index = 0
        min_distance = math.inf
        for index, (_, point) in enumerate(unvisited):
            distance = haversine_km(current, point)
            if distance < min_distance:
                min_distance = distance
                nearest_index = index

        package, point = unvisited.pop(nearest_index)
        status = _attr(package, "status")
        result.stops.append(
            RouteStop(
                tracking_id=_attr(package, "tracking_id"),
                stop_number=first_stop_number + len(result.stops),
                latitude=point.lat,
                longitude=point.lng,
                distance_km=round(min_distance, 2),
                estimated_minutes=math.ceil(min_distance * minutes_per_km),
                receiver_name=_attr(package, "receiver_name"),
                receiver_address=_attr(package, "receiver_address"),
                status=getattr(status, "value", status),
            )
        )
        current = point

    if result.unroutable:
        logger.info(f"{len(result.unroutable)} package(s) have no delivery location and were not routed")
    return result


class RoutePlan:
    """A driver's stop sequence with a forward-only pointer to the current stop.

    Delivered stops stay in the plan; only the not yet visited tail is ever
    recomputed. The route endpoint builds a fresh plan per request; a driver
    app holding one across deliveries uses confirm_delivery and reoptimize.
    """

    def __init__(self, start: Coordinate, packages: Iterable[Any], minutes_per_km: Optional[float] = None):
        self.minutes_per_km = minutes_per_km
        result = optimize_route(start, packages, minutes_per_km)
        self.stops: List[RouteStop] = result.stops
        self.unroutable: List[Any] = result.unroutable
        self._current_index = 0

    @property
    def current_stop_index(self) -> int:
        return self._current_index

    @property
    def current_stop(self) -> Optional[RouteStop]:
        if self._current_index < len(self.stops):
            return self.stops[self._current_index]
        return None

    @property
    def remaining_stops(self) -> Sequence[RouteStop]:
        return self.stops[self._current_index:]

    @property
    def is_complete(self) -> bool:
        return self._current_index >= len(self.stops)

    def confirm_delivery(self, tracking_id: str) -> bool:
        """Advance past the current stop when it is the delivered package"""
        stop = self.current_stop
        if stop is None or stop.tracking_id != tracking_id:
            return False
        self._current_index += 1
        return True

    def reoptimize(
        self,
        position: Coordinate,
        packages: Iterable[Any],
        is_pending: Optional[Callable[[Any], bool]] = None,
    ) -> None:
        """Recompute the unvisited tail from a new driver position and package set"""
        visited = {stop.tracking_id for stop in self.stops[:self._current_index]}
        candidates = [
            package for package in packages
            if _attr(package, "tracking_id") not in visited and (is_pending is None or is_pending(package))
        ]
        result = optimize_route(
            position,
            candidates,
            self.minutes_per_km,
            first_stop_number=self._current_index + 1,
        )
        self.stops = self.stops[:self._current_index] + result.stops
        self.unroutable = result.unroutable
