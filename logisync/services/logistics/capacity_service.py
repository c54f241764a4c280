# logisync/services/logistics/capacity_service.py
"""
Vehicle load figures for the driver app.

Informational only: an overloaded vehicle is reported, never refused.
"""
from collections import Counter
from decimal import Decimal
from typing import Any, Dict, Iterable, Optional

from logisync.models.shared.enums import PackageStatus
from logisync.services.logistics.status_machine import TERMINAL_STATUSES

CM3_PER_M3 = 1_000_000


def _attr(item: Any, name: str):
    if isinstance(item, dict):
        return item.get(name)
    return getattr(item, name, None)


def _number(value) -> float:
    if value is None or value == "":
        return 0.0
    if isinstance(value, Decimal):
        return float(value)
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def _status(package: Any) -> Optional[PackageStatus]:
    raw = _attr(package, "status")
    try:
        return PackageStatus(raw) if raw is not None else None
    except ValueError:
        return None


def package_volume_m3(package: Any) -> float:
    """length x width x height in cm converted to cubic metres"""
    return (
        _number(_attr(package, "length"))
        * _number(_attr(package, "width"))
        * _number(_attr(package, "height"))
    ) / CM3_PER_M3


def is_on_board(package: Any) -> bool:
    """Counts towards the load until delivered or cancelled"""
    return _status(package) not in TERMINAL_STATUSES


def _percent(used: float, available: float) -> float:
    if available <= 0:
        return 0.0
    return round(used / available * 100, 1)


def compute_vehicle_load(vehicle: Any, packages: Iterable[Any]) -> Dict[str, Any]:
    loaded = [package for package in packages if is_on_board(package)]

    capacity = _number(_attr(vehicle, "capacity")) if vehicle is not None else 0.0
    volume_capacity = _number(_attr(vehicle, "volume_capacity")) if vehicle is not None else 0.0

    current_load = round(sum(_number(_attr(package, "weight")) for package in loaded), 2)
    current_volume = round(sum(package_volume_m3(package) for package in loaded), 2)

    return {
        "capacity": capacity,
        "current_load": current_load,
        "available_capacity": round(max(capacity - current_load, 0.0), 2),
        "utilization_percent": _percent(current_load, capacity),
        "volume_capacity": volume_capacity,
        "current_volume": current_volume,
        "volume_utilization_percent": _percent(current_volume, volume_capacity),
        "is_overloaded": capacity > 0 and current_load > capacity,
        "is_over_volume": volume_capacity > 0 and current_volume > volume_capacity,
        "package_count": len(loaded),
    }


def summarize_packages(packages: Iterable[Any]) -> Dict[str, int]:
    """Package count per status, every status present with zero defaults"""
    counts = Counter(_status(package) for package in packages)
    summary = {status.value: counts.get(status, 0) for status in PackageStatus}
    summary["total"] = sum(summary.values())
    return summary
