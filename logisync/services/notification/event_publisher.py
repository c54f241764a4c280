# logisync/services/notification/event_publisher.py
import json
import logging
from typing import Any, Dict, List, Optional

from logisync.core.config import settings
from logisync.core.redis import RedisClient, redis_client
from logisync.utils.date_time import serialize_dates

logger = logging.getLogger(__name__)

SHIPMENT_CREATED = "shipment.created"
SHIPMENT_STATUS_UPDATED = "shipment.status.updated"
SHIPMENT_DELIVERED = "shipment.delivered"


def event_channels(
    organization_id: int,
    shipment_id: Optional[str] = None,
    driver_id: Optional[int] = None
) -> List[str]:
    channels = [f"organization.{organization_id}"]
    if shipment_id:
        channels.append(f"shipment.{shipment_id}")
    if driver_id:
        channels.append(f"driver.{driver_id}")
    return channels


class EventPublisher:
    """Broadcast domain events on Redis pub/sub channels.

    Delivery is best effort: a failed publish is logged and never fails the
    request that produced the event.
    """

    def __init__(self, client: Optional[RedisClient] = None, enabled: Optional[bool] = None):
        self.client = client or redis_client
        self.enabled = settings.EVENTS_ENABLED if enabled is None else enabled

    async def publish(
        self,
        event: str,
        organization_id: int,
        data: Dict[str, Any],
        shipment_id: Optional[str] = None,
        driver_id: Optional[int] = None
    ) -> int:
        """Publish to every channel the event belongs to, returns how many channels accepted it"""
        if not self.enabled:
            return 0

        message = json.dumps({"event": event, "data": serialize_dates(data)})
        published = 0
        for channel in event_channels(organization_id, shipment_id, driver_id):
            try:
                await self.client.publish(channel, message)
                published += 1
            except Exception as e:
                logger.warning(f"Failed to publish {event} to {channel}: {str(e)}")
        return published


def get_event_publisher() -> EventPublisher:
    return EventPublisher()
