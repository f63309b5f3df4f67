"""Delivery of proximity notifications.

A failed delivery is logged and counted; it never rolls back the state
transition that produced the notification.
"""

from __future__ import annotations

import logging
from typing import Iterable

from circl.domain.proximity import sockets
from circl.domain.proximity.schemas import ProximityAlert
from circl.infra.redis import redis_client
from circl.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)

ALERT_STREAM = "x:proximity.alerts"


async def dispatch(observer_id: str, alerts: Iterable[ProximityAlert]) -> int:
	"""Push each alert to the observer; return how many were delivered over the socket."""
	delivered = 0
	for alert in alerts:
		payload = alert.model_dump(mode="json")
		try:
			await sockets.emit_nearby(observer_id, payload)
			delivered += 1
		except Exception:
			obs_metrics.inc_proximity_dispatch_failure("socket")
			logger.warning("proximity alert emit failed", extra={"observer_id": observer_id}, exc_info=True)
		try:
			await redis_client.xadd_capped(
				ALERT_STREAM,
				{
					"observer_id": observer_id,
					"peer_id": alert.peer_id,
					"distance_km": f"{alert.distance_km:.4f}",
					"threshold_mi": str(alert.threshold_mi),
					"at": alert.at.isoformat(),
				},
			)
		except Exception:
			obs_metrics.inc_proximity_dispatch_failure("stream")
			logger.warning("proximity alert audit failed", extra={"observer_id": observer_id}, exc_info=True)
	return delivered
