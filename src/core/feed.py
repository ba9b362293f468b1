"""Human-readable local alert feed."""

import uuid
from collections import deque
from typing import List, Optional

from src.core.models import FeedAlert, Trigger

# trigger type -> (feed type, infection message, neighbour warning suffix)
TRIGGER_FEED = {
    "tvoc_critical": ("pest", "INFECTION: Critical pest contamination detected (tVOC spike)",
                      "infected with pest contamination"),
    "low_soil_moisture": ("drought", "INFECTION: Irrigation system failure (extremely low soil moisture)",
                          "has irrigation failure"),
    "low_humidity": ("drought", "INFECTION: Severe drought stress (extremely low humidity)",
                     "experiencing severe drought"),
}


def _new_id() -> str:
    return uuid.uuid4().hex


def infection_alert(node_id: str, triggers: List[Trigger]) -> FeedAlert:
    """Feed entry for a node that just became infected; the first trigger names it."""
    alert_type, message = "anomaly", "Infection detected"
    for trigger in triggers:
        if trigger.trigger_type in TRIGGER_FEED:
            alert_type, message, _ = TRIGGER_FEED[trigger.trigger_type]
            break

    return FeedAlert(
        alert_id=_new_id(),
        node_id=node_id,
        alert_type=alert_type,
        kind="infection",
        message=message,
        severity="critical",
    )


def neighbor_warning_alert(node_id: str, infected_neighbor_id: str, distance: float, trigger_type: str) -> FeedAlert:
    short = infected_neighbor_id[:8]
    if trigger_type in TRIGGER_FEED:
        alert_type, _, suffix = TRIGGER_FEED[trigger_type]
        message = f"WARNING: Neighbor node ({short}...) {suffix}"
    else:
        alert_type = "anomaly"
        message = "Neighbor node warning: infection detected nearby"

    return FeedAlert(
        alert_id=_new_id(),
        node_id=node_id,
        alert_type=alert_type,
        kind="warning",
        message=message,
        severity="high",
        source_node_id=infected_neighbor_id,
        distance=distance,
    )


class AlertFeed:
    """Bounded newest-first feed."""

    def __init__(self, max_size: int = 50):
        self._items = deque(maxlen=max_size)

    def extend(self, alerts: List[FeedAlert]) -> None:
        # Batch stays in its own order, ahead of older entries
        for alert in reversed(alerts):
            self._items.appendleft(alert)

    def latest(self, limit: Optional[int] = None) -> List[FeedAlert]:
        items = list(self._items)
        return items[:limit] if limit is not None else items

    def resize(self, max_size: int) -> None:
        self._items = deque(list(self._items)[:max_size], maxlen=max_size)

    def __len__(self) -> int:
        return len(self._items)
