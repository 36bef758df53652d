# breakwatch/services/alert_store.py

import asyncio
import logging
from typing import List, Optional

from pydantic import ValidationError

from breakwatch.schemas.market import Alert
from breakwatch.services.persistence import StateStore
from breakwatch.utils.metrics import alerts_total

logger = logging.getLogger(__name__)


class AlertStore:
    """
    Durable breakout alerts, one per (symbol, type, IST trading day).

    Alerts live in a single hash keyed by the dedup key, so the dedup check
    and the insert are one atomic HSETNX. Two instances racing on the same
    breakout cannot both win.
    """

    def __init__(self, store: StateStore, key: str = "breakwatch:alerts"):
        self.store = store
        self.key = key
        # Serializes read-modify-write of the read flag within this process
        self._lock = asyncio.Lock()

    async def add(self, alert: Alert) -> bool:
        """True if stored; False if an alert with the same dedup key exists."""
        created = await self.store.hash_set_if_absent(
            self.key, alert.dedup_key, alert.model_dump_json()
        )
        alerts_total.labels(
            alert_type=alert.alert_type, result="created" if created else "duplicate"
        ).inc()
        if created:
            logger.info(
                f"Alert created: {alert.symbol} {alert.alert_type} "
                f"high {alert.high_break_percent:+.2f}% vol {alert.volume_break_percent:+.2f}%"
            )
        else:
            logger.debug(f"Duplicate alert suppressed: {alert.dedup_key}")
        return created

    async def _load(self) -> List[tuple]:
        raw = await self.store.hash_get_all(self.key)
        entries = []
        for field, payload in raw.items():
            try:
                entries.append((field, Alert.model_validate_json(payload)))
            except ValidationError as e:
                logger.warning(f"Skipping unreadable alert {field}: {e}")
        return entries

    async def list(self) -> List[Alert]:
        """Newest first."""
        alerts = [alert for _, alert in await self._load()]
        return sorted(alerts, key=lambda a: a.triggered_at, reverse=True)

    async def get(self, alert_id: str) -> Optional[Alert]:
        for _, alert in await self._load():
            if alert.id == alert_id:
                return alert
        return None

    async def mark_read(self, alert_id: str) -> bool:
        """False when no alert has this id. The read flag never reverts."""
        async with self._lock:
            for field, alert in await self._load():
                if alert.id != alert_id:
                    continue
                if not alert.read:
                    alert.read = True
                    await self.store.hash_set(self.key, field, alert.model_dump_json())
                return True
        return False

    async def mark_all_read(self) -> int:
        updated = 0
        async with self._lock:
            for field, alert in await self._load():
                if alert.read:
                    continue
                alert.read = True
                await self.store.hash_set(self.key, field, alert.model_dump_json())
                updated += 1
        if updated:
            logger.info(f"Marked {updated} alert(s) read")
        return updated

    async def unread_count(self) -> int:
        return sum(1 for _, alert in await self._load() if not alert.read)
