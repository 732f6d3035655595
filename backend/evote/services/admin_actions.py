"""
Bounded admin-action log used by clients as a refresh hint.

Not used for correctness: entries only tell polling clients that
something changed recently.
"""
import logging
import secrets
from collections import deque
from dataclasses import dataclass, field, asdict
from typing import Any, Deque, Dict, List, Optional

from evote.core.config import settings
from evote.core.timeutils import epoch_millis


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AdminAction:
    id: str
    action: str
    timestamp: int
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class AdminActionLog:
    """Ring buffer of the most recent admin actions; the oldest entry is evicted first."""

    def __init__(self, capacity: Optional[int] = None):
        self.capacity = capacity or settings.ADMIN_ACTION_LOG_SIZE
        self._actions: Deque[AdminAction] = deque(maxlen=self.capacity)
        self.last_updated = epoch_millis()

    def record(
        self,
        action: str,
        data: Optional[Dict[str, Any]] = None,
        timestamp: Optional[int] = None
    ) -> AdminAction:
        entry = AdminAction(
            id=secrets.token_hex(5),
            action=action,
            timestamp=timestamp or epoch_millis(),
            data=dict(data or {}),
        )
        self._actions.append(entry)
        self.last_updated = epoch_millis()
        logger.info("Admin action recorded: %s", action)
        return entry

    def recent(self, window_seconds: Optional[int] = None, now: Optional[int] = None) -> List[AdminAction]:
        """Actions newer than the window, oldest first."""
        window = window_seconds if window_seconds is not None else settings.SYNC_RECENT_WINDOW_SECONDS
        cutoff = (now or epoch_millis()) - window * 1000
        return [a for a in self._actions if a.timestamp > cutoff]

    def snapshot(self) -> List[AdminAction]:
        return list(self._actions)

    def __len__(self) -> int:
        return len(self._actions)
