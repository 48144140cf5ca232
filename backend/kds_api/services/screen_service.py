"""
Screen Registry: display endpoints and their activity state.

Only ONLINE screens take part in distribution. Standby keeps a screen's
current orders in place; activation makes it eligible again from the next
cycle, with no backfill.
"""

from __future__ import annotations

import secrets
from datetime import timedelta
from typing import TYPE_CHECKING, Sequence

from sqlalchemy import update
from sqlalchemy.orm import Session

from shared.config.constants import ScreenStatus
from shared.config.logging import screen_logger as logger
from shared.infrastructure.db import safe_commit
from shared.utils.exceptions import QueueNotFoundError, ScreenNotFoundError, StoreUnavailableError
from shared.utils.kds_schemas import ScreenCreate, ScreenUpdate
from kds_api.models import Order, Screen, utcnow
from kds_api.repositories import QueueRepository, ScreenFilters, ScreenRepository

if TYPE_CHECKING:
    from kds_api.services.balancer import Balancer
    from kds_api.services.stores import Notifier


def generate_api_key() -> str:
    """Random credential a screen presents when it connects."""
    return secrets.token_hex(24)


class ScreenRegistry:
    """
    Screen bookkeeping for one database session.

    The balancer and notifier are optional: status changes made without them
    skip the standby/reactivation hooks and the screen notification.
    """

    def __init__(
        self,
        db: Session,
        balancer: "Balancer | None" = None,
        notifier: "Notifier | None" = None,
    ):
        self._db = db
        self._repo = ScreenRepository(db)
        self._balancer = balancer
        self._notifier = notifier

    # =========================================================================
    # Queries
    # =========================================================================

    def active_screens(self, queue_id: int) -> list[Screen]:
        """ONLINE screens of a queue in stable (creation) order."""
        return list(self._repo.find_online(queue_id))

    def active_screen_ids(self, queue_id: int) -> list[int]:
        return [screen.id for screen in self.active_screens(queue_id)]

    def list_screens(
        self,
        queue_id: int | None = None,
        status: str | None = None,
        limit: int = 200,
        offset: int = 0,
    ) -> Sequence[Screen]:
        filters = ScreenFilters(queue_id=queue_id, status=status, limit=limit, offset=offset)
        return self._repo.find_all(filters)

    def get_screen(self, screen_id: int) -> Screen:
        screen = self._repo.find_by_id(screen_id)
        if screen is None:
            raise ScreenNotFoundError(screen_id)
        return screen

    # =========================================================================
    # Operator CRUD
    # =========================================================================

    def create_screen(self, data: ScreenCreate) -> Screen:
        """Register a screen. It starts OFFLINE until its first heartbeat."""
        self._require_queue(data.queue_id)

        screen = Screen(
            name=data.name,
            address=data.address,
            queue_id=data.queue_id,
            status=ScreenStatus.OFFLINE,
            api_key=generate_api_key(),
        )
        self._repo.save(screen)
        safe_commit(self._db)
        self._db.refresh(screen)

        logger.info("Screen created", screen_id=screen.id, screen=screen.name, queue_id=screen.queue_id)
        return screen

    def update_screen(self, screen_id: int, data: ScreenUpdate) -> Screen:
        screen = self.get_screen(screen_id)
        changes = data.model_dump(exclude_unset=True)

        if changes.get("queue_id") is not None and changes["queue_id"] != screen.queue_id:
            self._require_queue(changes["queue_id"])

        for field, value in changes.items():
            if value is not None:
                setattr(screen, field, value)

        safe_commit(self._db)
        self._db.refresh(screen)
        logger.info("Screen updated", screen_id=screen.id, fields=sorted(changes))
        return screen

    async def delete_screen(self, screen_id: int) -> None:
        """Delete a screen; its orders stay in the store, unassigned, and its index is emptied."""
        screen = self.get_screen(screen_id)

        self._db.execute(
            update(Order)
            .where(Order.screen_id == screen_id)
            .values(screen_id=None)
            .execution_options(synchronize_session=False)
        )
        self._repo.delete(screen)
        safe_commit(self._db)

        if self._balancer is not None:
            try:
                await self._balancer.index.replace(screen_id, [])
            except StoreUnavailableError as e:
                logger.warning("Could not clear index of deleted screen", screen_id=screen_id, error=str(e))
        logger.info("Screen deleted", screen_id=screen_id)

    def get_by_api_key(self, api_key: str) -> Screen:
        """Resolve the screen presenting a credential."""
        screen = self._repo.find_by_api_key(api_key)
        if screen is None:
            raise ScreenNotFoundError(None, reason="unknown api key")
        return screen

    def regenerate_key(self, screen_id: int) -> str:
        screen = self.get_screen(screen_id)
        screen.api_key = generate_api_key()
        safe_commit(self._db)
        logger.info("Screen credential regenerated", screen_id=screen_id)
        return screen.api_key

    # =========================================================================
    # Activity
    # =========================================================================

    async def set_standby(self, screen_id: int) -> Screen:
        """Exclude a screen from future distribution. Its orders stay put."""
        screen = self.get_screen(screen_id)
        if screen.status != ScreenStatus.STANDBY:
            screen.status = ScreenStatus.STANDBY
            safe_commit(self._db)
            logger.info("Screen set to standby", screen_id=screen_id)

        if self._balancer is not None:
            self._balancer.handle_screen_standby(screen)
        if self._notifier is not None:
            await self._notifier.screen_status_changed(screen_id, ScreenStatus.STANDBY)
        return screen

    async def activate(self, screen_id: int) -> Screen:
        """Make a screen eligible for distribution from the next cycle."""
        screen = self.get_screen(screen_id)
        if screen.status != ScreenStatus.ONLINE:
            screen.status = ScreenStatus.ONLINE
            safe_commit(self._db)
            logger.info("Screen activated", screen_id=screen_id)

        if self._balancer is not None:
            self._balancer.handle_screen_reactivation(screen)
        if self._notifier is not None:
            await self._notifier.screen_status_changed(screen_id, ScreenStatus.ONLINE)
        return screen

    def heartbeat(self, screen_id: int) -> Screen:
        """
        Record that a screen is alive.

        An OFFLINE screen comes back ONLINE; STANDBY is an operator decision
        and is kept.
        """
        screen = self.get_screen(screen_id)
        screen.last_heartbeat = utcnow()
        if screen.status == ScreenStatus.OFFLINE:
            screen.status = ScreenStatus.ONLINE
            logger.info("Screen back online", screen_id=screen_id)
        safe_commit(self._db)
        return screen

    def mark_stale_offline(self, timeout_seconds: int) -> list[int]:
        """Mark ONLINE screens without a recent heartbeat OFFLINE. Returns their ids."""
        cutoff = utcnow() - timedelta(seconds=timeout_seconds)
        stale = self._repo.find_stale_online(cutoff)
        if not stale:
            return []

        for screen in stale:
            screen.status = ScreenStatus.OFFLINE
        safe_commit(self._db)

        stale_ids = [screen.id for screen in stale]
        logger.warning("Screens missed heartbeat, marked offline", screen_ids=stale_ids)
        return stale_ids

    def _require_queue(self, queue_id: int) -> None:
        if QueueRepository(self._db).find_by_id(queue_id) is None:
            raise QueueNotFoundError(queue_id)
