"""
No-show sweep.

Confirmed bookings dated today that nobody checked into within the grace
period after their start are flipped to NoShow. Each tenant is updated by a
single conditional UPDATE in its own transaction, so a check-in that
committed first is never overwritten and running the sweep again changes
nothing.
"""
import logging
import threading
from datetime import timedelta
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from workspace_booking.config import settings
from workspace_booking.db import begin_write
from workspace_booking.errors import InfrastructureError
from workspace_booking.models.booking import Booking, BookingStatus
from workspace_booking.schemas.booking import NoShowSweepResult
from workspace_booking.utils.clock import utcnow

logger = logging.getLogger(__name__)

# one sweep per process at a time
_sweep_lock = threading.Lock()


class NoShowSweeper:
    def __init__(self, db: Session, clock=utcnow, grace_minutes: Optional[int] = None):
        self.db = db
        self.clock = clock
        self.grace = timedelta(
            minutes=settings.no_show_grace_minutes if grace_minutes is None else grace_minutes
        )

    def _candidates(self, today, cutoff):
        return self.db.query(Booking).filter(
            Booking.booking_date == today,
            Booking.status == BookingStatus.CONFIRMED,
            Booking.check_in_time.is_(None),
            Booking.start_time < cutoff,
        )

    def _mark_tenant(self, tenant_id: str, today, cutoff, now) -> int:
        begin_write(self.db)
        marked = (
            self._candidates(today, cutoff)
            .filter(Booking.tenant_id == tenant_id)
            .update(
                {
                    Booking.status: BookingStatus.NO_SHOW,
                    Booking.is_no_show: True,
                    Booking.updated_at: now,
                },
                synchronize_session=False,
            )
        )
        self.db.commit()
        return marked

    def run(self) -> NoShowSweepResult:
        if not _sweep_lock.acquire(blocking=False):
            logger.info("No-show sweep already running, skipping")
            return NoShowSweepResult(skipped=True)
        try:
            return self._run()
        finally:
            _sweep_lock.release()

    def _run(self) -> NoShowSweepResult:
        now = self.clock()
        today = now.date()
        threshold = now - self.grace
        result = NoShowSweepResult()
        if threshold.date() != today:
            # nothing that started today is overdue yet
            return result
        cutoff = threshold.time()

        try:
            tenant_ids = [
                row[0]
                for row in self._candidates(today, cutoff)
                .with_entities(Booking.tenant_id)
                .distinct()
                .order_by(Booking.tenant_id)
                .all()
            ]
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception("No-show sweep could not list tenants")
            raise InfrastructureError("An error occurred while marking no-show bookings") from exc
        self.db.rollback()

        for tenant_id in tenant_ids:
            try:
                marked = self._mark_tenant(tenant_id, today, cutoff, now)
            except SQLAlchemyError:
                self.db.rollback()
                logger.exception(f"No-show sweep failed for tenant {tenant_id}")
                result.failed_tenants.append(tenant_id)
                continue
            result.tenants_processed += 1
            result.marked += marked
            if marked:
                logger.debug(f"Tenant {tenant_id}: {marked} no-show bookings")

        if result.marked:
            logger.info(f"Marked {result.marked} bookings as no-show")
        return result


def run_no_show_sweep(session_factory, clock=utcnow) -> NoShowSweepResult:
    """Scheduler entry point: run one sweep with a fresh session."""
    db = session_factory()
    try:
        return NoShowSweeper(db, clock=clock).run()
    finally:
        db.close()
