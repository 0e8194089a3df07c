"""
Background scheduler for digest notifications.

Runs the weekly and monthly digest jobs:
- Weekly digest every Monday at 10:00 UTC
- Monthly digest on the first day of the month at 10:00 UTC
"""

import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from .digest import DigestBuilder, TeamDigest
from .models import DigestFrequency

logger = logging.getLogger(__name__)

DigestDelivery = Callable[[TeamDigest], Awaitable[None]]


async def log_digest(digest: TeamDigest) -> None:
    """Fallback delivery used when no channel sender is configured."""
    logger.info(
        f"{digest.frequency.value.capitalize()} digest for team {digest.team_id}: "
        f"{len(digest.ideas)} ideas"
    )


class DigestScheduler:
    """
    Manages the periodic digest jobs.

    Each job builds the digests of every team subscribed to the job's
    frequency and hands them to ``deliver`` one at a time. A failed
    delivery is counted and does not stop the remaining teams.
    """

    def __init__(
        self,
        builder: DigestBuilder,
        deliver: Optional[DigestDelivery] = None,
    ):
        """
        Initialize the digest scheduler.

        Args:
            builder: Builds the per-team digests.
            deliver: Async callable that sends one digest to its team.
        """
        self.builder = builder
        self.deliver = deliver or log_digest
        self._scheduler: Optional[AsyncIOScheduler] = None

    async def run_digest_job(
        self,
        frequency: DigestFrequency,
        now: Optional[datetime] = None,
    ) -> dict[str, Any]:
        """
        Build and deliver the digests for one frequency.

        Returns:
            Dictionary with job results.
        """
        start_time = datetime.now(timezone.utc)
        logger.info(f"Starting {frequency.value} digest job at {start_time}")

        results: dict[str, Any] = {
            "frequency": frequency.value,
            "started_at": start_time.isoformat(),
            "teams": 0,
            "ideas": 0,
            "errors": 0,
        }

        try:
            digests = await self.builder.build(frequency, now)

            for digest in digests:
                try:
                    await self.deliver(digest)
                    results["teams"] += 1
                    results["ideas"] += len(digest.ideas)
                except Exception as e:
                    logger.error(f"Error delivering digest to team {digest.team_id}: {e}")
                    results["errors"] += 1

            completed_at = datetime.now(timezone.utc)
            duration = (completed_at - start_time).total_seconds()
            results["duration_seconds"] = duration
            results["completed_at"] = completed_at.isoformat()

            logger.info(
                f"{frequency.value.capitalize()} digest job completed in {duration:.1f}s: "
                f"{results['teams']} teams, "
                f"{results['ideas']} ideas, "
                f"{results['errors']} errors"
            )

        except Exception as e:
            logger.error(f"{frequency.value.capitalize()} digest job failed: {e}")
            results["error"] = str(e)

        return results

    async def run_weekly_digest(self) -> dict[str, Any]:
        return await self.run_digest_job(DigestFrequency.WEEKLY)

    async def run_monthly_digest(self) -> dict[str, Any]:
        return await self.run_digest_job(DigestFrequency.MONTHLY)

    def start(self) -> None:
        """
        Start the background scheduler.

        Schedules:
        1. Weekly digest on Mondays at 10:00 UTC
        2. Monthly digest on the 1st at 10:00 UTC
        """
        if self._scheduler is not None:
            logger.warning("Digest scheduler already running")
            return

        self._scheduler = AsyncIOScheduler(timezone=timezone.utc)

        self._scheduler.add_job(
            self.run_weekly_digest,
            trigger=CronTrigger(day_of_week="mon", hour=10, minute=0, timezone=timezone.utc),
            id="weekly_digest",
            name="Weekly Digest",
            replace_existing=True,
        )

        self._scheduler.add_job(
            self.run_monthly_digest,
            trigger=CronTrigger(day=1, hour=10, minute=0, timezone=timezone.utc),
            id="monthly_digest",
            name="Monthly Digest",
            replace_existing=True,
        )

        self._scheduler.start()
        logger.info(
            "Digest scheduler started - "
            "weekly on Mondays 10:00 UTC, monthly on the 1st 10:00 UTC"
        )

    def stop(self) -> None:
        """Stop the background scheduler."""
        if self._scheduler is not None:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None
            logger.info("Digest scheduler stopped")

    @property
    def running(self) -> bool:
        return self._scheduler is not None

    async def trigger(self, frequency: DigestFrequency) -> dict[str, Any]:
        """Trigger an immediate digest job."""
        logger.info(f"Triggering immediate {frequency.value} digest job")
        return await self.run_digest_job(frequency)
