"""Daily sweep over ACTIVE participations.

Ended participations are settled (COMPLETED, FAILED, or COMPLETED as a
partial no-loss result); running ones get practice reminders and hardcore
streak warnings. Every participation is processed in its own savepoint and
committed on its own, so one bad record never aborts the rest.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from shinobi.challenges.lifecycle_service import count_completed_days
from shinobi.challenges.state_machine import ACTIVE, COMPLETED, FAILED, validate_transition
from shinobi.challenges.streak import compute_progress_percentage, meets_completion_threshold, utc_today
from shinobi.config import get_settings
from shinobi.db.models import DailyProgress, UserChallenge
from shinobi.email.service import EmailService
from shinobi.email.templates import language_name
from shinobi.notifications.service import (
    CHALLENGE_COMPLETED,
    CHALLENGE_FAILED,
    CHALLENGE_REMINDER,
    STREAK_WARNING,
    notify,
)

logger = logging.getLogger(__name__)

# Outcomes for ended participations
OUTCOME_COMPLETED = "completed"
OUTCOME_PARTIAL = "partial"
OUTCOME_FAILED = "failed"


@dataclass
class PendingEmail:
    to: str
    template: str
    context: dict[str, Any]


@dataclass
class SweepReport:
    processed: int = 0
    completed: int = 0
    partial: int = 0
    failed: int = 0
    reminders: int = 0
    streak_warnings: int = 0
    emails_sent: int = 0
    errors: int = 0
    error_ids: list[int] = field(default_factory=list)


async def _load(db: AsyncSession, user_challenge_id: int) -> UserChallenge:
    result = await db.execute(
        select(UserChallenge)
        .options(selectinload(UserChallenge.challenge), selectinload(UserChallenge.user))
        .where(UserChallenge.id == user_challenge_id)
    )
    return result.scalar_one()


async def settle_ended(
    db: AsyncSession,
    participation: UserChallenge,
    threshold: float,
    emails: list[PendingEmail],
) -> str:
    """Move an ended participation out of ACTIVE. Returns the outcome."""
    challenge = participation.challenge
    total = challenge.duration_days
    completed = await count_completed_days(db, participation.id)
    participation.progress_percentage = compute_progress_percentage(completed, total)
    claim_url = f"{get_settings().frontend_base_url}/dashboard/challenges/{challenge.id}"
    email = participation.user.email

    if meets_completion_threshold(completed, total, threshold):
        validate_transition(participation.status, COMPLETED)
        participation.status = COMPLETED
        outcome = OUTCOME_COMPLETED
        await notify(
            db,
            participation.user_id,
            CHALLENGE_COMPLETED,
            "Challenge Completed!",
            f'Congratulations! You\'ve completed the "{challenge.title}" challenge. Claim your rewards now.',
        )
        template = "challenge_completed"
        context: dict[str, Any] = {
            "challenge_title": challenge.title,
            "completed_days": completed,
            "total_days": total,
            "claim_url": claim_url,
            "met_threshold": True,
        }
    elif challenge.is_hardcore:
        validate_transition(participation.status, FAILED)
        participation.status = FAILED
        outcome = OUTCOME_FAILED
        await notify(
            db,
            participation.user_id,
            CHALLENGE_FAILED,
            "Challenge Failed",
            f'Unfortunately, you didn\'t meet the requirements for the "{challenge.title}" challenge. '
            "Your stake has been forfeited.",
        )
        template = "challenge_failed"
        context = {"challenge_title": challenge.title, "completed_days": completed, "total_days": total}
    else:
        validate_transition(participation.status, COMPLETED)
        participation.status = COMPLETED
        outcome = OUTCOME_PARTIAL
        await notify(
            db,
            participation.user_id,
            CHALLENGE_COMPLETED,
            "Challenge Completed",
            f'Your "{challenge.title}" challenge has ended. You completed {completed} out of {total} days. '
            "Claim your stake now.",
        )
        template = "challenge_completed"
        context = {
            "challenge_title": challenge.title,
            "completed_days": completed,
            "total_days": total,
            "claim_url": claim_url,
            "met_threshold": False,
        }

    await db.flush()
    if email:
        emails.append(PendingEmail(email, template, context))
    return outcome


async def nudge_running(
    db: AsyncSession,
    participation: UserChallenge,
    today: date,
    emails: list[PendingEmail],
) -> tuple[bool, bool]:
    """Reminder and streak warning for a running participation.

    Returns (reminded, warned).
    """
    challenge = participation.challenge
    practice_url = f"{get_settings().frontend_base_url}/dashboard/learn"
    email = participation.user.email

    done_today = (
        await db.execute(
            select(DailyProgress.id)
            .where(
                DailyProgress.user_challenge_id == participation.id,
                DailyProgress.date == today,
                DailyProgress.completed.is_(True),
            )
            .limit(1)
        )
    ).scalar_one_or_none() is not None

    reminded = warned = False
    if not done_today:
        await notify(
            db,
            participation.user_id,
            CHALLENGE_REMINDER,
            "Daily Practice Reminder",
            f"Don't forget to practice {challenge.daily_requirement} minutes of "
            f"{language_name(challenge.language_code)} today to maintain your streak!",
        )
        reminded = True
        if email:
            emails.append(
                PendingEmail(
                    email,
                    "practice_reminder",
                    {
                        "daily_requirement": challenge.daily_requirement,
                        "language_code": challenge.language_code,
                        "practice_url": practice_url,
                    },
                )
            )

    if participation.current_streak == 0 and challenge.is_hardcore:
        await notify(
            db,
            participation.user_id,
            STREAK_WARNING,
            "Streak Warning",
            f'Your streak for the "{challenge.title}" challenge is at risk! '
            "Practice today to avoid losing your stake.",
        )
        warned = True
        if email:
            emails.append(
                PendingEmail(
                    email,
                    "streak_warning",
                    {"challenge_title": challenge.title, "practice_url": practice_url},
                )
            )
    return reminded, warned


async def _deliver(email_service: EmailService | None, emails: list[PendingEmail]) -> int:
    if email_service is None:
        return 0
    sent = 0
    for pending in emails:
        try:
            if await email_service.send_template(pending.to, pending.template, pending.context):
                sent += 1
        except Exception:
            logger.warning("Sweep email %s to %s failed", pending.template, pending.to, exc_info=True)
    return sent


async def run_daily_checks(
    db: AsyncSession,
    now: datetime | None = None,
    email_service: EmailService | None = None,
    threshold: float | None = None,
) -> SweepReport:
    """Settle ended participations and nudge running ones.

    Emails go out only after the record's changes are committed; without an
    ``email_service`` none are sent.
    """
    now = now or datetime.now(timezone.utc)
    today = utc_today(now)
    if threshold is None:
        threshold = get_settings().completion_threshold
    report = SweepReport()

    ended_ids = (
        await db.execute(
            select(UserChallenge.id)
            .where(UserChallenge.status == ACTIVE, UserChallenge.end_date <= now)
            .order_by(UserChallenge.id)
        )
    ).scalars().all()
    running_ids = (
        await db.execute(
            select(UserChallenge.id)
            .where(UserChallenge.status == ACTIVE, UserChallenge.end_date > now)
            .order_by(UserChallenge.id)
        )
    ).scalars().all()
    logger.info("Daily sweep at %s: %d ended, %d running", now.isoformat(), len(ended_ids), len(running_ids))

    for uc_id in ended_ids:
        report.processed += 1
        emails: list[PendingEmail] = []
        try:
            async with db.begin_nested():
                outcome = await settle_ended(db, await _load(db, uc_id), threshold, emails)
            await db.commit()
        except Exception:
            logger.exception("Sweep failed to settle user_challenge %s", uc_id)
            await db.rollback()
            report.errors += 1
            report.error_ids.append(uc_id)
            continue
        if outcome == OUTCOME_COMPLETED:
            report.completed += 1
        elif outcome == OUTCOME_FAILED:
            report.failed += 1
        else:
            report.partial += 1
        report.emails_sent += await _deliver(email_service, emails)

    for uc_id in running_ids:
        report.processed += 1
        emails = []
        try:
            async with db.begin_nested():
                reminded, warned = await nudge_running(db, await _load(db, uc_id), today, emails)
            await db.commit()
        except Exception:
            logger.exception("Sweep failed to nudge user_challenge %s", uc_id)
            await db.rollback()
            report.errors += 1
            report.error_ids.append(uc_id)
            continue
        report.reminders += int(reminded)
        report.streak_warnings += int(warned)
        report.emails_sent += await _deliver(email_service, emails)

    logger.info(
        "Daily sweep done: %d completed, %d partial, %d failed, %d reminders, %d warnings, %d errors",
        report.completed,
        report.partial,
        report.failed,
        report.reminders,
        report.streak_warnings,
        report.errors,
    )
    return report
