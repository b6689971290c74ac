"""Count-based achievements for completed challenges.

Evaluation is a side effect of completion and never fails it: each award runs
in its own savepoint and errors are logged.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from shinobi.challenges.state_machine import COMPLETED
from shinobi.db.models import Achievement, UserAchievement, UserChallenge
from shinobi.notifications.service import ACHIEVEMENT_EARNED, notify

logger = logging.getLogger(__name__)

CHALLENGE_COMPLETED_TYPE = "CHALLENGE_COMPLETED"

ACHIEVEMENT_SEED_DATA: list[dict] = [
    {
        "slug": "first_challenge",
        "name": "First Steps",
        "description": "Complete your first language challenge",
        "achievement_type": CHALLENGE_COMPLETED_TYPE,
        "threshold": 1,
    },
    {
        "slug": "challenges_5",
        "name": "Dedicated Learner",
        "description": "Complete 5 language challenges",
        "achievement_type": CHALLENGE_COMPLETED_TYPE,
        "threshold": 5,
    },
    {
        "slug": "challenges_10",
        "name": "Polyglot in Training",
        "description": "Complete 10 language challenges",
        "achievement_type": CHALLENGE_COMPLETED_TYPE,
        "threshold": 10,
    },
]


async def seed_achievements(db: AsyncSession) -> int:
    """Insert or refresh the achievement definitions. Returns number seeded."""
    existing = {
        a.slug: a for a in (await db.execute(select(Achievement))).scalars().all()
    }
    for data in ACHIEVEMENT_SEED_DATA:
        row = existing.get(data["slug"])
        if row is None:
            db.add(Achievement(**data))
        else:
            for key, value in data.items():
                setattr(row, key, value)
    await db.commit()
    logger.info("Seeded %d achievement definitions", len(ACHIEVEMENT_SEED_DATA))
    return len(ACHIEVEMENT_SEED_DATA)


async def count_completed_challenges(db: AsyncSession, user_id: int) -> int:
    result = await db.execute(
        select(func.count())
        .select_from(UserChallenge)
        .where(UserChallenge.user_id == user_id, UserChallenge.status == COMPLETED)
    )
    return result.scalar_one()


async def evaluate_challenge_achievements(db: AsyncSession, user_id: int) -> list[str]:
    """Award every completion-count achievement the user now qualifies for.

    Returns the slugs newly awarded. Already-earned achievements and unique
    constraint races are skipped silently.
    """
    try:
        completed = await count_completed_challenges(db, user_id)
        earned_ids = set(
            (
                await db.execute(
                    select(UserAchievement.achievement_id).where(UserAchievement.user_id == user_id)
                )
            ).scalars().all()
        )
        candidates = (
            await db.execute(
                select(Achievement)
                .where(
                    Achievement.achievement_type == CHALLENGE_COMPLETED_TYPE,
                    Achievement.threshold <= completed,
                )
                .order_by(Achievement.threshold)
            )
        ).scalars().all()
    except Exception:
        logger.warning("Achievement lookup failed for user %s", user_id, exc_info=True)
        return []

    awarded: list[str] = []
    for achievement in candidates:
        if achievement.id in earned_ids:
            continue
        slug, name, description = achievement.slug, achievement.name, achievement.description
        try:
            async with db.begin_nested():
                db.add(
                    UserAchievement(
                        user_id=user_id,
                        achievement_id=achievement.id,
                        earned_at=datetime.now(timezone.utc),
                    )
                )
                await db.flush()
        except IntegrityError:
            continue  # Race condition: already awarded
        except Exception:
            logger.warning("Failed to award achievement %s to user %s", slug, user_id, exc_info=True)
            continue

        awarded.append(slug)
        await notify(db, user_id, ACHIEVEMENT_EARNED, f"Achievement Unlocked: {name}", description)

    if awarded:
        logger.info("User %s earned achievements: %s", user_id, ", ".join(awarded))
    return awarded
