"""A user's achievement and belt collection: listing, equipping and display."""

from datetime import date
from typing import Any

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from trivia.core.config import settings
from trivia.models.gamification import (
    Achievement,
    ChampionshipBelt,
    UserAchievement,
    UserBelt,
)
from trivia.models.quiz import UserAnswer
from trivia.models.user import User
from trivia.services.errors import LimitExceededError, NotFoundError


def featured_index(day: date, belt_count: int) -> int:
    """Index of the featured belt; rotates once per week of the year."""
    week_number = (day.timetuple().tm_yday - 1) // 7
    return week_number % belt_count


def _belt_dict(belt: ChampionshipBelt) -> dict[str, Any]:
    return {
        "id": belt.id,
        "name": belt.name,
        "description": belt.description,
        "image_url": belt.image_url,
        "rarity": belt.rarity,
        "xp_reward": belt.xp_reward,
        "category": (
            {"id": belt.category.id, "name": belt.category.name, "slug": belt.category.slug}
            if belt.category
            else None
        ),
    }


class CollectionService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_achievements(self, user_id: int) -> list[dict[str, Any]]:
        """Every achievement with the user's unlock state."""
        result = await self.db.execute(
            select(Achievement).order_by(Achievement.xp_reward, Achievement.id)
        )
        achievements = result.scalars().all()

        result = await self.db.execute(
            select(UserAchievement).where(UserAchievement.user_id == user_id)
        )
        unlocked = {ua.achievement_id: ua for ua in result.scalars().all()}

        return [
            {
                "id": a.id,
                "name": a.name,
                "description": a.description,
                "xp_reward": a.xp_reward,
                "belt_tier": a.belt_tier,
                "unlocked": a.id in unlocked,
                "unlocked_at": unlocked[a.id].unlocked_at.isoformat() if a.id in unlocked else None,
                "is_equipped": unlocked[a.id].is_equipped if a.id in unlocked else False,
            }
            for a in achievements
        ]

    async def list_belts(self, user_id: int) -> list[dict[str, Any]]:
        """Every belt with the user's ownership state."""
        result = await self.db.execute(
            select(ChampionshipBelt).order_by(ChampionshipBelt.rarity, ChampionshipBelt.name)
        )
        belts = result.scalars().all()

        result = await self.db.execute(select(UserBelt).where(UserBelt.user_id == user_id))
        owned = {ub.belt_id: ub for ub in result.scalars().all()}

        items = []
        for belt in belts:
            item = _belt_dict(belt)
            user_belt = owned.get(belt.id)
            item["owned"] = user_belt is not None
            item["earned_at"] = user_belt.earned_at.isoformat() if user_belt else None
            item["is_displayed"] = user_belt.is_displayed if user_belt else False
            items.append(item)
        return items

    async def toggle_equip(self, user_id: int, achievement_id: int) -> dict[str, Any]:
        """Equip or unequip an unlocked achievement."""
        result = await self.db.execute(
            select(UserAchievement).where(
                UserAchievement.user_id == user_id,
                UserAchievement.achievement_id == achievement_id,
            )
        )
        user_achievement = result.scalar_one_or_none()
        if user_achievement is None:
            raise NotFoundError("Achievement not unlocked")

        if not user_achievement.is_equipped:
            result = await self.db.execute(
                select(func.count(UserAchievement.id)).where(
                    UserAchievement.user_id == user_id,
                    UserAchievement.is_equipped.is_(True),
                )
            )
            if (result.scalar() or 0) >= settings.max_equipped_achievements:
                raise LimitExceededError(
                    f"Maximum {settings.max_equipped_achievements} achievements can be equipped. "
                    "Unequip one first."
                )

        is_equipped = not user_achievement.is_equipped
        user_achievement.is_equipped = is_equipped
        await self.db.commit()
        return {"achievement_id": achievement_id, "is_equipped": is_equipped}

    async def toggle_display(self, user_id: int, belt_id: int) -> dict[str, Any]:
        """Show or hide an owned belt on the user's profile."""
        result = await self.db.execute(
            select(UserBelt).where(UserBelt.user_id == user_id, UserBelt.belt_id == belt_id)
        )
        user_belt = result.scalar_one_or_none()
        if user_belt is None:
            raise NotFoundError("Belt not owned")

        if not user_belt.is_displayed:
            result = await self.db.execute(
                select(func.count(UserBelt.id)).where(
                    UserBelt.user_id == user_id,
                    UserBelt.is_displayed.is_(True),
                )
            )
            if (result.scalar() or 0) >= settings.max_displayed_belts:
                raise LimitExceededError(
                    f"Maximum {settings.max_displayed_belts} belts can be displayed. Hide one first."
                )

        is_displayed = not user_belt.is_displayed
        user_belt.is_displayed = is_displayed
        await self.db.commit()
        return {"belt_id": belt_id, "is_displayed": is_displayed}

    async def featured_belt(self, day: date) -> dict[str, Any] | None:
        """The belt of the week, or None when no belts exist."""
        result = await self.db.execute(select(ChampionshipBelt).order_by(ChampionshipBelt.id))
        belts = result.scalars().all()
        if not belts:
            return None
        return _belt_dict(belts[featured_index(day, len(belts))])

    async def showcase(self, user_id: int) -> dict[str, Any]:
        """Public profile: equipped achievements, displayed belts and headline stats."""
        user = await self.db.get(User, user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found")

        result = await self.db.execute(
            select(UserAchievement, Achievement)
            .join(Achievement, Achievement.id == UserAchievement.achievement_id)
            .where(UserAchievement.user_id == user_id, UserAchievement.is_equipped.is_(True))
            .order_by(UserAchievement.unlocked_at, UserAchievement.id)
            .limit(settings.max_equipped_achievements)
        )
        equipped = [
            {
                "id": achievement.id,
                "name": achievement.name,
                "description": achievement.description,
                "belt_tier": achievement.belt_tier,
                "unlocked_at": unlock.unlocked_at.isoformat(),
            }
            for unlock, achievement in result.all()
        ]

        result = await self.db.execute(
            select(UserBelt, ChampionshipBelt)
            .join(ChampionshipBelt, ChampionshipBelt.id == UserBelt.belt_id)
            .where(UserBelt.user_id == user_id, UserBelt.is_displayed.is_(True))
            .order_by(UserBelt.earned_at, UserBelt.id)
            .limit(settings.max_displayed_belts)
        )
        displayed = []
        for user_belt, belt in result.all():
            item = _belt_dict(belt)
            item["earned_at"] = user_belt.earned_at.isoformat()
            displayed.append(item)

        result = await self.db.execute(
            select(
                func.count(UserAnswer.id),
                func.coalesce(func.sum(case((UserAnswer.is_correct.is_(True), 1), else_=0)), 0),
            ).where(UserAnswer.user_id == user_id)
        )
        total_answers, correct_answers = result.one()
        result = await self.db.execute(
            select(func.count(UserAchievement.id)).where(UserAchievement.user_id == user_id)
        )
        total_achievements = result.scalar() or 0
        result = await self.db.execute(
            select(func.count(UserBelt.id)).where(UserBelt.user_id == user_id)
        )
        total_belts = result.scalar() or 0

        return {
            "user": {
                "id": user.id,
                "username": user.username,
                "display_name": user.display_name,
                "total_xp": user.total_xp,
                "level": user.level,
                "current_streak": user.current_streak,
                "longest_streak": user.longest_streak,
                "created_at": user.created_at.isoformat(),
            },
            "equipped_achievements": equipped,
            "displayed_belts": displayed,
            "stats": {
                "total_answers": total_answers,
                "accuracy": correct_answers / total_answers * 100 if total_answers else 0.0,
                "total_belts": total_belts,
                "total_achievements": total_achievements,
            },
        }
