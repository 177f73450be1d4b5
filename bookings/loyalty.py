"""
Loyalty ledger.

Points are earned once per paid booking and spent 100 at a time on a 20%
discount. Every balance change is a single atomic database call, so a
discount spend racing a cancellation refund cannot lose an update.
"""

import logging
import math

from config import Settings
from utils.constants import DISCOUNT_POINTS_COST
from utils.exceptions import InsufficientLoyaltyPointsError, UserNotFoundError

logger = logging.getLogger(__name__)


class RewardPolicy:
    """
    Points granted when a booking is paid.

    ``minimum`` plus one point per ``step_amount`` rupees of the final
    amount, capped at ``maximum``.
    """

    def __init__(self, minimum: int = 10, maximum: int = 20, step_amount: float = 200.0):
        if minimum < 0 or maximum < minimum:
            raise ValueError("Reward range must satisfy 0 <= minimum <= maximum")
        if step_amount <= 0:
            raise ValueError("step_amount must be positive")
        self.minimum = minimum
        self.maximum = maximum
        self.step_amount = step_amount

    @classmethod
    def from_settings(cls, settings: Settings) -> "RewardPolicy":
        return cls(
            minimum=settings.loyalty_reward_min,
            maximum=settings.loyalty_reward_max,
            step_amount=settings.loyalty_reward_step_amount,
        )

    def points_for(self, final_amount: float) -> int:
        bonus = math.floor(max(final_amount, 0) / self.step_amount)
        return min(self.maximum, self.minimum + bonus)


class LoyaltyLedger:
    """Awards, reverses, spends and refunds a user's loyalty points."""

    def __init__(self, db, reward_policy: RewardPolicy):
        self.db = db
        self.reward_policy = reward_policy

    def reward_for(self, final_amount: float) -> int:
        return self.reward_policy.points_for(final_amount)

    async def award(self, user_id: str, points: int) -> int:
        """
        Credit points earned by a payment.

        Returns:
            The number of points granted
        """
        if points <= 0:
            return 0
        balance = await self.db.adjust_loyalty_points(user_id, points)
        if balance is None:
            raise UserNotFoundError("User not found.")
        logger.info(f"Awarded {points} loyalty points to user {user_id} (balance {balance})")
        return points

    async def reverse(self, user_id: str, points: int, refund: int = 0) -> int:
        """
        Take back points earned by a cancelled booking, never below zero.

        ``refund`` discount points are credited in the same adjustment and the
        net change is floored once, so a refund still lands in full on a
        balance that could not cover the reversal.

        Returns:
            The new balance
        """
        delta = refund - points
        if delta == 0:
            return await self._balance(user_id)
        balance = await self.db.adjust_loyalty_points(user_id, delta, floor_at_zero=True)
        if balance is None:
            raise UserNotFoundError("User not found.")
        logger.info(
            f"Cancellation for user {user_id}: reversed {points}, "
            f"refunded {refund} loyalty points (balance {balance})"
        )
        return balance

    async def spend(self, user_id: str, points: int = DISCOUNT_POINTS_COST) -> int:
        """
        Debit points for a discount.

        Raises:
            InsufficientLoyaltyPointsError: If the balance is below ``points``

        Returns:
            The new balance
        """
        balance = await self.db.adjust_loyalty_points(
            user_id, -points, minimum_balance=points
        )
        if balance is None:
            if await self.db.get_user_by_id(user_id) is None:
                raise UserNotFoundError("User not found.")
            raise InsufficientLoyaltyPointsError(
                f"Not enough loyalty points. You need at least {points}."
            )
        logger.info(f"Spent {points} loyalty points for user {user_id} (balance {balance})")
        return balance

    async def refund(self, user_id: str, points: int = DISCOUNT_POINTS_COST) -> int:
        """Give back points spent on a discount. Returns the new balance."""
        balance = await self.db.adjust_loyalty_points(user_id, points)
        if balance is None:
            raise UserNotFoundError("User not found.")
        logger.info(f"Refunded {points} loyalty points to user {user_id} (balance {balance})")
        return balance

    async def _balance(self, user_id: str) -> int:
        user = await self.db.get_user_by_id(user_id)
        if user is None:
            raise UserNotFoundError("User not found.")
        return user.loyalty_points
