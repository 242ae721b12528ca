"""Price-bracket cooldown rules for giveaway entry."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Callable, Optional

from .models import Giveaway, WinRecord
from .storage import GiveawayStore
from .timeutils import days_since, utcnow


class CooldownPolicy:
    """Blocks recent winners from entering giveaways in the same price bracket."""

    def __init__(
        self,
        store: GiveawayStore,
        cooldown_days: int,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.cooldown_days = max(cooldown_days, 0)
        self._clock = clock

    async def get_comparable_winning(self, user_id: int, price: str) -> Optional[WinRecord]:
        """Return the win that makes the user ineligible for ``price``, if any."""
        if self.cooldown_days == 0:
            return None
        now = self._clock()
        win = await self.store.get_comparable_winning(
            user_id, price, since=now - timedelta(days=self.cooldown_days)
        )
        if win is None or now - win.ended >= timedelta(days=self.cooldown_days):
            return None
        return win

    def rejection_message(
        self, giveaway: Giveaway, win: WinRecord, now: Optional[datetime] = None
    ) -> str:
        days_ago = days_since(win.ended, now or self._clock())
        days_left = max(self.cooldown_days - days_ago, 0)
        return (
            f"Sorry, but you can't enter a giveaway for {giveaway.game_name} because "
            f"you won {win.game_name} {days_ago} days ago. These games are in the same "
            f"price range. You will have to wait {days_left} more days to enter this "
            "price range again, but you can still enter giveaways in other price ranges."
        )
