"""Booster products and what each one grants."""

from dataclasses import dataclass

from trivia_economy.exceptions import BoosterStateError


@dataclass(frozen=True)
class SpeedGrant:
    count: int
    duration_minutes: int
    multiplier: int


@dataclass(frozen=True)
class Booster:
    code: str
    price_gold: int = 0
    price_usd_cents: int = 0
    reward_gold: int = 0
    reward_lives: int = 0
    # tokens created right after purchase
    speed_tokens: SpeedGrant | None = None
    # tokens created only when the user activates the pending booster
    deferred_speed_tokens: SpeedGrant | None = None

    @property
    def paid_with_gold(self) -> bool:
        return self.price_gold > 0

    @property
    def token_source(self) -> str:
        return f"{self.code}_BOOSTER" if self.code != "SPEED_BOOST" else "SPEED_BOOST"


FREE = Booster(
    code="FREE",
    price_gold=900,
    reward_gold=300,
    reward_lives=15,
    speed_tokens=SpeedGrant(count=4, duration_minutes=30, multiplier=2),
)

PREMIUM = Booster(
    code="PREMIUM",
    price_usd_cents=249,
    reward_gold=1500,
    reward_lives=50,
    deferred_speed_tokens=SpeedGrant(count=4, duration_minutes=60, multiplier=4),
)

GOLD_SAVER = Booster(
    code="GOLD_SAVER",
    price_gold=500,
    reward_gold=250,
    reward_lives=15,
)

SPEED_BOOST = Booster(
    code="SPEED_BOOST",
    price_usd_cents=99,
    speed_tokens=SpeedGrant(count=1, duration_minutes=60, multiplier=12),
)

CATALOG = {booster.code: booster for booster in (FREE, GOLD_SAVER, PREMIUM, SPEED_BOOST)}


def get_booster(code: str) -> Booster:
    try:
        return CATALOG[code]
    except KeyError:
        raise BoosterStateError("UNKNOWN_BOOSTER", f"unknown booster code: {code}") from None
