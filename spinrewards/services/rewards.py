"""
Spin reward variants and the weighted draw.

A catalog row is read once into an immutable RewardDefinition, then turned
into one of four variants. Each variant knows how to pay itself out:

- PointsReward: credits points through the ledger (nothing when value is 0)
- PercentageDiscountReward / FixedDiscountReward / FreeShippingReward: mint
  a discount code
"""
import random
from dataclasses import dataclass
from typing import Optional, Sequence, Dict, Any

from ..models import RewardType, TransactionType, Transaction
from ..utils.exceptions import ValidationError
from .discount_codes import mint_discount_code

SPIN_CODE_PREFIX = 'SPIN'


@dataclass(frozen=True)
class RewardDefinition:
    """Read-only copy of one active catalog entry."""
    reward_id: str
    reward_type: str
    value: float
    label: str
    probability: float
    color: str = '#3b82f6'
    position: int = 0

    @classmethod
    def from_model(cls, reward) -> 'RewardDefinition':
        return cls(
            reward_id=reward.reward_id,
            reward_type=reward.reward_type,
            value=reward.value,
            label=reward.label,
            probability=reward.probability,
            color=reward.color,
            position=reward.position,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.reward_id,
            'type': self.reward_type,
            'value': self.value,
            'label': self.label,
            'color': self.color,
        }


@dataclass
class RewardOutcome:
    """What a resolved spin actually handed out."""
    points_awarded: int = 0
    transaction: Optional[Transaction] = None
    discount_code: Optional[str] = None
    discount_type: Optional[str] = None
    discount_value: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {'points_awarded': self.points_awarded}
        if self.transaction is not None:
            data['new_balance'] = self.transaction.balance_after
            data['transaction_id'] = self.transaction.id
        if self.discount_code:
            data['discount_code'] = self.discount_code
            data['discount_type'] = self.discount_type
            data['discount_value'] = self.discount_value
        return data


@dataclass(frozen=True)
class SpinContext:
    """Who is being paid and through which ledger. Built by SpinService."""
    ledger: Any
    customer: Any
    spin_id: Optional[int] = None


@dataclass(frozen=True)
class PointsReward:
    definition: RewardDefinition

    def resolve(self, ctx: SpinContext) -> RewardOutcome:
        points = int(self.definition.value)
        if points <= 0:
            return RewardOutcome()

        transaction = ctx.ledger.apply_ledger_operation(
            ctx.customer,
            points,
            TransactionType.SPIN_REWARD,
            f'Spin wheel reward: {self.definition.label}',
            {
                'spin_id': ctx.spin_id,
                'reward_id': self.definition.reward_id,
                'reward_label': self.definition.label,
            },
            spin_reward_type=RewardType.POINTS.value,
            commit=False,
        )
        return RewardOutcome(points_awarded=points, transaction=transaction)


@dataclass(frozen=True)
class _DiscountReward:
    definition: RewardDefinition

    discount_type = None

    def resolve(self, ctx: SpinContext) -> RewardOutcome:
        if self.definition.value <= 0:
            return RewardOutcome()

        return RewardOutcome(
            discount_code=mint_discount_code(SPIN_CODE_PREFIX),
            discount_type=self.discount_type,
            discount_value=self.definition.value,
        )


@dataclass(frozen=True)
class PercentageDiscountReward(_DiscountReward):
    discount_type = 'percentage'


@dataclass(frozen=True)
class FixedDiscountReward(_DiscountReward):
    discount_type = 'fixed_amount'


@dataclass(frozen=True)
class FreeShippingReward(_DiscountReward):
    discount_type = 'free_shipping'


REWARD_VARIANTS = {
    RewardType.POINTS.value: PointsReward,
    RewardType.DISCOUNT_PERCENTAGE.value: PercentageDiscountReward,
    RewardType.DISCOUNT_FIXED.value: FixedDiscountReward,
    RewardType.FREE_SHIPPING.value: FreeShippingReward,
}


def build_reward(definition: RewardDefinition):
    """Map a definition onto its variant."""
    variant = REWARD_VARIANTS.get(definition.reward_type)
    if variant is None:
        raise ValidationError(f'Unknown reward type: {definition.reward_type}', 'type')
    return variant(definition)


def select_reward(
    rewards: Sequence[RewardDefinition],
    rng: random.Random = None
) -> Optional[RewardDefinition]:
    """
    Weighted draw over rewards in catalog order.

    One uniform draw r in [0, total); the first reward whose cumulative
    weight exceeds r wins. Zero-weight rewards can never win. Returns None
    when the total weight is 0.
    """
    total = sum(max(r.probability, 0) for r in rewards)
    if total <= 0:
        return None

    rng = rng or random.SystemRandom()
    draw = rng.random() * total

    cumulative = 0.0
    for reward in rewards:
        weight = max(reward.probability, 0)
        if weight <= 0:
            continue
        cumulative += weight
        if draw < cumulative:
            return reward

    # Float rounding can leave draw == total; fall back to the last weighted reward
    return [r for r in rewards if r.probability > 0][-1]
