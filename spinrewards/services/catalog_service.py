"""
Spin wheel catalog management.

Owns SpinWheel/SpinReward rows for a shop: default seeding, validated
add/update/remove of rewards, wheel settings and the read-only snapshot
the spin resolver draws from.
"""
import time
from typing import Dict, Any, Optional, Tuple

from flask import current_app

from ..extensions import db, unit_of_work
from ..models import SpinWheel, SpinReward, RewardType, DEFAULT_SPIN_REWARDS
from ..models.spin import DEFAULT_REWARD_COLOR
from ..utils.exceptions import ValidationError, RewardNotFoundError
from .rewards import RewardDefinition

REWARD_TYPES = {t.value for t in RewardType}


def _to_number(value, field: str) -> float:
    if isinstance(value, bool):
        raise ValidationError(f'{field} must be a number', field)
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{field} must be a number', field)


def _to_bool(value, field: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.lower() in ('true', 'false'):
        return value.lower() == 'true'
    raise ValidationError(f'{field} must be true or false', field)


def validate_reward_fields(fields: Dict[str, Any], partial: bool = False) -> Dict[str, Any]:
    """
    Check and normalize reward fields.

    Args:
        fields: Raw input (type, value, label, probability, color, is_active)
        partial: Only validate the keys present (updates)

    Returns:
        Dict of column name -> cleaned value
    """
    cleaned = {}

    if 'type' in fields or not partial:
        reward_type = fields.get('type')
        if reward_type not in REWARD_TYPES:
            raise ValidationError(
                f"type must be one of: {', '.join(sorted(REWARD_TYPES))}", 'type'
            )
        cleaned['reward_type'] = reward_type

    if 'value' in fields or not partial:
        if fields.get('value') is None:
            raise ValidationError('value is required', 'value')
        value = _to_number(fields['value'], 'value')
        if value < 0:
            raise ValidationError('value must be zero or greater', 'value')
        cleaned['value'] = value

    if 'label' in fields or not partial:
        label = fields.get('label')
        if not isinstance(label, str) or not label.strip():
            raise ValidationError('label is required', 'label')
        cleaned['label'] = label.strip()

    if 'probability' in fields or not partial:
        if fields.get('probability') is None:
            raise ValidationError('probability is required', 'probability')
        probability = _to_number(fields['probability'], 'probability')
        if probability < 0 or probability > 100:
            raise ValidationError('probability must be between 0 and 100', 'probability')
        cleaned['probability'] = probability

    if fields.get('color'):
        cleaned['color'] = str(fields['color'])

    if 'is_active' in fields:
        cleaned['is_active'] = _to_bool(fields['is_active'], 'is_active')

    return cleaned


def probability_warning(rewards) -> Optional[str]:
    """Warn when active probabilities do not add up to 100. Never blocks."""
    total = sum(r.probability for r in rewards if getattr(r, 'is_active', True))
    if abs(total - 100) > 1e-6:
        return f'Active reward probabilities sum to {total:g}, not 100'
    return None


class CatalogService:
    """
    Spin wheel catalog for one shop.

    Usage:
        catalog = CatalogService('store.myshopify.com')
        wheel = catalog.get_or_create_catalog()
        catalog.add_reward({'type': 'points', 'value': 25, 'label': '25 Points', 'probability': 5})
    """

    def __init__(self, shop_domain: str):
        self.shop_domain = shop_domain

    def get_catalog(self) -> Optional[SpinWheel]:
        return SpinWheel.query.filter_by(shop_domain=self.shop_domain).first()

    def get_or_create_catalog(self) -> SpinWheel:
        """Return the shop's wheel, seeding the default six rewards on first access."""
        wheel = self.get_catalog()
        if wheel:
            return wheel

        with unit_of_work():
            wheel = SpinWheel(
                shop_domain=self.shop_domain,
                minimum_orders_required=0,
                is_active=True,
            )
            for position, reward in enumerate(DEFAULT_SPIN_REWARDS):
                wheel.rewards.append(SpinReward(position=position, is_active=True, **reward))
            db.session.add(wheel)

        current_app.logger.info(f'Seeded default spin wheel for {self.shop_domain}')
        return wheel

    def catalog_dict(self) -> Dict[str, Any]:
        wheel = self.get_or_create_catalog()
        data = wheel.to_dict()
        data['warning'] = probability_warning(wheel.rewards)
        return data

    def _get_reward(self, wheel: SpinWheel, reward_id: str) -> SpinReward:
        reward = SpinReward.query.filter_by(wheel_id=wheel.id, reward_id=reward_id).first()
        if not reward:
            raise RewardNotFoundError(reward_id)
        return reward

    def add_reward(self, fields: Dict[str, Any]) -> Tuple[SpinReward, Optional[str]]:
        """
        Append a reward to the end of the wheel.

        Returns:
            (reward, warning) - warning set when probabilities no longer sum to 100
        """
        cleaned = validate_reward_fields(fields)
        wheel = self.get_or_create_catalog()

        reward_id = fields.get('id') or f"{cleaned['reward_type']}_{int(time.time() * 1000)}"
        if SpinReward.query.filter_by(wheel_id=wheel.id, reward_id=reward_id).first():
            raise ValidationError(f'Reward {reward_id} already exists', 'id')

        position = max((r.position for r in wheel.rewards), default=-1) + 1
        with unit_of_work():
            reward = SpinReward(
                reward_id=reward_id,
                position=position,
                color=cleaned.pop('color', DEFAULT_REWARD_COLOR),
                is_active=cleaned.pop('is_active', True),
                **cleaned
            )
            wheel.rewards.append(reward)

        current_app.logger.info(f'Added spin reward {reward_id} for {self.shop_domain}')
        return reward, probability_warning(wheel.rewards)

    def update_reward(self, reward_id: str, fields: Dict[str, Any]) -> Tuple[SpinReward, Optional[str]]:
        """Partial update; only keys present in fields change."""
        cleaned = validate_reward_fields(fields, partial=True)
        wheel = self.get_or_create_catalog()
        reward = self._get_reward(wheel, reward_id)

        with unit_of_work():
            for key, value in cleaned.items():
                setattr(reward, key, value)

        current_app.logger.info(f'Updated spin reward {reward_id} for {self.shop_domain}')
        return reward, probability_warning(wheel.rewards)

    def remove_reward(self, reward_id: str) -> Optional[str]:
        wheel = self.get_or_create_catalog()
        reward = self._get_reward(wheel, reward_id)

        with unit_of_work():
            wheel.rewards.remove(reward)

        current_app.logger.info(f'Removed spin reward {reward_id} for {self.shop_domain}')
        return probability_warning(wheel.rewards)

    def update_settings(self, fields: Dict[str, Any]) -> SpinWheel:
        wheel = self.get_or_create_catalog()
        updates = {}

        if 'minimum_orders_required' in fields:
            value = fields['minimum_orders_required']
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise ValidationError(
                    'minimum_orders_required must be a whole number, zero or greater',
                    'minimum_orders_required'
                )
            updates['minimum_orders_required'] = value

        if 'is_active' in fields:
            updates['is_active'] = _to_bool(fields['is_active'], 'is_active')

        if not updates:
            raise ValidationError('No settings to update')

        with unit_of_work():
            for key, value in updates.items():
                setattr(wheel, key, value)

        current_app.logger.info(f'Updated spin wheel settings for {self.shop_domain}: {updates}')
        return wheel

    def snapshot(self) -> Tuple[RewardDefinition, ...]:
        """Active rewards in catalog order, read in one query."""
        wheel = self.get_or_create_catalog()
        rows = SpinReward.query.filter_by(
            wheel_id=wheel.id,
            is_active=True
        ).order_by(SpinReward.position.asc(), SpinReward.id.asc()).all()
        return tuple(RewardDefinition.from_model(r) for r in rows)
