"""
API blueprints for Spin Rewards.
"""
from .points import points_bp
from .spin import spin_bp

__all__ = ['points_bp', 'spin_bp']
