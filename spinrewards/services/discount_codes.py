"""
Discount code minting for redemptions and spin wins.

Format: PREFIX + millisecond timestamp + 4 random uppercase alphanumerics,
e.g. LOYALTY1718200000000X7QK. Time + random keeps collisions unlikely but
not impossible, so mint_discount_code() checks stored codes and regenerates.
"""
import secrets
import string
import time

from flask import current_app

from ..models import Transaction, SpinHistory
from ..utils.exceptions import InternalError

SUFFIX_ALPHABET = string.ascii_uppercase + string.digits
SUFFIX_LENGTH = 4


def generate_discount_code(prefix: str = 'LOYALTY') -> str:
    suffix = ''.join(secrets.choice(SUFFIX_ALPHABET) for _ in range(SUFFIX_LENGTH))
    return f'{prefix}{int(time.time() * 1000)}{suffix}'


def discount_code_exists(code: str) -> bool:
    if Transaction.query.filter_by(discount_code=code).first():
        return True
    return SpinHistory.query.filter_by(discount_code=code).first() is not None


def mint_discount_code(prefix: str = None) -> str:
    """
    Generate a code not already stored in the ledger or spin history.

    Raises:
        InternalError: if every attempt collided
    """
    prefix = prefix or current_app.config.get('DISCOUNT_CODE_PREFIX', 'LOYALTY')
    attempts = current_app.config.get('DISCOUNT_CODE_MAX_ATTEMPTS', 5)

    for _ in range(attempts):
        code = generate_discount_code(prefix)
        if not discount_code_exists(code):
            return code
        current_app.logger.warning(f'Discount code collision on {code}, regenerating')

    raise InternalError(f'Could not mint a unique discount code after {attempts} attempts')
