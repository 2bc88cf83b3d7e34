"""
Spin Rewards entry point.
"""
import os
import sys
import logging

from spinrewards import create_app

logger = logging.getLogger('spinrewards.run')

config_name = os.getenv('FLASK_ENV', 'production')

try:
    app = create_app(config_name)
    logger.info(f'Routes: {len(list(app.url_map.iter_rules()))}')
except Exception:
    logger.exception(f'Fatal error creating app ({config_name})')
    sys.exit(1)

if __name__ == '__main__':
    app.run(
        host='0.0.0.0',
        port=int(os.getenv('PORT', 5000)),
        debug=os.getenv('FLASK_ENV') == 'development'
    )
