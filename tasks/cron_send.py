"""
Run one dispatch pass from a terminal or cron
$ python -m tasks.cron_send
"""
import logging
import sys

from app import create_app
from services.dispatcher import get_dispatcher

logger = logging.getLogger(__name__)


def main(app=None) -> int:
    app = app or create_app()
    with app.app_context():
        result = get_dispatcher(app).dispatch()

    if not result.success:
        logger.error("dispatch failed: %s", result.error)
        print(f"Dispatch failed: {result.error}")
        return 1

    for err in result.errors:
        logger.warning("send error: %s", err.to_dict())
    print(f"Due {result.count}, sent {result.sent_count}, "
          f"skipped {result.skipped_count}, errors {len(result.errors)}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
