import argparse
import logging
from typing import Optional

from database import session_scope
from services import CategoryService

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def seed_categories_for_users(user_ids: list[int]) -> dict[int, int]:
    created: dict[int, int] = {}
    for user_id in user_ids:
        with session_scope() as session:
            count = CategoryService(session, user_id).seed_defaults()
        if count:
            logger.info("Created %s default categories for user %s", count, user_id)
        else:
            logger.info("User %s already has default categories.", user_id)
        created[user_id] = count
    return created


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Seed default categories")
    parser.add_argument("user_ids", nargs="+", type=int)
    args = parser.parse_args(argv)
    seed_categories_for_users(args.user_ids)


if __name__ == "__main__":
    main()
