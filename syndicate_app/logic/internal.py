"""
Internal maintenance logic: keeping the local item table in step with the
external item database.
"""

from __future__ import annotations

import logging

from sqlalchemy import select

from ..models import Item
from .campaign import ITEM_FIELDS

logger = logging.getLogger(__name__)


class InternalLogic:
    """
    Item import operations bound to one database session.

    Args:
        session: SQLAlchemy session.
        item_client: Item database client offering ``bulk_parse_items``.
    """

    def __init__(self, session, item_client):
        self.session = session
        self.item_client = item_client

    def import_items(self, set_name: str) -> int:
        """
        Import a named item set from the item database.

        Items the database could not resolve are skipped. Items already
        stored under the same slug are updated in place; new slugs are
        inserted.

        Returns:
            Number of items inserted or updated.
        """
        parsed = self.item_client.bulk_parse_items(set_name)
        stored = 0
        for slug, item_data in parsed.items():
            if not item_data:
                logger.warning("Skipping unresolved item %s", slug)
                continue

            slug = item_data.get("slug") or slug
            values = {name: item_data[name] for name in ITEM_FIELDS if name in item_data}
            values["slug"] = slug

            item = self.session.scalars(select(Item).where(Item.slug == slug)).first()
            if item is None:
                self.session.add(Item(**values))
            else:
                for name, value in values.items():
                    setattr(item, name, value)
            stored += 1

        self.session.commit()
        logger.info("Imported %d items from set '%s'", stored, set_name)
        return stored
