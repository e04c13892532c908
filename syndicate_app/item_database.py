"""
Client for the external item metadata database.

The item database publishes one JSON document per item and named sets of
item slugs. The client resolves an item URL or slug to a plain dictionary
of ``Item`` column values, or None when the item cannot be fetched.

Endpoints used:
    GET {base}/api/items/<slug>          - item document
    GET {base}/api/item-sets/<set_name>  - ``{"items": [slug, ...]}``
"""

from __future__ import annotations

import logging
from typing import Any, Mapping
from urllib.parse import quote, urlparse

import requests

from .labels import from_label
from .models import ItemRarity, ItemType, ItemWeaponRange, ItemWeaponType

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0


def slug_from_url(url_or_slug: str) -> str:
    """
    Extract the item slug from an item page URL.

    ``https://www.tauhead.com/item/ruby-blade?tab=1`` gives ``ruby-blade``;
    a bare slug is returned unchanged (stripped).
    """
    value = (url_or_slug or "").strip()
    parsed = urlparse(value)
    path = parsed.path if parsed.scheme or parsed.netloc else value.split("?", 1)[0]
    segments = [segment for segment in path.split("/") if segment]
    return segments[-1] if segments else ""


class ItemDatabaseClient:
    """
    Thin ``requests`` wrapper around the item database API.

    Args:
        base_url: Root URL of the item database.
        timeout: Seconds to wait for each HTTP request.
        session: Optional ``requests.Session`` (injected by tests).
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = DEFAULT_TIMEOUT,
        session: requests.Session | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "ItemDatabaseClient":
        """Build a client from a Flask config mapping."""
        return cls(
            base_url=config.get("ITEM_DATABASE_URL", ""),
            timeout=float(config.get("ITEM_DATABASE_TIMEOUT", DEFAULT_TIMEOUT)),
        )

    def _get_json(self, path: str) -> Any | None:
        url = f"{self.base_url}{path}"
        try:
            response = self.session.get(
                url,
                headers={"Accept": "application/json"},
                timeout=self.timeout,
            )
        except requests.Timeout:
            logger.warning("Item database request timed out: %s", url)
            return None
        except requests.RequestException as exc:
            logger.warning("Item database unavailable (%s): %s", url, exc)
            return None

        if response.status_code == 404:
            logger.info("Item database has no entry at %s", url)
            return None
        if response.status_code != 200:
            logger.warning("Item database returned %s for %s", response.status_code, url)
            return None

        try:
            return response.json()
        except ValueError:
            logger.warning("Item database returned invalid JSON for %s", url)
            return None

    @staticmethod
    def parse_item(payload: Mapping[str, Any], slug: str) -> dict[str, Any] | None:
        """
        Convert an item document into ``Item`` column values.

        Enum fields arrive as labels (``"Weapon"``, ``"Epic"``) and are
        translated to their integer values. Returns None when the document
        has no name.
        """
        name = payload.get("name")
        if not name:
            return None

        try:
            tier = int(payload.get("tier") or 1)
        except (TypeError, ValueError):
            tier = 1

        item_type = from_label(ItemType, payload.get("type"))
        if item_type is None:
            item_type = ItemType.OTHER
        rarity = from_label(ItemRarity, payload.get("rarity"))
        if rarity is None:
            rarity = ItemRarity.COMMON
        weapon_type = from_label(ItemWeaponType, payload.get("weapon_type"))
        weapon_range = from_label(ItemWeaponRange, payload.get("weapon_range"))

        return {
            "slug": payload.get("slug") or slug,
            "name": name,
            "tier": tier,
            "type": item_type,
            "rarity": rarity,
            "weapon_type": weapon_type,
            "weapon_range": weapon_range,
            "image_url": payload.get("image_url"),
        }

    def get_item_data(self, url_or_slug: str) -> dict[str, Any] | None:
        """
        Fetch a single item by page URL or slug.

        Returns:
            Dictionary of ``Item`` column values, or None when the item is
            unknown or the database cannot be reached.
        """
        slug = slug_from_url(url_or_slug)
        if not slug:
            return None

        payload = self._get_json(f"/api/items/{quote(slug)}")
        if not isinstance(payload, dict):
            return None
        return self.parse_item(payload, slug)

    def bulk_parse_items(self, set_name: str) -> dict[str, dict[str, Any] | None]:
        """
        Fetch every item of a named item set.

        Returns:
            ``{slug: item values or None}``; an unknown or unreachable set
            gives an empty dictionary.
        """
        payload = self._get_json(f"/api/item-sets/{quote(set_name)}")
        if not isinstance(payload, dict):
            return {}

        result: dict[str, dict[str, Any] | None] = {}
        for slug in payload.get("items") or []:
            result[slug] = self.get_item_data(slug)
        logger.info("Fetched %d items from set '%s'", len(result), set_name)
        return result
