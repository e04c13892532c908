"""
Database models for the Syndicate Manager application.

This module defines SQLAlchemy models representing the data structure
of the application. Each model maps to a database table. Enumerated
fields are ``IntEnum`` values stored in integer columns.
"""

from __future__ import annotations

import math
from datetime import datetime, timezone
from enum import IntEnum
from typing import Any

from . import db
from .labels import to_label


def utc_now() -> datetime:
    """Return the current UTC time as a naive datetime, the way SQLite stores it."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _to_utc_iso(value: datetime | None) -> str | None:
    """
    Convert datetime to an ISO-8601 UTC string.

    SQLite returns naive datetime values; they are always UTC here.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    else:
        value = value.astimezone(timezone.utc)
    return value.isoformat()


def _label(enum_cls: type[IntEnum], value: int | None) -> str | None:
    if value is None:
        return None
    try:
        return to_label(enum_cls(value))
    except ValueError:
        return None


# -----------------------------------------------------------------------------
# Enumerations
# -----------------------------------------------------------------------------

class CampaignDifficulty(IntEnum):
    """Difficulty a campaign is run at."""

    EASY = 0
    NORMAL = 1
    HARD = 2
    EXTREME = 3


class CampaignStatus(IntEnum):
    """Lifecycle status of a campaign."""

    UNKNOWN = 0
    PLANNED = 1
    IN_PROGRESS = 2
    COMPLETED = 3
    FAILED = 4
    ABANDONED = 5
    SKIPPED = 6
    CANCELLED = 7


FUTURE_CAMPAIGN_STATUSES = (CampaignStatus.UNKNOWN, CampaignStatus.PLANNED)
CURRENT_CAMPAIGN_STATUSES = (CampaignStatus.IN_PROGRESS,)
PAST_CAMPAIGN_STATUSES = tuple(
    status for status in CampaignStatus
    if status not in FUTURE_CAMPAIGN_STATUSES + CURRENT_CAMPAIGN_STATUSES
)


class CampaignLootStatus(IntEnum):
    """Where a piece of campaign loot currently is."""

    UNDISTRIBUTED = 0
    HELD_BY_PLAYER = 1
    HELD_BY_SYNDICATE = 2
    ON_LOAN = 3
    SOLD = 4


class LootRequestStatus(IntEnum):
    """State of a player's claim on a piece of loot."""

    INTERESTED = 0
    SPECIAL_OFFER = 1
    AWARDED = 2
    DECLINED = 3


class ItemType(IntEnum):
    WEAPON = 0
    ARMOR = 1
    MEDICAL = 2
    FOOD = 3
    JUNK = 4
    OTHER = 5


class ItemRarity(IntEnum):
    TRASH = 0
    COMMON = 1
    UNCOMMON = 2
    RARE = 3
    EPIC = 4
    LEGENDARY = 5


class ItemWeaponType(IntEnum):
    BLADE = 0
    HANDGUN = 1
    RIFLE = 2
    HYBRID = 3


class ItemWeaponRange(IntEnum):
    SHORT = 0
    MID = 1
    LONG = 2


# -----------------------------------------------------------------------------
# Roster
# -----------------------------------------------------------------------------

class Syndicate(db.Model):
    """
    Syndicate (guild) model; the owner of players and campaigns.

    Attributes:
        id: Unique identifier for the syndicate.
        tag: Short in-game tag, e.g. ``TAU``.
        name: Optional full name.
    """

    __tablename__ = "syndicates"

    id: int = db.Column(db.Integer, primary_key=True)
    tag: str = db.Column(db.String(10), nullable=False)
    name: str | None = db.Column(db.String(100), nullable=True)

    players = db.relationship("Player", back_populates="syndicate")
    campaigns = db.relationship("Campaign", back_populates="syndicate")

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "tag": self.tag, "name": self.name}

    def __repr__(self) -> str:
        return f"<Syndicate {self.id}: {self.tag}>"


class Player(db.Model):
    """
    Player model representing a syndicate member.

    Attributes:
        id: Unique identifier for the player.
        name: In-game character name.
        active: Whether the player still takes part in syndicate activity.
        level: Character level; fractional values carry XP progress.
        syndicate_id: Owning syndicate, if any.
        discord_login: Discord login name used for notifications.
    """

    __tablename__ = "players"

    id: int = db.Column(db.Integer, primary_key=True)
    name: str = db.Column(db.String(100), nullable=False)
    active: bool = db.Column(db.Boolean, nullable=False, default=True)
    level: float = db.Column(db.Float, nullable=False, default=0)
    syndicate_id: int | None = db.Column(db.Integer, db.ForeignKey("syndicates.id"), nullable=True)
    discord_login: str | None = db.Column(db.String(100), nullable=True)

    syndicate = db.relationship("Syndicate", back_populates="players")
    position_history = db.relationship(
        "PlayerListPositionHistory",
        back_populates="player",
        order_by="PlayerListPositionHistory.id",
    )

    @property
    def tier(self) -> int:
        """Item tier the player can use; every five levels unlock a tier."""
        level = math.floor(self.level or 0)
        return max(1, (level - 1) // 5 + 1)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "active": self.active,
            "level": self.level,
            "tier": self.tier,
            "syndicate_id": self.syndicate_id,
            "discord_login": self.discord_login,
        }

    def __repr__(self) -> str:
        return f"<Player {self.id}: {self.name}>"


# -----------------------------------------------------------------------------
# Campaigns
# -----------------------------------------------------------------------------

class Campaign(db.Model):
    """
    Campaign model representing a scheduled raid.

    Attributes:
        id: Unique identifier for the campaign.
        name: Display name.
        station: Station the campaign takes place on.
        comments: Free-form notes.
        difficulty: ``CampaignDifficulty`` value.
        tiers: Bit mask of the tiers included (bit 0 is tier 1; 31 = all five).
        status: ``CampaignStatus`` value.
        utc_datetime: Scheduled start, naive UTC.
        syndicate_id: Owning syndicate.
        manager_id: Player managing the campaign, if any.
    """

    __tablename__ = "campaigns"

    id: int = db.Column(db.Integer, primary_key=True)
    name: str | None = db.Column(db.String(200), nullable=True)
    station: str | None = db.Column(db.String(200), nullable=True)
    comments: str | None = db.Column(db.Text, nullable=True)
    difficulty: int = db.Column(db.Integer, nullable=False, default=CampaignDifficulty.EASY)
    tiers: int = db.Column(db.Integer, nullable=False, default=0)
    status: int = db.Column(db.Integer, nullable=False, default=CampaignStatus.UNKNOWN)
    utc_datetime: datetime | None = db.Column(db.DateTime, nullable=True)
    syndicate_id: int | None = db.Column(db.Integer, db.ForeignKey("syndicates.id"), nullable=True)
    manager_id: int | None = db.Column(db.Integer, db.ForeignKey("players.id"), nullable=True)

    syndicate = db.relationship("Syndicate", back_populates="campaigns")
    manager = db.relationship("Player")
    loot = db.relationship("CampaignLoot", back_populates="campaign", order_by="CampaignLoot.id")
    signups = db.relationship("CampaignSignup", back_populates="campaign")
    attendance = db.relationship("CampaignAttendance", back_populates="campaign")

    @property
    def tier_list(self) -> list[int]:
        """Expand the ``tiers`` bit mask into a sorted list of tier numbers."""
        mask = self.tiers or 0
        return [bit + 1 for bit in range(mask.bit_length()) if mask & (1 << bit)]

    @property
    def is_hard_t5(self) -> bool:
        """True for Hard or Extreme campaigns that include tier 5."""
        return 5 in self.tier_list and self.difficulty in (
            CampaignDifficulty.HARD, CampaignDifficulty.EXTREME
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "station": self.station,
            "comments": self.comments,
            "difficulty": self.difficulty,
            "difficulty_label": _label(CampaignDifficulty, self.difficulty),
            "tiers": self.tier_list,
            "status": self.status,
            "status_label": _label(CampaignStatus, self.status),
            "utc_datetime": _to_utc_iso(self.utc_datetime),
            "syndicate_id": self.syndicate_id,
            "manager_id": self.manager_id,
        }

    def __repr__(self) -> str:
        return f"<Campaign {self.id}: {self.name}>"


class CampaignSignup(db.Model):
    """A player's announced intention to join a campaign."""

    __tablename__ = "campaign_signups"

    id: int = db.Column(db.Integer, primary_key=True)
    campaign_id: int = db.Column(db.Integer, db.ForeignKey("campaigns.id"), nullable=False)
    player_id: int = db.Column(db.Integer, db.ForeignKey("players.id"), nullable=False)
    attending: bool = db.Column(db.Boolean, nullable=False, default=True)

    campaign = db.relationship("Campaign", back_populates="signups")
    player = db.relationship("Player")

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "campaign_id": self.campaign_id,
            "player_id": self.player_id,
            "attending": self.attending,
        }


class CampaignAttendance(db.Model):
    """A player's recorded presence at a campaign."""

    __tablename__ = "campaign_attendance"

    id: int = db.Column(db.Integer, primary_key=True)
    campaign_id: int = db.Column(db.Integer, db.ForeignKey("campaigns.id"), nullable=False)
    player_id: int = db.Column(db.Integer, db.ForeignKey("players.id"), nullable=False)

    campaign = db.relationship("Campaign", back_populates="attendance")
    player = db.relationship("Player")

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "campaign_id": self.campaign_id, "player_id": self.player_id}


# -----------------------------------------------------------------------------
# Items and loot
# -----------------------------------------------------------------------------

class Item(db.Model):
    """
    Item model mirroring the external item database.

    Attributes:
        id: Unique identifier for the item.
        slug: Identifier of the item in the external item database.
        name: Display name.
        tier: Item tier (1-based).
        type: ``ItemType`` value.
        rarity: ``ItemRarity`` value.
        weapon_type: ``ItemWeaponType`` value for weapons.
        weapon_range: ``ItemWeaponRange`` value for weapons.
        image_url: Optional picture of the item.
    """

    __tablename__ = "items"

    id: int = db.Column(db.Integer, primary_key=True)
    slug: str | None = db.Column(db.String(200), nullable=True, unique=True)
    name: str = db.Column(db.String(200), nullable=False)
    tier: int = db.Column(db.Integer, nullable=False, default=1)
    type: int = db.Column(db.Integer, nullable=False, default=ItemType.OTHER)
    rarity: int = db.Column(db.Integer, nullable=False, default=ItemRarity.COMMON)
    weapon_type: int | None = db.Column(db.Integer, nullable=True)
    weapon_range: int | None = db.Column(db.Integer, nullable=True)
    image_url: str | None = db.Column(db.String(500), nullable=True)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "slug": self.slug,
            "name": self.name,
            "tier": self.tier,
            "type": _label(ItemType, self.type),
            "rarity": _label(ItemRarity, self.rarity),
            "weapon_type": _label(ItemWeaponType, self.weapon_type),
            "weapon_range": _label(ItemWeaponRange, self.weapon_range),
            "image_url": self.image_url,
        }

    def __repr__(self) -> str:
        return f"<Item {self.id}: {self.name}>"


class CampaignLoot(db.Model):
    """
    A single item dropped in a campaign and awaiting or past distribution.

    Attributes:
        id: Unique identifier for the loot entry.
        campaign_id: Campaign the item dropped in.
        item_id: The dropped item.
        status: ``CampaignLootStatus`` value.
        holder_id: Player currently holding the item, if any.
        comments: Free-form notes.
    """

    __tablename__ = "campaign_loot"

    id: int = db.Column(db.Integer, primary_key=True)
    campaign_id: int = db.Column(db.Integer, db.ForeignKey("campaigns.id"), nullable=False)
    item_id: int = db.Column(db.Integer, db.ForeignKey("items.id"), nullable=False)
    status: int = db.Column(db.Integer, nullable=False, default=CampaignLootStatus.UNDISTRIBUTED)
    holder_id: int | None = db.Column(db.Integer, db.ForeignKey("players.id"), nullable=True)
    comments: str | None = db.Column(db.Text, nullable=True)

    campaign = db.relationship("Campaign", back_populates="loot")
    item = db.relationship("Item")
    holder = db.relationship("Player")
    requests = db.relationship("LootRequest", back_populates="loot", order_by="LootRequest.id")

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "campaign_id": self.campaign_id,
            "item": self.item.to_dict() if self.item else None,
            "status": self.status,
            "status_label": _label(CampaignLootStatus, self.status),
            "holder_id": self.holder_id,
            "comments": self.comments,
        }

    def __repr__(self) -> str:
        return f"<CampaignLoot {self.id}: item {self.item_id}>"


class LootRequest(db.Model):
    """
    A player's claim on a piece of loot.

    Attributes:
        id: Unique identifier for the request.
        loot_id: Loot being requested.
        requested_by_id: Player who filed the request.
        requested_for_id: Player who would receive the loot.
        status: ``LootRequestStatus`` value.
        special_offer_description: Terms offered with a special-offer request.
        created_at: Timestamp when the request was filed.
    """

    __tablename__ = "loot_requests"

    id: int = db.Column(db.Integer, primary_key=True)
    loot_id: int = db.Column(db.Integer, db.ForeignKey("campaign_loot.id"), nullable=False)
    requested_by_id: int = db.Column(db.Integer, db.ForeignKey("players.id"), nullable=False)
    requested_for_id: int = db.Column(db.Integer, db.ForeignKey("players.id"), nullable=False)
    status: int = db.Column(db.Integer, nullable=False, default=LootRequestStatus.INTERESTED)
    special_offer_description: str | None = db.Column(db.Text, nullable=True)
    created_at: datetime = db.Column(db.DateTime, nullable=False, default=utc_now)

    loot = db.relationship("CampaignLoot", back_populates="requests")
    requested_by = db.relationship("Player", foreign_keys=[requested_by_id])
    requested_for = db.relationship("Player", foreign_keys=[requested_for_id])

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "loot_id": self.loot_id,
            "requested_by_id": self.requested_by_id,
            "requested_for_id": self.requested_for_id,
            "status": self.status,
            "status_label": _label(LootRequestStatus, self.status),
            "special_offer_description": self.special_offer_description,
            "created_at": _to_utc_iso(self.created_at),
        }

    def __repr__(self) -> str:
        return f"<LootRequest {self.id}: loot {self.loot_id} for {self.requested_for_id}>"


class PlayerListPositionHistory(db.Model):
    """
    One move of a player to the bottom of the loot distribution list.

    The latest entry per player decides the player's place in the list:
    the lower its id, the closer the player is to the top.
    """

    __tablename__ = "player_list_position_history"

    id: int = db.Column(db.Integer, primary_key=True)
    player_id: int = db.Column(db.Integer, db.ForeignKey("players.id"), nullable=False)
    loot_request_id: int | None = db.Column(
        db.Integer, db.ForeignKey("loot_requests.id"), nullable=True
    )
    comment: str | None = db.Column(db.Text, nullable=True)
    created_at: datetime = db.Column(db.DateTime, nullable=False, default=utc_now)

    player = db.relationship("Player", back_populates="position_history")
    loot_request = db.relationship("LootRequest")

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "player_id": self.player_id,
            "loot_request_id": self.loot_request_id,
            "comment": self.comment,
            "created_at": _to_utc_iso(self.created_at),
        }


# -----------------------------------------------------------------------------
# Discord integration
# -----------------------------------------------------------------------------

class DiscordOfficer(db.Model):
    """Discord login allowed to run officer commands against the bot."""

    __tablename__ = "discord_officers"

    id: int = db.Column(db.Integer, primary_key=True)
    login_name: str = db.Column(db.String(100), nullable=False, unique=True)

    def __repr__(self) -> str:
        return f"<DiscordOfficer {self.id}: {self.login_name}>"
