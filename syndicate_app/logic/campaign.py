"""
Campaign business logic.

Scheduling and bookkeeping for syndicate campaigns: overview and detail
lookups, create/edit with syndicate and manager checks, loot registration
through the item database, campaign report import, signups, attendance
percentages and manager volunteering.

All operations report failure through ``None`` / ``False`` results and a
log line; nothing here raises for a business-rule violation.
"""

from __future__ import annotations

import logging
import re
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping

from sqlalchemy import delete, func, select

from ..labels import enum_to_dict, from_label
from ..models import (
    CURRENT_CAMPAIGN_STATUSES,
    FUTURE_CAMPAIGN_STATUSES,
    PAST_CAMPAIGN_STATUSES,
    Campaign,
    CampaignAttendance,
    CampaignDifficulty,
    CampaignLoot,
    CampaignLootStatus,
    CampaignSignup,
    CampaignStatus,
    Item,
    ItemRarity,
    Player,
    utc_now,
)
from .results import AttendanceSummary, CampaignDetails, CampaignOverview, LootOverviewEntry

logger = logging.getLogger(__name__)

PAST_CAMPAIGN_LIMIT = 10
RECENT_HARD_T5_WINDOW = 10
MAX_TIER = 5

# Skipped and cancelled campaigns never count towards attendance
NON_QUALIFYING_STATUSES = (CampaignStatus.SKIPPED, CampaignStatus.CANCELLED)

ITEM_FIELDS = ("slug", "name", "tier", "type", "rarity", "weapon_type", "weapon_range", "image_url")


# -----------------------------------------------------------------------------
# Field coercion helpers
# -----------------------------------------------------------------------------

def parse_utc_datetime(value: Any) -> datetime | None:
    """
    Parse an ISO-8601 string or datetime into a naive UTC datetime.

    Raises:
        ValueError: If the value is not a recognisable date.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def tiers_to_mask(value: Any) -> int:
    """
    Normalise a tier selection to the stored bit mask.

    Accepts the mask itself (``31``), a list of tier numbers (``[4, 5]``) or
    a comma separated string (``"4, 5"``).

    Raises:
        ValueError: On tiers outside 1-5 or unparseable input.
    """
    if value is None or value == "":
        return 0
    if isinstance(value, bool):
        raise ValueError("tiers must be a number or a list of tiers")
    if isinstance(value, int):
        if value < 0 or value >= 1 << MAX_TIER:
            raise ValueError(f"tier mask out of range: {value}")
        return value
    if isinstance(value, str):
        value = [part for part in re.split(r"[,\s]+", value) if part]
    mask = 0
    for tier in value:
        tier = int(tier)
        if not 1 <= tier <= MAX_TIER:
            raise ValueError(f"tier out of range: {tier}")
        mask |= 1 << (tier - 1)
    return mask


def _coerce_enum(enum_cls, value: Any):
    if isinstance(value, int) and not isinstance(value, bool):
        return enum_cls(value)
    member = from_label(enum_cls, value)
    if member is None:
        raise ValueError(f"invalid {enum_cls.__name__}: {value!r}")
    return member


def _percentage(attended: set[int], eligible: list[Campaign]) -> int | None:
    if not eligible:
        return None
    count = sum(1 for campaign in eligible if campaign.id in attended)
    return int(round(100 * count / len(eligible)))


class CampaignLogic:
    """
    Campaign operations bound to one database session.

    Args:
        session: SQLAlchemy session (``db.session`` inside a request).
        item_client: Item database client offering ``get_item_data``.
    """

    def __init__(self, session, item_client):
        self.session = session
        self.item_client = item_client

    # -------------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------------

    def _syndicate_players(self, syndicate_id: int, include_inactive: bool = False) -> list[Player]:
        stmt = select(Player).where(Player.syndicate_id == syndicate_id)
        if not include_inactive:
            stmt = stmt.where(Player.active.is_(True))
        return list(self.session.scalars(stmt.order_by(Player.name, Player.id)).all())

    def _known_epics(self) -> list[Item]:
        stmt = select(Item).where(Item.rarity == ItemRarity.EPIC).order_by(Item.tier, Item.name)
        return list(self.session.scalars(stmt).all())

    def _find_player_by_name(self, name: str, syndicate_id: int) -> Player | None:
        stmt = select(Player).where(
            Player.syndicate_id == syndicate_id,
            func.lower(Player.name) == name.strip().lower(),
        )
        return self.session.scalars(stmt).first()

    def get_campaign_overview(
        self,
        player_id: int | None,
        syndicate_id: int,
        all_past_campaigns: bool = False,
        only_attended: bool = False,
    ) -> CampaignOverview:
        """
        Build the campaign overview page for a player.

        Args:
            player_id: Player viewing the page; None for an anonymous view.
            syndicate_id: Syndicate whose campaigns are listed.
            all_past_campaigns: Return every past campaign instead of the
                most recent ten.
            only_attended: Limit loot awaiting distribution to campaigns
                the player attended.

        Returns:
            CampaignOverview with current, future and past campaigns, the
            player's signups and attendance, and undistributed loot of
            completed campaigns.
        """
        campaigns = self.session.scalars(
            select(Campaign)
            .where(Campaign.syndicate_id == syndicate_id)
            .order_by(Campaign.utc_datetime, Campaign.id)
        ).all()

        current = [c for c in campaigns if c.status in CURRENT_CAMPAIGN_STATUSES]
        future = [c for c in campaigns if c.status in FUTURE_CAMPAIGN_STATUSES]
        past = [c for c in campaigns if c.status in PAST_CAMPAIGN_STATUSES]
        past.sort(key=lambda c: c.utc_datetime or datetime.min, reverse=True)
        if not all_past_campaigns:
            past = past[:PAST_CAMPAIGN_LIMIT]

        player = self.session.get(Player, player_id) if player_id else None
        my_signups: dict[int, CampaignSignup] = {}
        my_attendance: dict[int, CampaignAttendance] = {}
        if player is not None:
            signups = self.session.scalars(
                select(CampaignSignup).where(
                    CampaignSignup.player_id == player.id,
                    CampaignSignup.attending.is_(True),
                )
            ).all()
            my_signups = {signup.campaign_id: signup for signup in signups}
            attendance = self.session.scalars(
                select(CampaignAttendance).where(CampaignAttendance.player_id == player.id)
            ).all()
            my_attendance = {record.campaign_id: record for record in attendance}

        loot_stmt = (
            select(CampaignLoot)
            .join(CampaignLoot.campaign)
            .join(CampaignLoot.item)
            .where(
                Campaign.syndicate_id == syndicate_id,
                Campaign.status == CampaignStatus.COMPLETED,
                CampaignLoot.status == CampaignLootStatus.UNDISTRIBUTED,
            )
            .order_by(Campaign.utc_datetime.desc(), Item.tier, CampaignLoot.id)
        )
        if only_attended and player is not None:
            loot_stmt = loot_stmt.where(CampaignLoot.campaign_id.in_(list(my_attendance)))

        loot_to_distribute = []
        for loot in self.session.scalars(loot_stmt).all():
            all_requests = list(loot.requests)
            own_request = None
            if player is not None:
                own_request = next(
                    (r for r in all_requests if r.requested_for_id == player.id), None
                )
            loot_to_distribute.append(LootOverviewEntry(
                loot=loot,
                tier_restriction=player is not None and loot.item.tier > player.tier,
                request=own_request,
                all_requests=all_requests,
            ))

        return CampaignOverview(
            current_campaigns=current,
            future_campaigns=future,
            past_campaigns=past,
            loot_statuses=enum_to_dict(CampaignLootStatus),
            loot_to_distribute=loot_to_distribute,
            my_signups=my_signups,
            my_attendance=my_attendance,
            all_past_campaigns=all_past_campaigns,
        )

    def get_campaign_by_id(
        self,
        campaign_id: int,
        syndicate_id: int,
        include_inactive: bool = False,
    ) -> CampaignDetails | None:
        """
        Fetch a campaign with its loot and the lists needed to edit it.

        Returns:
            CampaignDetails, or None when the campaign does not exist or
            belongs to another syndicate.
        """
        campaign = self.session.get(Campaign, campaign_id)
        if campaign is None:
            logger.warning("Campaign %s not found", campaign_id)
            return None
        if campaign.syndicate_id != syndicate_id:
            logger.warning(
                "Campaign %s does not belong to syndicate %s", campaign_id, syndicate_id
            )
            return None

        loot = sorted(campaign.loot, key=lambda entry: (entry.item.tier, entry.item.name, entry.id))
        return CampaignDetails(
            campaign=campaign,
            players=self._syndicate_players(syndicate_id, include_inactive),
            loot=loot,
            difficulty_levels=enum_to_dict(CampaignDifficulty),
            statuses=enum_to_dict(CampaignStatus),
            known_epics=self._known_epics(),
        )

    def get_new_campaign(self, syndicate_id: int) -> CampaignDetails:
        """Return an unsaved campaign template for the creation form."""
        campaign = Campaign(
            difficulty=CampaignDifficulty.EASY,
            tiers=0,
            status=CampaignStatus.PLANNED,
            manager_id=None,
            syndicate_id=syndicate_id,
        )
        return CampaignDetails(
            campaign=campaign,
            players=self._syndicate_players(syndicate_id),
            loot=[],
            difficulty_levels=enum_to_dict(CampaignDifficulty),
            statuses=enum_to_dict(CampaignStatus),
            known_epics=self._known_epics(),
        )

    # -------------------------------------------------------------------------
    # Create / edit
    # -------------------------------------------------------------------------

    @staticmethod
    def _campaign_values(data: Mapping[str, Any]) -> dict[str, Any]:
        """
        Extract and coerce editable campaign fields present in ``data``.

        Raises:
            ValueError: When a field has an invalid value.
        """
        values: dict[str, Any] = {}
        for name in ("name", "station", "comments"):
            if name in data:
                values[name] = data[name]
        if "difficulty" in data:
            values["difficulty"] = _coerce_enum(CampaignDifficulty, data["difficulty"])
        if "status" in data:
            values["status"] = _coerce_enum(CampaignStatus, data["status"])
        if "tiers" in data:
            values["tiers"] = tiers_to_mask(data["tiers"])
        if "utc_datetime" in data:
            values["utc_datetime"] = parse_utc_datetime(data["utc_datetime"])
        return values

    def create_or_edit_campaign(self, data: Mapping[str, Any], syndicate_id: int) -> Campaign | None:
        """
        Create a campaign, or update it when ``data`` carries an ``id``.

        A missing ``syndicate_id`` defaults to the caller's syndicate; a
        different one is rejected. ``manager_id`` of 0 clears the manager,
        and a manager from another syndicate is rejected. Editing a campaign
        that does not exist changes nothing.

        Args:
            data: Campaign fields (``id``, ``name``, ``station``, ``comments``,
                ``difficulty``, ``tiers``, ``status``, ``utc_datetime``,
                ``syndicate_id``, ``manager_id``).
            syndicate_id: Syndicate of the player submitting the form.

        Returns:
            The saved Campaign, or None if the request was rejected.
        """
        requested_syndicate = data.get("syndicate_id") or syndicate_id
        if requested_syndicate != syndicate_id:
            logger.warning(
                "Rejected campaign for syndicate %s submitted by syndicate %s",
                requested_syndicate, syndicate_id,
            )
            return None

        manager_id = data.get("manager_id") or None
        if manager_id is not None:
            manager = self.session.get(Player, manager_id)
            if manager is None or manager.syndicate_id != syndicate_id:
                logger.warning(
                    "Rejected campaign manager %s outside syndicate %s", manager_id, syndicate_id
                )
                return None

        try:
            values = self._campaign_values(data)
        except (TypeError, ValueError) as exc:
            logger.warning("Rejected campaign data: %s", exc)
            return None

        campaign_id = data.get("id")
        if campaign_id:
            campaign = self.session.get(Campaign, campaign_id)
            if campaign is None:
                logger.warning("Cannot edit campaign %s: not found", campaign_id)
                return None
            if campaign.syndicate_id != syndicate_id:
                logger.warning(
                    "Cannot edit campaign %s from syndicate %s", campaign_id, syndicate_id
                )
                return None
        else:
            campaign = Campaign(syndicate_id=syndicate_id)
            self.session.add(campaign)

        for name, value in values.items():
            setattr(campaign, name, value)
        if "manager_id" in data or not campaign_id:
            campaign.manager_id = manager_id
        campaign.syndicate_id = syndicate_id

        self.session.commit()
        logger.info("%s campaign %s", "Updated" if campaign_id else "Created", campaign.id)
        return campaign

    # -------------------------------------------------------------------------
    # Loot
    # -------------------------------------------------------------------------

    def _find_or_create_item(self, item_data: Mapping[str, Any]) -> Item:
        slug = item_data.get("slug")
        if slug:
            existing = self.session.scalars(select(Item).where(Item.slug == slug)).first()
            if existing is not None:
                return existing

        item = Item(**{name: item_data[name] for name in ITEM_FIELDS if name in item_data})
        self.session.add(item)
        return item

    def add_loot_by_url(self, campaign_id: int, url: str) -> CampaignLoot | None:
        """
        Register an item as loot of a campaign, given its item database URL.

        An item already stored under the same slug is linked as-is; its
        stored attributes are not overwritten.

        Returns:
            The new CampaignLoot, or None when the campaign does not exist or
            the item database does not know the item.
        """
        campaign = self.session.get(Campaign, campaign_id)
        if campaign is None:
            logger.warning("Cannot add loot to campaign %s: not found", campaign_id)
            return None

        item_data = self.item_client.get_item_data(url)
        if not item_data:
            logger.warning("No item data for %s", url)
            return None

        item = self._find_or_create_item(item_data)
        loot = CampaignLoot(
            campaign_id=campaign.id,
            item=item,
            status=CampaignLootStatus.UNDISTRIBUTED,
        )
        self.session.add(loot)
        self.session.commit()
        logger.info("Added item %s as loot %s of campaign %s", item.slug, loot.id, campaign.id)
        return loot

    # -------------------------------------------------------------------------
    # Report import
    # -------------------------------------------------------------------------

    def parse_campaign_report(self, report: str, syndicate_id: int) -> Campaign:
        """
        Import a finished campaign from its text report.

        The report is a list of ``Key: value`` lines::

            Name: Campaign #4
            Station: Yards of Gadani
            Difficulty: Hard
            Tiers: 4, 5
            Date: 2020-12-30T18:00:00
            Manager: Leader
            Attendees: Leader, Player1
            Loot: https://www.tauhead.com/item/ruby-blade

        ``Attendees`` and ``Loot`` may repeat. Unknown keys and unparseable
        values are ignored, so an empty report still yields a completed
        campaign dated now.

        Returns:
            The imported Campaign with status Completed.
        """
        fields: dict[str, str] = {}
        attendee_names: list[str] = []
        loot_urls: list[str] = []

        for raw_line in (report or "").splitlines():
            key, sep, value = raw_line.partition(":")
            if not sep:
                continue
            key = key.strip().lower()
            value = value.strip()
            if key == "attendees":
                attendee_names.extend(name.strip() for name in value.split(",") if name.strip())
            elif key == "loot":
                loot_urls.extend(part for part in re.split(r"[,\s]+", value) if part)
            elif value:
                fields[key] = value

        campaign = Campaign(
            syndicate_id=syndicate_id,
            status=CampaignStatus.COMPLETED,
            name=fields.get("name", "Imported campaign"),
            station=fields.get("station"),
            comments=fields.get("comments"),
            difficulty=from_label(CampaignDifficulty, fields.get("difficulty")) or CampaignDifficulty.EASY,
        )

        try:
            campaign.tiers = tiers_to_mask(fields.get("tiers"))
        except ValueError:
            logger.warning("Ignoring invalid tiers in campaign report: %s", fields.get("tiers"))
            campaign.tiers = 0

        try:
            campaign.utc_datetime = parse_utc_datetime(fields.get("date")) or utc_now()
        except ValueError:
            logger.warning("Ignoring invalid date in campaign report: %s", fields.get("date"))
            campaign.utc_datetime = utc_now()

        if "manager" in fields:
            manager = self._find_player_by_name(fields["manager"], syndicate_id)
            if manager is None:
                logger.warning("Unknown campaign manager '%s'", fields["manager"])
            else:
                campaign.manager_id = manager.id

        self.session.add(campaign)
        self.session.flush()

        seen: set[int] = set()
        for name in attendee_names:
            player = self._find_player_by_name(name, syndicate_id)
            if player is None:
                logger.warning("Unknown attendee '%s' in campaign report", name)
                continue
            if player.id in seen:
                continue
            seen.add(player.id)
            self.session.add(CampaignAttendance(campaign_id=campaign.id, player_id=player.id))

        self.session.commit()
        logger.info(
            "Imported campaign %s with %d attendees", campaign.id, len(seen)
        )

        for url in loot_urls:
            self.add_loot_by_url(campaign.id, url)

        return campaign

    # -------------------------------------------------------------------------
    # Signups and attendance
    # -------------------------------------------------------------------------

    def set_signup_status(self, player_id: int, campaign_id: int, attending: bool) -> bool:
        """
        Sign a player up for a campaign, or withdraw the signup.

        Returns:
            True when the signup was added or removed; False when the player
            or campaign is unknown, they belong to different syndicates, the
            player is already signed up, or there is no signup to remove.
        """
        player = self.session.get(Player, player_id) if player_id else None
        campaign = self.session.get(Campaign, campaign_id) if campaign_id else None
        if player is None or campaign is None:
            logger.warning("Signup rejected: player %s / campaign %s", player_id, campaign_id)
            return False
        if player.syndicate_id != campaign.syndicate_id:
            logger.warning("Signup rejected: player %s not in campaign %s syndicate", player_id, campaign_id)
            return False

        signup = self.session.scalars(
            select(CampaignSignup).where(
                CampaignSignup.campaign_id == campaign.id,
                CampaignSignup.player_id == player.id,
            )
        ).first()

        if attending:
            if signup is not None:
                return False
            self.session.add(CampaignSignup(campaign_id=campaign.id, player_id=player.id, attending=True))
        else:
            if signup is None:
                return False
            self.session.delete(signup)

        self.session.commit()
        return True

    def set_attendance(self, campaign_id: int, player_ids: Iterable[int], syndicate_id: int) -> bool:
        """
        Replace the attendance list of a campaign.

        Every player must belong to the campaign's syndicate, otherwise
        nothing changes.
        """
        campaign = self.session.get(Campaign, campaign_id)
        if campaign is None or campaign.syndicate_id != syndicate_id:
            logger.warning("Attendance rejected for campaign %s", campaign_id)
            return False

        wanted = set(player_ids)
        players = self.session.scalars(
            select(Player).where(Player.id.in_(wanted), Player.syndicate_id == syndicate_id)
        ).all()
        if len(players) != len(wanted):
            logger.warning("Attendance rejected: unknown players for campaign %s", campaign_id)
            return False

        self.session.execute(
            delete(CampaignAttendance).where(CampaignAttendance.campaign_id == campaign.id)
        )
        for player in players:
            self.session.add(CampaignAttendance(campaign_id=campaign.id, player_id=player.id))
        self.session.commit()
        return True

    def get_campaign_attendance(self, player_id: int | None, syndicate_id: int) -> AttendanceSummary:
        """
        Compute attendance percentages for one player or the whole syndicate.

        A player's percentages only count qualifying campaigns (already held,
        not skipped or cancelled) dated on or after the first campaign the
        player attended. Hard T5 rates consider Hard/Extreme campaigns with
        tier 5; the "last 10" rate only the ten most recent of those. Players
        who never attended are left out.

        Args:
            player_id: A single player, or None for every syndicate player.
            syndicate_id: Syndicate whose campaigns count.

        Returns:
            AttendanceSummary; when no player matches, its dictionaries are
            empty and ``t5_hard_attendance`` is None.
        """
        player_stmt = select(Player).where(Player.syndicate_id == syndicate_id)
        if player_id is not None:
            player_stmt = player_stmt.where(Player.id == player_id)
        players = self.session.scalars(player_stmt).all()
        if not players:
            return AttendanceSummary(total_attendance={}, t5_hard_attendance=None,
                                     last10_t5_hard_attendance={})

        campaigns = self.session.scalars(
            select(Campaign)
            .where(
                Campaign.syndicate_id == syndicate_id,
                Campaign.status.not_in(NON_QUALIFYING_STATUSES),
                Campaign.utc_datetime.is_not(None),
                Campaign.utc_datetime <= utc_now(),
            )
            .order_by(Campaign.utc_datetime, Campaign.id)
        ).all()
        hard_t5 = [campaign for campaign in campaigns if campaign.is_hard_t5]
        recent_hard_t5 = hard_t5[-RECENT_HARD_T5_WINDOW:]

        attended: dict[int, set[int]] = defaultdict(set)
        if campaigns:
            rows = self.session.execute(
                select(CampaignAttendance.player_id, CampaignAttendance.campaign_id).where(
                    CampaignAttendance.campaign_id.in_([c.id for c in campaigns]),
                    CampaignAttendance.player_id.in_([p.id for p in players]),
                )
            ).all()
            for row_player_id, row_campaign_id in rows:
                attended[row_player_id].add(row_campaign_id)

        summary = AttendanceSummary(t5_hard_attendance={})
        for player in players:
            campaign_ids = attended.get(player.id)
            if not campaign_ids:
                continue
            first_attended = min(c.utc_datetime for c in campaigns if c.id in campaign_ids)

            for target, eligible in (
                (summary.total_attendance, campaigns),
                (summary.t5_hard_attendance, hard_t5),
                (summary.last10_t5_hard_attendance, recent_hard_t5),
            ):
                rate = _percentage(
                    campaign_ids, [c for c in eligible if c.utc_datetime >= first_attended]
                )
                if rate is not None:
                    target[player.id] = rate

        return summary

    # -------------------------------------------------------------------------
    # Manager permissions
    # -------------------------------------------------------------------------

    def player_can_edit_campaign(self, player_id: int | None, campaign_id: int) -> bool:
        """Only the campaign's manager, from the same syndicate, may edit it."""
        if player_id is None:
            return False
        player = self.session.get(Player, player_id)
        campaign = self.session.get(Campaign, campaign_id)
        if player is None or campaign is None:
            return False
        return campaign.manager_id == player.id and player.syndicate_id == campaign.syndicate_id

    def player_can_volunteer_for_campaign(self, player_id: int | None, campaign_id: int) -> bool:
        """
        Check whether a player may become the manager of a campaign.

        The campaign must exist, belong to the player's syndicate, have no
        manager yet, and still be Unknown or Planned.
        """
        if player_id is None:
            return False
        player = self.session.get(Player, player_id)
        campaign = self.session.get(Campaign, campaign_id)
        if player is None or campaign is None:
            return False
        return (
            campaign.syndicate_id == player.syndicate_id
            and campaign.manager_id is None
            and campaign.status in FUTURE_CAMPAIGN_STATUSES
        )

    def volunteer_for_campaign(self, player_id: int, campaign_id: int) -> bool:
        """Make the player the campaign's manager when allowed."""
        if not self.player_can_volunteer_for_campaign(player_id, campaign_id):
            logger.warning("Player %s cannot volunteer for campaign %s", player_id, campaign_id)
            return False

        campaign = self.session.get(Campaign, campaign_id)
        campaign.manager_id = player_id
        self.session.commit()
        logger.info("Player %s now manages campaign %s", player_id, campaign_id)
        return True
