"""
Loot distribution logic.

The syndicate hands out campaign loot using a distribution list: the
player whose latest list entry is oldest is next in line, and receiving
an item moves the player to the bottom. This module builds that list and
runs the request workflow (request, withdraw, award, status changes).
"""

from __future__ import annotations

import logging
from collections import defaultdict

from sqlalchemy import func, select

from ..labels import enum_to_dict
from ..models import (
    Campaign,
    CampaignLoot,
    CampaignLootStatus,
    Item,
    LootRequest,
    LootRequestStatus,
    Player,
    PlayerListPositionHistory,
)
from .results import DistributionOrder

logger = logging.getLogger(__name__)

# Statuses a player may file a request with; the rest are set by officers
OPEN_REQUEST_STATUSES = (LootRequestStatus.INTERESTED, LootRequestStatus.SPECIAL_OFFER)

# Loot in these states is held by a specific player
HOLDER_STATUSES = (CampaignLootStatus.HELD_BY_PLAYER, CampaignLootStatus.ON_LOAN)


class LootLogic:
    """
    Loot operations bound to one database session.

    Args:
        session: SQLAlchemy session.
        campaign_logic: Provides ``get_campaign_attendance`` for the
            attendance columns of the distribution list.
    """

    def __init__(self, session, campaign_logic):
        self.session = session
        self.campaign_logic = campaign_logic

    # -------------------------------------------------------------------------
    # Distribution list
    # -------------------------------------------------------------------------

    def _ordered_players(self, players: list[Player]) -> list[Player]:
        """
        Sort players by their latest list position, top of the list first.

        Players who were never put on the list come before everyone else,
        in name order.
        """
        if not players:
            return []
        latest = dict(self.session.execute(
            select(
                PlayerListPositionHistory.player_id,
                func.max(PlayerListPositionHistory.id),
            )
            .where(PlayerListPositionHistory.player_id.in_([p.id for p in players]))
            .group_by(PlayerListPositionHistory.player_id)
        ).all())
        return sorted(players, key=lambda p: (p.id in latest, latest.get(p.id, 0), p.name))

    def get_current_distribution_order(
        self,
        campaign_id: int | None,
        undistributed_only: bool,
        include_inactive: bool,
        syndicate_id: int,
        current_player_id: int | None,
    ) -> DistributionOrder:
        """
        Build the loot distribution page.

        Args:
            campaign_id: Show loot of this campaign only; None for all.
            undistributed_only: Hide loot that has already been handed out.
            include_inactive: Also list inactive players.
            syndicate_id: Syndicate whose players and loot are listed.
            current_player_id: Player viewing the page, if known.

        Returns:
            DistributionOrder with the ordered player list, loot grouped by
            campaign (lowest tier first), requests grouped by the player they
            are for, and attendance rates.
        """
        player_stmt = select(Player).where(Player.syndicate_id == syndicate_id)
        if not include_inactive:
            player_stmt = player_stmt.where(Player.active.is_(True))
        all_players = list(self.session.scalars(player_stmt.order_by(Player.name, Player.id)).all())

        current_player = (
            self.session.get(Player, current_player_id) if current_player_id else None
        )

        loot_stmt = (
            select(CampaignLoot)
            .join(CampaignLoot.campaign)
            .join(CampaignLoot.item)
            .where(Campaign.syndicate_id == syndicate_id)
            .order_by(Campaign.utc_datetime.desc(), Item.tier, Item.name, CampaignLoot.id)
        )
        if campaign_id is not None:
            loot_stmt = loot_stmt.where(CampaignLoot.campaign_id == campaign_id)
        if undistributed_only:
            loot_stmt = loot_stmt.where(CampaignLoot.status == CampaignLootStatus.UNDISTRIBUTED)

        all_campaign_loot: dict[int, list[CampaignLoot]] = defaultdict(list)
        all_campaigns: list[Campaign] = []
        all_loot_requests: dict[int, list[LootRequest]] = defaultdict(list)
        for loot in self.session.scalars(loot_stmt).all():
            if loot.campaign_id not in all_campaign_loot:
                all_campaigns.append(loot.campaign)
            all_campaign_loot[loot.campaign_id].append(loot)
            for request in loot.requests:
                all_loot_requests[request.requested_for_id].append(request)

        attendance = self.campaign_logic.get_campaign_attendance(None, syndicate_id)

        return DistributionOrder(
            current_order=self._ordered_players(all_players),
            current_player=current_player,
            all_players=all_players,
            all_campaign_loot=dict(all_campaign_loot),
            all_loot_requests=dict(all_loot_requests),
            all_campaigns=all_campaigns,
            loot_statuses=enum_to_dict(CampaignLootStatus),
            campaign_id=campaign_id,
            undistributed_only=undistributed_only,
            include_inactive=include_inactive,
            total_attendance_rate=attendance.total_attendance,
            hard_t5_attendance_rate=attendance.last10_t5_hard_attendance,
        )

    def append_player_to_bottom(
        self,
        player_id: int,
        loot_request_id: int | None,
        comment: str | None,
    ) -> bool:
        """
        Move a player to the bottom of the distribution list.

        Each move must be explained by a loot request (the player received
        that loot) or a comment.

        Returns:
            True when the history entry was written; False when neither a
            request nor a comment is given, the player is unknown, or the
            request is unknown or for another player.
        """
        if loot_request_id is None and not comment:
            logger.warning("List move for player %s needs a loot request or comment", player_id)
            return False

        player = self.session.get(Player, player_id)
        if player is None:
            logger.warning("List move rejected: player %s not found", player_id)
            return False

        if loot_request_id is not None:
            loot_request = self.session.get(LootRequest, loot_request_id)
            if loot_request is None or loot_request.requested_for_id != player.id:
                logger.warning(
                    "List move rejected: request %s is not for player %s",
                    loot_request_id, player_id,
                )
                return False

        self.session.add(PlayerListPositionHistory(
            player_id=player.id,
            loot_request_id=loot_request_id,
            comment=comment,
        ))
        self.session.commit()
        logger.info("Moved player %s to the bottom of the list", player_id)
        return True

    # -------------------------------------------------------------------------
    # Request workflow
    # -------------------------------------------------------------------------

    def request_loot(
        self,
        player_id: int,
        loot_id: int,
        status: LootRequestStatus = LootRequestStatus.INTERESTED,
        special_offer_description: str | None = None,
        requested_by_id: int | None = None,
    ) -> LootRequest | None:
        """
        File or update a player's request for a piece of loot.

        Args:
            player_id: Player who would receive the loot.
            loot_id: Loot being requested.
            status: Interested or Special Offer.
            special_offer_description: Required for special offers.
            requested_by_id: Player filing the request; defaults to
                ``player_id``. Must be in the same syndicate.

        Returns:
            The created or updated LootRequest, or None when the request is
            not allowed.
        """
        try:
            status = LootRequestStatus(status)
        except ValueError:
            logger.warning("Unknown loot request status %s", status)
            return None
        if status not in OPEN_REQUEST_STATUSES:
            logger.warning("Loot request status %s cannot be filed by players", status.name)
            return None
        if status == LootRequestStatus.SPECIAL_OFFER and not special_offer_description:
            logger.warning("Special offer for loot %s has no description", loot_id)
            return None

        loot = self.session.get(CampaignLoot, loot_id)
        if loot is None or loot.status != CampaignLootStatus.UNDISTRIBUTED:
            logger.warning("Loot %s is not available for requests", loot_id)
            return None

        syndicate_id = loot.campaign.syndicate_id
        player = self.session.get(Player, player_id)
        requested_by = self.session.get(Player, requested_by_id or player_id)
        if player is None or requested_by is None:
            logger.warning("Loot request rejected: unknown player")
            return None
        if player.syndicate_id != syndicate_id or requested_by.syndicate_id != syndicate_id:
            logger.warning("Loot request rejected: player outside syndicate %s", syndicate_id)
            return None

        request = self.session.scalars(
            select(LootRequest).where(
                LootRequest.loot_id == loot.id,
                LootRequest.requested_for_id == player.id,
            )
        ).first()
        if request is None:
            request = LootRequest(loot_id=loot.id, requested_for_id=player.id)
            self.session.add(request)

        request.requested_by_id = requested_by.id
        request.status = status
        request.special_offer_description = (
            special_offer_description if status == LootRequestStatus.SPECIAL_OFFER else None
        )
        self.session.commit()
        logger.info("Player %s requested loot %s (%s)", player.id, loot.id, status.name)
        return request

    def withdraw_loot_request(self, request_id: int, player_id: int) -> bool:
        """
        Delete a pending request filed by or for the player.

        Awarded requests are part of the distribution history and stay.
        """
        request = self.session.get(LootRequest, request_id)
        if request is None:
            return False
        if player_id not in (request.requested_for_id, request.requested_by_id):
            logger.warning("Player %s cannot withdraw request %s", player_id, request_id)
            return False
        if request.status == LootRequestStatus.AWARDED:
            logger.warning("Request %s was already awarded", request_id)
            return False

        self.session.delete(request)
        self.session.commit()
        return True

    def award_loot(self, loot_id: int, request_id: int, syndicate_id: int) -> bool:
        """
        Hand a piece of loot to the player behind one of its requests.

        The chosen request becomes Awarded, the other requests Declined, and
        the loot is held by the requester. A plain Interested request also
        moves the player to the bottom of the distribution list; special
        offers are settled by their own terms and do not.
        """
        loot = self.session.get(CampaignLoot, loot_id)
        if loot is None or loot.campaign.syndicate_id != syndicate_id:
            logger.warning("Cannot award loot %s for syndicate %s", loot_id, syndicate_id)
            return False
        if loot.status != CampaignLootStatus.UNDISTRIBUTED:
            logger.warning("Loot %s has already been distributed", loot_id)
            return False

        request = self.session.get(LootRequest, request_id)
        if request is None or request.loot_id != loot.id:
            logger.warning("Request %s does not belong to loot %s", request_id, loot_id)
            return False
        if request.requested_for.syndicate_id != syndicate_id:
            logger.warning("Request %s is for a player outside syndicate %s", request_id, syndicate_id)
            return False

        moves_player = request.status == LootRequestStatus.INTERESTED
        for other in loot.requests:
            if other.id != request.id:
                other.status = LootRequestStatus.DECLINED
        request.status = LootRequestStatus.AWARDED
        loot.status = CampaignLootStatus.HELD_BY_PLAYER
        loot.holder_id = request.requested_for_id

        if moves_player:
            self.session.add(PlayerListPositionHistory(
                player_id=request.requested_for_id,
                loot_request_id=request.id,
            ))
        self.session.commit()
        logger.info("Awarded loot %s to player %s", loot.id, loot.holder_id)
        return True

    def set_loot_status(
        self,
        loot_id: int,
        status: CampaignLootStatus,
        holder_id: int | None,
        syndicate_id: int,
    ) -> bool:
        """
        Change where a piece of loot is.

        Held By Player and On Loan need a holder from the loot's syndicate;
        every other status clears the holder.
        """
        try:
            status = CampaignLootStatus(status)
        except ValueError:
            logger.warning("Unknown loot status %s", status)
            return False

        loot = self.session.get(CampaignLoot, loot_id)
        if loot is None or loot.campaign.syndicate_id != syndicate_id:
            logger.warning("Cannot change loot %s for syndicate %s", loot_id, syndicate_id)
            return False

        if status in HOLDER_STATUSES:
            holder = self.session.get(Player, holder_id) if holder_id else None
            if holder is None or holder.syndicate_id != syndicate_id:
                logger.warning("Loot holder %s is not in syndicate %s", holder_id, syndicate_id)
                return False
            loot.holder_id = holder.id
        else:
            loot.holder_id = None

        loot.status = status
        self.session.commit()
        return True
