"""
Result containers returned by the business-logic services.

Each container groups the records a page or API response needs and knows
how to project itself to JSON.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from ..models import (
    Campaign,
    CampaignAttendance,
    CampaignLoot,
    CampaignSignup,
    Item,
    LootRequest,
    Player,
)


def _int_keys_to_str(mapping: dict[int, Any]) -> dict[str, Any]:
    return {str(key): value for key, value in mapping.items()}


@dataclass
class LootOverviewEntry:
    """One undistributed loot item as seen by a particular player."""

    loot: CampaignLoot
    tier_restriction: bool = False
    request: LootRequest | None = None
    all_requests: list[LootRequest] = field(default_factory=list)

    @property
    def request_exists(self) -> bool:
        return self.request is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "loot": self.loot.to_dict(),
            "tier_restriction": self.tier_restriction,
            "request_exists": self.request_exists,
            "request": self.request.to_dict() if self.request else None,
            "all_requests": [request.to_dict() for request in self.all_requests],
        }


@dataclass
class CampaignOverview:
    """Campaigns of a syndicate split by lifecycle, plus loot awaiting distribution."""

    current_campaigns: list[Campaign]
    future_campaigns: list[Campaign]
    past_campaigns: list[Campaign]
    loot_statuses: dict[int, str]
    loot_to_distribute: list[LootOverviewEntry]
    my_signups: dict[int, CampaignSignup] = field(default_factory=dict)
    my_attendance: dict[int, CampaignAttendance] = field(default_factory=dict)
    all_past_campaigns: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "current_campaigns": [c.to_dict() for c in self.current_campaigns],
            "future_campaigns": [c.to_dict() for c in self.future_campaigns],
            "past_campaigns": [c.to_dict() for c in self.past_campaigns],
            "loot_statuses": _int_keys_to_str(self.loot_statuses),
            "loot_to_distribute": [entry.to_dict() for entry in self.loot_to_distribute],
            "my_signups": sorted(self.my_signups),
            "my_attendance": sorted(self.my_attendance),
            "all_past_campaigns": self.all_past_campaigns,
        }


@dataclass
class CampaignDetails:
    """A single campaign with everything needed to view or edit it."""

    campaign: Campaign
    players: list[Player]
    loot: list[CampaignLoot]
    difficulty_levels: dict[int, str]
    statuses: dict[int, str]
    known_epics: list[Item]

    def to_dict(self) -> dict[str, Any]:
        return {
            "campaign": self.campaign.to_dict(),
            "players": [player.to_dict() for player in self.players],
            "loot": [loot.to_dict() for loot in self.loot],
            "difficulty_levels": _int_keys_to_str(self.difficulty_levels),
            "statuses": _int_keys_to_str(self.statuses),
            "known_epics": [item.to_dict() for item in self.known_epics],
        }


@dataclass
class AttendanceSummary:
    """
    Attendance percentages keyed by player id.

    ``t5_hard_attendance`` is None when no player matched the query.
    """

    total_attendance: dict[int, int] = field(default_factory=dict)
    t5_hard_attendance: dict[int, int] | None = None
    last10_t5_hard_attendance: dict[int, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_attendance": _int_keys_to_str(self.total_attendance),
            "t5_hard_attendance": (
                _int_keys_to_str(self.t5_hard_attendance)
                if self.t5_hard_attendance is not None else None
            ),
            "last10_t5_hard_attendance": _int_keys_to_str(self.last10_t5_hard_attendance),
        }


@dataclass
class DistributionOrder:
    """The loot distribution list together with the loot and requests it applies to."""

    current_order: list[Player]
    current_player: Player | None
    all_players: list[Player]
    all_campaign_loot: dict[int, list[CampaignLoot]]
    all_loot_requests: dict[int, list[LootRequest]]
    all_campaigns: list[Campaign]
    loot_statuses: dict[int, str]
    campaign_id: int | None = None
    undistributed_only: bool = False
    include_inactive: bool = False
    total_attendance_rate: dict[int, int] = field(default_factory=dict)
    hard_t5_attendance_rate: dict[int, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "current_order": [player.to_dict() for player in self.current_order],
            "current_player": self.current_player.to_dict() if self.current_player else None,
            "all_players": [player.to_dict() for player in self.all_players],
            "all_campaign_loot": {
                str(campaign_id): [loot.to_dict() for loot in loot_list]
                for campaign_id, loot_list in self.all_campaign_loot.items()
            },
            "all_loot_requests": {
                str(player_id): [request.to_dict() for request in requests]
                for player_id, requests in self.all_loot_requests.items()
            },
            "all_campaigns": [campaign.to_dict() for campaign in self.all_campaigns],
            "loot_statuses": _int_keys_to_str(self.loot_statuses),
            "campaign_id": self.campaign_id,
            "undistributed_only": self.undistributed_only,
            "include_inactive": self.include_inactive,
            "total_attendance_rate": _int_keys_to_str(self.total_attendance_rate),
            "hard_t5_attendance_rate": _int_keys_to_str(self.hard_t5_attendance_rate),
        }
