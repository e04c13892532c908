"""
Unit tests for LootLogic.

The syndicate below has three players on the distribution list (in that
order), two completed campaigns with two loot items each and two requests
on one of the items. Attendance comes from a mocked CampaignLogic unless a
test needs the real computation.
"""

from datetime import datetime
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from sqlalchemy import func, select

from syndicate_app.logic import CampaignLogic, LootLogic
from syndicate_app.logic.results import AttendanceSummary
from syndicate_app.models import (
    CampaignDifficulty,
    CampaignLoot,
    CampaignLootStatus,
    ItemRarity,
    ItemType,
    LootRequest,
    LootRequestStatus,
    PlayerListPositionHistory,
)

pytestmark = pytest.mark.unit


@pytest.fixture
def mocked_campaign_logic():
    mock_logic = MagicMock(spec=CampaignLogic)
    mock_logic.get_campaign_attendance.return_value = AttendanceSummary(t5_hard_attendance={})
    return mock_logic


@pytest.fixture
def logic(db_session, mocked_campaign_logic) -> LootLogic:
    return LootLogic(db_session.session, mocked_campaign_logic)


@pytest.fixture
def world(db_session, syndicate, player_factory, campaign_factory, item_factory, loot_factory, attend):
    """The shared starting state of every test in this module."""
    leader = player_factory(syndicate, name="Leader", level=5.2)
    player1 = player_factory(syndicate, name="Player1", level=24)
    player2 = player_factory(syndicate, name="Player2", level=25)

    campaign1 = campaign_factory(
        syndicate, name="Campaign #1", difficulty=CampaignDifficulty.NORMAL,
        utc_datetime=datetime(2019, 12, 31), manager=leader,
    )
    campaign2 = campaign_factory(
        syndicate, name="Campaign #2", difficulty=CampaignDifficulty.HARD,
        utc_datetime=datetime(2020, 1, 2), manager=leader,
    )
    attend(campaign1, leader, player1)
    attend(campaign2, leader, player2)

    test1 = item_factory(name="Test1", tier=1, rarity=ItemRarity.EPIC)
    test2 = item_factory(name="Test2", tier=2, rarity=ItemRarity.EPIC)
    test3 = item_factory(name="Test3", tier=2, rarity=ItemRarity.EPIC, item_type=ItemType.ARMOR)

    loot1 = loot_factory(campaign1, item=test2)
    loot2 = loot_factory(campaign1, item=test1)
    loot3 = loot_factory(campaign2, item=test1)
    loot4 = loot_factory(campaign2, item=test3)

    request1 = LootRequest(
        loot_id=loot2.id,
        requested_by_id=leader.id,
        requested_for_id=leader.id,
        status=LootRequestStatus.INTERESTED,
    )
    request2 = LootRequest(
        loot_id=loot2.id,
        requested_by_id=player1.id,
        requested_for_id=player1.id,
        status=LootRequestStatus.SPECIAL_OFFER,
        special_offer_description="Special offer description stub",
    )
    db_session.session.add_all([request1, request2])
    db_session.session.commit()

    for player in (leader, player1, player2):
        db_session.session.add(PlayerListPositionHistory(player_id=player.id, comment="Initial seed"))
    db_session.session.commit()

    return SimpleNamespace(
        syndicate=syndicate,
        leader=leader,
        player1=player1,
        player2=player2,
        campaign1=campaign1,
        campaign2=campaign2,
        loot1=loot1,
        loot2=loot2,
        loot3=loot3,
        loot4=loot4,
        request1=request1,
        request2=request2,
    )


def _history(db_session) -> list[PlayerListPositionHistory]:
    return list(db_session.session.scalars(
        select(PlayerListPositionHistory).order_by(PlayerListPositionHistory.id)
    ))


def _request_count(db_session) -> int:
    return db_session.session.scalar(select(func.count()).select_from(LootRequest))


# -----------------------------------------------------------------------------
# Distribution list
# -----------------------------------------------------------------------------

class TestGetCurrentDistributionOrder:
    """Tests for LootLogic.get_current_distribution_order."""

    def test_correct_empty(self, logic, syndicate):
        # Act
        result = logic.get_current_distribution_order(None, False, False, syndicate.id, None)

        # Assert
        assert result.current_order == []
        assert result.current_player is None
        assert result.all_players == []
        assert result.all_campaign_loot == {}
        assert result.all_loot_requests == {}
        assert result.all_campaigns == []
        assert len(result.loot_statuses) == 5
        assert result.loot_statuses[3] == "OnLoan"
        assert result.campaign_id is None
        assert result.undistributed_only is False
        assert result.include_inactive is False
        assert result.total_attendance_rate == {}
        assert result.hard_t5_attendance_rate == {}

    def test_correct_full(self, logic, world, mocked_campaign_logic):
        # Act
        result = logic.get_current_distribution_order(None, False, False, world.syndicate.id, None)

        # Assert
        assert [p.id for p in result.current_order] == [world.leader.id, world.player1.id, world.player2.id]
        assert result.current_player is None
        assert len(result.all_players) == 3
        assert set(result.all_campaign_loot) == {world.campaign1.id, world.campaign2.id}
        campaign1_loot = result.all_campaign_loot[world.campaign1.id]
        assert len(campaign1_loot) == 2
        assert campaign1_loot[0].item.tier < campaign1_loot[-1].item.tier
        assert set(result.all_loot_requests) == {world.leader.id, world.player1.id}
        assert [c.id for c in result.all_campaigns] == [world.campaign2.id, world.campaign1.id]
        assert result.loot_statuses[3] == "OnLoan"
        assert result.total_attendance_rate == {}
        mocked_campaign_logic.get_campaign_attendance.assert_called_once_with(None, world.syndicate.id)

    def test_filters(self, db_session, logic, world):
        # Arrange
        world.loot3.status = CampaignLootStatus.SOLD
        db_session.session.commit()

        # Act
        one_campaign = logic.get_current_distribution_order(
            world.campaign1.id, False, False, world.syndicate.id, world.leader.id
        )
        undistributed = logic.get_current_distribution_order(
            None, True, False, world.syndicate.id, world.leader.id
        )

        # Assert
        assert list(one_campaign.all_campaign_loot) == [world.campaign1.id]
        assert one_campaign.current_player.id == world.leader.id
        assert [loot.id for loot in undistributed.all_campaign_loot[world.campaign2.id]] == [world.loot4.id]

    def test_inactive_players_only_when_requested(self, logic, world, player_factory):
        player_factory(world.syndicate, name="Retired", active=False)

        active_only = logic.get_current_distribution_order(None, False, False, world.syndicate.id, None)
        everyone = logic.get_current_distribution_order(None, False, True, world.syndicate.id, None)

        assert len(active_only.all_players) == 3
        assert len(everyone.all_players) == 4

    def test_players_never_on_the_list_come_first(self, logic, world, player_factory):
        newcomer = player_factory(world.syndicate, name="Newcomer")

        result = logic.get_current_distribution_order(None, False, False, world.syndicate.id, None)

        assert result.current_order[0].id == newcomer.id

    def test_uses_real_attendance_rates(self, db_session, campaign_logic, world):
        # Arrange
        loot_logic = LootLogic(db_session.session, campaign_logic)

        # Act
        result = loot_logic.get_current_distribution_order(None, False, False, world.syndicate.id, None)

        # Assert
        assert result.total_attendance_rate[world.leader.id] == 100
        assert result.total_attendance_rate[world.player1.id] == 50
        assert result.hard_t5_attendance_rate[world.player2.id] == 100
        assert result.hard_t5_attendance_rate[world.leader.id] == 100


@pytest.mark.parametrize(
    "player, request_key, comment, expected_result, expected_count, last_player, last_comment, last_request",
    [
        ("leader", "request1", None, True, 4, "leader", None, "request1"),
        ("leader", None, "Manual drop", True, 4, "leader", "Manual drop", None),
        ("leader", None, None, False, 3, "player2", "Initial seed", None),
        ("nobody", None, "Manual drop", False, 3, "player2", "Initial seed", None),
        ("leader", "missing", None, False, 3, "player2", "Initial seed", None),
        ("leader", "request2", None, False, 3, "player2", "Initial seed", None),
    ],
    ids=[
        "correct_with_loot_request",
        "correct_with_comment",
        "no_comment_no_loot_request",
        "nonexistent_player",
        "nonexistent_loot_request",
        "loot_request_player_mismatch",
    ],
)
def test_append_player_to_bottom(
    db_session, logic, world,
    player, request_key, comment, expected_result, expected_count,
    last_player, last_comment, last_request,
):
    # Arrange
    player_id = getattr(world, player).id if player != "nobody" else 999
    request_id = None
    if request_key == "missing":
        request_id = 999
    elif request_key is not None:
        request_id = getattr(world, request_key).id

    # Act
    result = logic.append_player_to_bottom(player_id, request_id, comment)

    # Assert
    assert result is expected_result
    history = _history(db_session)
    assert len(history) == expected_count
    assert history[-1].player_id == getattr(world, last_player).id
    assert history[-1].comment == last_comment
    expected_request_id = getattr(world, last_request).id if last_request else None
    assert history[-1].loot_request_id == expected_request_id


def test_append_moves_player_to_bottom_of_order(logic, world):
    logic.append_player_to_bottom(world.leader.id, None, "Manual drop")

    result = logic.get_current_distribution_order(None, False, False, world.syndicate.id, None)

    assert [p.id for p in result.current_order] == [world.player1.id, world.player2.id, world.leader.id]


# -----------------------------------------------------------------------------
# Request workflow
# -----------------------------------------------------------------------------

class TestRequestLoot:
    """Tests for LootLogic.request_loot."""

    def test_new_interested_request(self, db_session, logic, world):
        # Act
        request = logic.request_loot(world.player2.id, world.loot3.id)

        # Assert
        assert request.id is not None
        assert request.status == LootRequestStatus.INTERESTED
        assert request.requested_by_id == world.player2.id
        assert request.requested_for_id == world.player2.id
        assert _request_count(db_session) == 3

    def test_existing_request_is_updated(self, db_session, logic, world):
        # Act
        request = logic.request_loot(
            world.leader.id,
            world.loot2.id,
            status=LootRequestStatus.SPECIAL_OFFER,
            special_offer_description="Two rounds of drinks",
        )

        # Assert
        assert request.id == world.request1.id
        assert request.status == LootRequestStatus.SPECIAL_OFFER
        assert request.special_offer_description == "Two rounds of drinks"
        assert _request_count(db_session) == 2

    def test_on_behalf_of_another_player(self, logic, world):
        request = logic.request_loot(world.player2.id, world.loot4.id, requested_by_id=world.leader.id)

        assert request.requested_for_id == world.player2.id
        assert request.requested_by_id == world.leader.id

    def test_plain_int_status_is_accepted(self, logic, world):
        request = logic.request_loot(world.player2.id, world.loot4.id, status=int(LootRequestStatus.INTERESTED))

        assert request.status == LootRequestStatus.INTERESTED

    def test_special_offer_needs_description(self, db_session, logic, world):
        result = logic.request_loot(world.player2.id, world.loot3.id, status=LootRequestStatus.SPECIAL_OFFER)

        assert result is None
        assert _request_count(db_session) == 2

    @pytest.mark.parametrize("status", [LootRequestStatus.AWARDED, LootRequestStatus.DECLINED, 42])
    def test_officer_statuses_are_rejected(self, logic, world, status):
        assert logic.request_loot(world.player2.id, world.loot3.id, status=status) is None

    def test_distributed_loot_is_rejected(self, db_session, logic, world):
        world.loot3.status = CampaignLootStatus.HELD_BY_SYNDICATE
        db_session.session.commit()

        assert logic.request_loot(world.player2.id, world.loot3.id) is None

    def test_player_outside_syndicate_is_rejected(self, logic, world, outsider):
        assert logic.request_loot(outsider.id, world.loot3.id) is None
        assert logic.request_loot(world.player2.id, world.loot3.id, requested_by_id=outsider.id) is None

    def test_unknown_loot(self, logic, world):
        assert logic.request_loot(world.player2.id, 999) is None


class TestWithdrawLootRequest:
    """Tests for LootLogic.withdraw_loot_request."""

    def test_requester_can_withdraw(self, db_session, logic, world):
        assert logic.withdraw_loot_request(world.request2.id, world.player1.id) is True
        assert _request_count(db_session) == 1

    def test_other_player_cannot_withdraw(self, db_session, logic, world):
        assert logic.withdraw_loot_request(world.request2.id, world.player2.id) is False
        assert _request_count(db_session) == 2

    def test_awarded_request_stays(self, db_session, logic, world):
        world.request1.status = LootRequestStatus.AWARDED
        db_session.session.commit()

        assert logic.withdraw_loot_request(world.request1.id, world.leader.id) is False

    def test_unknown_request(self, logic, world):
        assert logic.withdraw_loot_request(999, world.leader.id) is False


class TestAwardLoot:
    """Tests for LootLogic.award_loot."""

    def test_award_interested_request(self, db_session, logic, world):
        # Act
        result = logic.award_loot(world.loot2.id, world.request1.id, world.syndicate.id)

        # Assert
        assert result is True
        loot = db_session.session.get(CampaignLoot, world.loot2.id)
        assert loot.status == CampaignLootStatus.HELD_BY_PLAYER
        assert loot.holder_id == world.leader.id
        assert db_session.session.get(LootRequest, world.request1.id).status == LootRequestStatus.AWARDED
        assert db_session.session.get(LootRequest, world.request2.id).status == LootRequestStatus.DECLINED
        last = _history(db_session)[-1]
        assert last.player_id == world.leader.id
        assert last.loot_request_id == world.request1.id

    def test_award_special_offer_keeps_list_position(self, db_session, logic, world):
        # Act
        result = logic.award_loot(world.loot2.id, world.request2.id, world.syndicate.id)

        # Assert
        assert result is True
        assert db_session.session.get(CampaignLoot, world.loot2.id).holder_id == world.player1.id
        assert len(_history(db_session)) == 3

    def test_request_of_other_loot_is_rejected(self, logic, world):
        assert logic.award_loot(world.loot1.id, world.request1.id, world.syndicate.id) is False

    def test_wrong_syndicate(self, logic, world, other_syndicate):
        assert logic.award_loot(world.loot2.id, world.request1.id, other_syndicate.id) is False

    def test_already_distributed(self, logic, world):
        logic.award_loot(world.loot2.id, world.request1.id, world.syndicate.id)

        assert logic.award_loot(world.loot2.id, world.request2.id, world.syndicate.id) is False


class TestSetLootStatus:
    """Tests for LootLogic.set_loot_status."""

    def test_on_loan_needs_holder(self, db_session, logic, world):
        # Act
        without_holder = logic.set_loot_status(world.loot1.id, CampaignLootStatus.ON_LOAN, None, world.syndicate.id)
        with_holder = logic.set_loot_status(
            world.loot1.id, CampaignLootStatus.ON_LOAN, world.player2.id, world.syndicate.id
        )

        # Assert
        assert without_holder is False
        assert with_holder is True
        loot = db_session.session.get(CampaignLoot, world.loot1.id)
        assert loot.status == CampaignLootStatus.ON_LOAN
        assert loot.holder_id == world.player2.id

    def test_other_statuses_clear_holder(self, db_session, logic, world):
        logic.set_loot_status(world.loot1.id, CampaignLootStatus.HELD_BY_PLAYER, world.player2.id, world.syndicate.id)

        result = logic.set_loot_status(world.loot1.id, CampaignLootStatus.SOLD, world.player2.id, world.syndicate.id)

        assert result is True
        loot = db_session.session.get(CampaignLoot, world.loot1.id)
        assert loot.status == CampaignLootStatus.SOLD
        assert loot.holder_id is None

    def test_holder_outside_syndicate(self, logic, world, outsider):
        assert logic.set_loot_status(
            world.loot1.id, CampaignLootStatus.HELD_BY_PLAYER, outsider.id, world.syndicate.id
        ) is False

    def test_wrong_syndicate_or_status(self, logic, world, other_syndicate):
        assert logic.set_loot_status(world.loot1.id, CampaignLootStatus.SOLD, None, other_syndicate.id) is False
        assert logic.set_loot_status(world.loot1.id, 42, None, world.syndicate.id) is False
