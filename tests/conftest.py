"""
Shared pytest fixtures for the Syndicate Manager test suite.

Provides the Flask application, test client, database session, JWT
headers, a mocked item database client, the business-logic services and
data factories for syndicates, players, campaigns, items and loot.

Key Concepts Demonstrated:
- Session-scoped vs function-scoped fixtures for performance and isolation
- Factory pattern for flexible test-data creation
- Mocking the external item database instead of calling it
"""

from __future__ import annotations

import os
from datetime import datetime, timedelta
from unittest.mock import MagicMock

import pytest
from faker import Faker

# Set testing environment before importing app
os.environ["FLASK_ENV"] = "testing"

from syndicate_app import create_app, db
from syndicate_app.item_database import ItemDatabaseClient
from syndicate_app.logic import CampaignLogic, IntegrationLogic, InternalLogic, LootLogic
from syndicate_app.models import (
    Campaign,
    CampaignAttendance,
    CampaignDifficulty,
    CampaignLoot,
    CampaignLootStatus,
    CampaignStatus,
    Item,
    ItemRarity,
    ItemType,
    Player,
    Syndicate,
    utc_now,
)
from tests.helpers import auth_headers, create_test_token

fake = Faker()


# -----------------------------------------------------------------------------
# Application Fixtures
# -----------------------------------------------------------------------------

@pytest.fixture(scope="session")
def app():
    """
    Create application instance for the test session.

    The 'session' scope means the same app instance is reused
    for all tests.
    """
    application = create_app("testing")
    yield application


@pytest.fixture(scope="function")
def client(app):
    """Create a test client for making HTTP requests."""
    with app.test_client() as test_client:
        yield test_client


@pytest.fixture(scope="function")
def db_session(app):
    """
    Create a fresh database for each test.

    Creates all tables before the test, yields the db instance, then
    rolls back uncommitted changes and drops all tables.
    """
    with app.app_context():
        db.create_all()
        yield db
        db.session.rollback()
        db.drop_all()


# -----------------------------------------------------------------------------
# Service Fixtures
# -----------------------------------------------------------------------------

@pytest.fixture
def item_client():
    """
    Mocked item database client.

    Tests set ``item_client.get_item_data.return_value`` (or
    ``bulk_parse_items``) to whatever the item database should answer.
    """
    mock_client = MagicMock(spec=ItemDatabaseClient)
    mock_client.get_item_data.return_value = None
    mock_client.bulk_parse_items.return_value = {}
    return mock_client


@pytest.fixture
def campaign_logic(db_session, item_client) -> CampaignLogic:
    return CampaignLogic(db_session.session, item_client)


@pytest.fixture
def loot_logic(db_session, campaign_logic) -> LootLogic:
    return LootLogic(db_session.session, campaign_logic)


@pytest.fixture
def integration_logic(db_session) -> IntegrationLogic:
    return IntegrationLogic(db_session.session)


@pytest.fixture
def internal_logic(db_session, item_client) -> InternalLogic:
    return InternalLogic(db_session.session, item_client)


# -----------------------------------------------------------------------------
# Test Data Factory Fixtures
# -----------------------------------------------------------------------------

@pytest.fixture
def syndicate_factory(db_session):
    """Factory fixture for creating Syndicate rows."""

    def _create_syndicate(tag: str | None = None, name: str | None = None) -> Syndicate:
        syndicate = Syndicate(
            tag=tag or fake.lexify("???").upper(),
            name=name or fake.company(),
        )
        db_session.session.add(syndicate)
        db_session.session.commit()
        return syndicate

    return _create_syndicate


@pytest.fixture
def player_factory(db_session):
    """
    Factory fixture for creating Player rows.

    Example:
        def test_something(player_factory, syndicate):
            player = player_factory(syndicate, name="Leader", level=25)
    """

    def _create_player(
        syndicate: Syndicate | None,
        name: str | None = None,
        level: float = 25,
        active: bool = True,
        discord_login: str | None = None,
    ) -> Player:
        player = Player(
            name=name or fake.unique.user_name(),
            level=level,
            active=active,
            syndicate_id=syndicate.id if syndicate else None,
            discord_login=discord_login,
        )
        db_session.session.add(player)
        db_session.session.commit()
        return player

    return _create_player


@pytest.fixture
def campaign_factory(db_session):
    """
    Factory fixture for creating Campaign rows.

    Defaults to a completed Hard campaign for all five tiers held a day ago.
    """

    def _create_campaign(
        syndicate: Syndicate,
        name: str | None = None,
        status: CampaignStatus = CampaignStatus.COMPLETED,
        difficulty: CampaignDifficulty = CampaignDifficulty.HARD,
        tiers: int = 31,
        utc_datetime: datetime | None = None,
        days_ago: float = 1,
        station: str | None = None,
        manager: Player | None = None,
    ) -> Campaign:
        campaign = Campaign(
            name=name or fake.sentence(nb_words=3),
            station=station or fake.city(),
            status=status,
            difficulty=difficulty,
            tiers=tiers,
            utc_datetime=utc_datetime or utc_now() - timedelta(days=days_ago),
            syndicate_id=syndicate.id,
            manager_id=manager.id if manager else None,
        )
        db_session.session.add(campaign)
        db_session.session.commit()
        return campaign

    return _create_campaign


@pytest.fixture
def item_factory(db_session):
    """Factory fixture for creating Item rows."""

    def _create_item(
        name: str | None = None,
        tier: int = 1,
        rarity: ItemRarity = ItemRarity.RARE,
        slug: str | None = None,
        item_type: ItemType = ItemType.WEAPON,
    ) -> Item:
        name = name or fake.unique.word().title()
        item = Item(
            slug=slug or name.lower().replace(" ", "-"),
            name=name,
            tier=tier,
            type=item_type,
            rarity=rarity,
        )
        db_session.session.add(item)
        db_session.session.commit()
        return item

    return _create_item


@pytest.fixture
def loot_factory(db_session, item_factory):
    """Factory fixture for creating CampaignLoot rows (with a fresh item when none is given)."""

    def _create_loot(
        campaign: Campaign,
        item: Item | None = None,
        status: CampaignLootStatus = CampaignLootStatus.UNDISTRIBUTED,
        holder: Player | None = None,
    ) -> CampaignLoot:
        loot = CampaignLoot(
            campaign_id=campaign.id,
            item_id=(item or item_factory()).id,
            status=status,
            holder_id=holder.id if holder else None,
        )
        db_session.session.add(loot)
        db_session.session.commit()
        return loot

    return _create_loot


@pytest.fixture
def attend(db_session):
    """Record attendance: ``attend(campaign, player, ...)``."""

    def _attend(campaign: Campaign, *players: Player) -> None:
        for player in players:
            db_session.session.add(
                CampaignAttendance(campaign_id=campaign.id, player_id=player.id)
            )
        db_session.session.commit()

    return _attend


# -----------------------------------------------------------------------------
# Scenario Fixtures
# -----------------------------------------------------------------------------

@pytest.fixture
def syndicate(syndicate_factory) -> Syndicate:
    return syndicate_factory(tag="TAU", name="Tau Station Syndicate")


@pytest.fixture
def other_syndicate(syndicate_factory) -> Syndicate:
    return syndicate_factory(tag="OTH", name="Other Syndicate")


@pytest.fixture
def leader(player_factory, syndicate) -> Player:
    """Level 25 (tier 5) player of the main syndicate."""
    return player_factory(syndicate, name="Leader", level=25)


@pytest.fixture
def outsider(player_factory, other_syndicate) -> Player:
    """Player of another syndicate."""
    return player_factory(other_syndicate, name="Outsider", level=25)


# -----------------------------------------------------------------------------
# API Helper Fixtures
# -----------------------------------------------------------------------------

@pytest.fixture
def token_for(app):
    """Build a valid token for a player: ``token_for(player)``."""

    def _token_for(player: Player) -> str:
        return create_test_token(
            app.config["JWT_SECRET_KEY"],
            player_id=player.id,
            syndicate_id=player.syndicate_id,
        )

    return _token_for


@pytest.fixture
def api_headers(token_for, leader) -> dict[str, str]:
    """Authorization and JSON headers for the leader."""
    return auth_headers(token_for(leader))


@pytest.fixture
def mock_item_client(app, item_client, monkeypatch):
    """Swap the application's item database client for the mock."""
    monkeypatch.setitem(app.extensions, "item_client", item_client)
    return item_client
