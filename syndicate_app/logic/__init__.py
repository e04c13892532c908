"""
Business-logic services for the Syndicate Manager application.

Each service wraps one SQLAlchemy session:
- campaign: campaign scheduling, signups, attendance and loot registration
- loot: distribution list and loot request workflow
- integration: Discord officer list
- internal: item imports from the item database
"""

from .campaign import CampaignLogic
from .integration import IntegrationLogic
from .internal import InternalLogic
from .loot import LootLogic

__all__ = ["CampaignLogic", "IntegrationLogic", "InternalLogic", "LootLogic"]
