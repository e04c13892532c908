"""
Discord integration logic.

Maintains the list of Discord logins allowed to issue officer commands
to the syndicate bot.
"""

from __future__ import annotations

import logging

from sqlalchemy import select

from ..models import DiscordOfficer

logger = logging.getLogger(__name__)


class IntegrationLogic:
    """Discord officer list operations bound to one database session."""

    def __init__(self, session):
        self.session = session

    def _find_officer(self, login_name: str) -> DiscordOfficer | None:
        return self.session.scalars(
            select(DiscordOfficer).where(DiscordOfficer.login_name == login_name)
        ).first()

    def add_discord_officer(self, login_name: str) -> bool:
        """Add a login to the officer list; False if it is already there."""
        login_name = (login_name or "").strip()
        if not login_name:
            return False
        if self._find_officer(login_name) is not None:
            logger.warning("Discord officer %s already exists", login_name)
            return False

        self.session.add(DiscordOfficer(login_name=login_name))
        self.session.commit()
        logger.info("Added Discord officer %s", login_name)
        return True

    def get_discord_officer_list(self) -> list[str]:
        """Return every officer login, alphabetically."""
        return list(self.session.scalars(
            select(DiscordOfficer.login_name).order_by(DiscordOfficer.login_name)
        ).all())

    def remove_discord_officer(self, login_name: str) -> bool:
        """Remove a login from the officer list; False if it is not there."""
        officer = self._find_officer((login_name or "").strip())
        if officer is None:
            logger.warning("Discord officer %s not found", login_name)
            return False

        self.session.delete(officer)
        self.session.commit()
        logger.info("Removed Discord officer %s", login_name)
        return True
