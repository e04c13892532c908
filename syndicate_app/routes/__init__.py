"""
Routes package for the Syndicate Manager application.

This package contains route blueprints:
- api: JSON endpoints over the campaign, loot, officer and item logic
"""
