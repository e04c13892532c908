"""
API test package for the Syndicate Manager.

Tests use the Flask test client and cover:
- Authentication and authorization
- Campaign, loot, officer and item endpoints
- Error responses
"""
