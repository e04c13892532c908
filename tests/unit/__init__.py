"""Unit tests for models, helpers, the item database client and business logic."""
