"""
tests/unit/conftest.py — Shared setup for the DB-free unit tests.

Model classes are instantiated here without an app or database. Importing
every model module up front lets SQLAlchemy resolve the string-named
relationships ("User", "Payment", ...) the first time a mapper configures.
"""

from triobuy.app.models import group, group_member, payment, product, user  # noqa: F401
