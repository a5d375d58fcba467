"""
extensions.py — Flask extension singletons.

SQLAlchemy and marshmallow are created here without an app and bound in the
factory via init_app(app), so each test run can build its own isolated app
and database.

    from triobuy.app.extensions import db, ma
"""

from flask_marshmallow import Marshmallow
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()

# Schema classes in app/schemas/ inherit from marshmallow.Schema directly, not
# ma.Schema: ma.Schema needs an application context and the unit tests in
# tests/unit/ run without one.
ma = Marshmallow()
