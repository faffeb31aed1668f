"""
extensions.py — Flask extension singletons.

Initialises SQLAlchemy and marshmallow as module-level objects so they can be
imported anywhere without creating circular dependencies.

Pattern:
    1. Create the extension object here (no app attached yet).
    2. Call init_app(app) inside the app factory in app/__init__.py.
    3. Import `db` or `ma` from here wherever needed.

    from splitchat.app.extensions import db, ma

The ledger relay (relay.py) follows the same pattern but lives in its own
module because it depends on the services.
"""

from flask_marshmallow import Marshmallow
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()

# IMPORTANT: schema inheritance rule.
#   All Schema classes (in app/schemas/) must inherit from marshmallow.Schema
#   directly, NOT from ma.Schema.
#
#   ma.Schema requires an active Flask application context, and the ledger
#   core (store, gateway, client) loads wire messages through these schemas
#   with no Flask app at all. Unit tests in tests/unit/ run the same way.
#
#   Correct:
#       from marshmallow import Schema, fields
#       class ExpenseSchema(Schema): ...
#
#   Incorrect:
#       class ExpenseSchema(ma.Schema): ...   # breaks the ledger core
ma = Marshmallow()
