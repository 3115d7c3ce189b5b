"""
extensions.py — Flask extension singletons.

Initialises SQLAlchemy and the two collaborator clients (push notifier and
receipt storage) as module-level objects so they can be imported anywhere
without creating circular dependencies.

Pattern:
    1. Create the extension object here (no app attached yet).
    2. Call init_app(app) inside the app factory in app/__init__.py.
    3. Import `db`, `notifier` or `receipts` from here wherever needed.

    from splitbook.app.extensions import db, notifier

Services never import this module. Routes build the per-request storage
adapter with get_store() / get_directory() and pass it, together with the
collaborators, into the service call.
"""

from flask_sqlalchemy import SQLAlchemy

from splitbook.app.services.notification_service import PushNotifier
from splitbook.app.services.receipt_service import ReceiptStorage

db = SQLAlchemy()

notifier = PushNotifier()

receipts = ReceiptStorage()


def get_store():
    """Ledger store bound to the current request's session."""
    # Imported here: the ORM models import `db` from this module.
    from splitbook.app.store.sql_store import SqlLedgerStore
    return SqlLedgerStore(db.session)


def get_directory():
    from splitbook.app.store.sql_store import SqlUserDirectory
    return SqlUserDirectory(db.session)
