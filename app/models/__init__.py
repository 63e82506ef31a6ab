# Import the declarative base
from app.db.base import Base

# Import all models so they register themselves on Base.metadata
# (Alembic env.py and the test fixtures rely on this).
from app.models.users import User
from app.models.user_roles import UserRole
from app.models.bulk_edit_log import BulkEditLog
from app.models.notification import Notification
