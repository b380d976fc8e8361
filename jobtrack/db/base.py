# Import all the models, so that Base has them before being
# imported by Alembic
from jobtrack.db.base_class import Base
from jobtrack.models.rate_limit import RateLimitWindow
from jobtrack.models.scheduling import ScheduledJobRecord

__all__ = ["Base", "RateLimitWindow", "ScheduledJobRecord"]  # noqa: F401
