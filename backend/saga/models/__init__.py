"""
Heimursaga API — ORM Models
=============================

Importing this package registers every table on `Base.metadata`
(Alembic autogenerate and string-based relationship resolution rely on it).
"""

from saga.models.user import (  # noqa: F401
    EmailVerification,
    ExplorerBookmark,
    User,
    UserFollow,
    UserSession,
)
from saga.models.expedition import (  # noqa: F401
    Expedition,
    ExpeditionBookmark,
    ExpeditionNote,
    ExpeditionNoteReply,
    Waypoint,
)
from saga.models.entry import Comment, Entry, EntryBookmark, EntryLike  # noqa: F401
from saga.models.sponsorship import (  # noqa: F401
    Checkout,
    PaymentMethod,
    Sponsorship,
    SponsorshipTier,
    Subscription,
)
from saga.models.payout import Payout, PayoutMethod  # noqa: F401
from saga.models.notification import Message, Notification  # noqa: F401
from saga.models.flag import Flag  # noqa: F401
from saga.models.upload import Upload  # noqa: F401
from saga.models.webhook import ProcessedWebhookEvent  # noqa: F401
