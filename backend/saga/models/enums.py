"""
Heimursaga API — Domain Enumerations
======================================

String enums persisted as plain VARCHAR columns. Values are part of the
public API (clients send and receive them), so never rename a value.
"""

import enum


class UserRole(str, enum.Enum):
    ADMIN = "admin"
    # Explorer Pro
    CREATOR = "creator"
    USER = "user"


class EntryType(str, enum.Enum):
    STANDARD = "standard"
    PHOTO_ESSAY = "photo-essay"
    DATA_LOG = "data-log"
    WAYPOINT = "waypoint"


class Visibility(str, enum.Enum):
    PUBLIC = "public"
    SPONSORS_ONLY = "sponsors-only"
    PRIVATE = "private"


class ExpeditionStatus(str, enum.Enum):
    PLANNED = "planned"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# Statuses that keep an explorer out of "resting"
LIVE_EXPEDITION_STATUSES = (ExpeditionStatus.PLANNED.value, ExpeditionStatus.ACTIVE.value)


class CheckoutStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELED = "canceled"
    REQUIRES_ACTION = "requires_action"


class PayoutStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELED = "canceled"


class SponsorshipStatus(str, enum.Enum):
    PENDING = "pending"
    ACTIVE = "active"
    CONFIRMED = "confirmed"
    CANCELED = "canceled"
    PAUSED = "paused"
    PAST_DUE = "past_due"
    UNPAID = "unpaid"


class SponsorshipType(str, enum.Enum):
    ONE_TIME_PAYMENT = "one_time_payment"
    SUBSCRIPTION = "subscription"


class TierType(str, enum.Enum):
    ONE_TIME = "ONE_TIME"
    MONTHLY = "MONTHLY"


class PaymentTransactionType(str, enum.Enum):
    SPONSORSHIP = "sponsorship"
    SUBSCRIPTION = "subscription"


class PlanPeriod(str, enum.Enum):
    MONTH = "month"
    YEAR = "year"


class SubscriptionStatus(str, enum.Enum):
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELED = "canceled"


class NotificationContext(str, enum.Enum):
    LIKE = "like"
    FOLLOW = "follow"
    SPONSORSHIP = "sponsorship"
    COMMENT = "comment"
    COMMENT_REPLY = "comment_reply"


class PayoutMethodPlatform(str, enum.Enum):
    STRIPE = "stripe"
    PAYPAL = "paypal"


class FlagCategory(str, enum.Enum):
    AI_GENERATED_CONTENT = "ai_generated_content"
    OBSCENE_LANGUAGE = "obscene_language"
    SEXUALLY_EXPLICIT = "sexually_explicit"
    GRAPHIC_VIOLENCE = "graphic_violence"
    POLITICAL_CONTENT = "political_content"
    UNAUTHORIZED_MARKETING = "unauthorized_marketing"
    PLAGIARISM = "plagiarism"
    SPAM = "spam"
    COPYRIGHT_VIOLATION = "copyright_violation"
    HARASSMENT = "harassment"
    AI_GENERATED_IMAGES = "ai_generated_images"
    SEXUALLY_GRAPHIC_MEDIA = "sexually_graphic_media"
    VIOLENCE_GORE_IMAGERY = "violence_gore_imagery"
    COMMERCIAL_BRANDING = "commercial_branding"
    PRIVACY_VIOLATION = "privacy_violation"


class FlagStatus(str, enum.Enum):
    PENDING = "pending"
    REVIEWED = "reviewed"
    DISMISSED = "dismissed"
    ACTION_TAKEN = "action_taken"


class FlagActionType(str, enum.Enum):
    CONTENT_DELETED = "content_deleted"
    USER_WARNED = "user_warned"
    USER_BLOCKED = "user_blocked"
    NO_ACTION = "no_action"


class VerificationType(str, enum.Enum):
    PASSWORD_RESET = "password_reset"
    EMAIL_VERIFICATION = "email_verification"


class UploadContext(str, enum.Enum):
    USER = "user"
    ENTRY = "entry"
    EXPEDITION = "expedition"
