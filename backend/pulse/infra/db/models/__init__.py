"""Database models."""
from pulse.infra.db.models.tokens import UserTokensModel, MissingTokenModel
from pulse.infra.db.models.notification import NotificationRecordModel, NotificationStatusModel
from pulse.infra.db.models.tracking import NotificationMarkerModel, MemberTrackingModel
from pulse.infra.db.models.failure import FailedNotificationModel
from pulse.infra.db.models.user import UserModel, UserProfileModel

__all__ = [
    "UserTokensModel",
    "MissingTokenModel",
    "NotificationRecordModel",
    "NotificationStatusModel",
    "NotificationMarkerModel",
    "MemberTrackingModel",
    "FailedNotificationModel",
    "UserModel",
    "UserProfileModel",
]
