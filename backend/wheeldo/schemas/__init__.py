from wheeldo.schemas.task import (
    Location,
    TaskCreate,
    TaskUpdate,
    TaskStatusUpdate,
    TaskRead,
    TaskDetail,
    TaskCreated,
    StatusChangeRead,
)
from wheeldo.schemas.category import CategoryCreate, CategoryUpdate, CategoryRead
from wheeldo.schemas.sharing import (
    InviteCreate,
    InviteRead,
    InviteCreated,
    InviterRead,
    InvitePreview,
    InviteAccepted,
    UserSummary,
    CollaboratorRead,
    CollaboratorList,
    CollaboratorPermissionUpdate,
)
from wheeldo.schemas.notification import (
    NotificationRead,
    NotificationList,
    MarkNotificationsRead,
    CountResult,
)

__all__ = [
    "Location",
    "TaskCreate",
    "TaskUpdate",
    "TaskStatusUpdate",
    "TaskRead",
    "TaskDetail",
    "TaskCreated",
    "StatusChangeRead",
    "CategoryCreate",
    "CategoryUpdate",
    "CategoryRead",
    "InviteCreate",
    "InviteRead",
    "InviteCreated",
    "InviterRead",
    "InvitePreview",
    "InviteAccepted",
    "UserSummary",
    "CollaboratorRead",
    "CollaboratorList",
    "CollaboratorPermissionUpdate",
    "NotificationRead",
    "NotificationList",
    "MarkNotificationsRead",
    "CountResult",
]
