from .admin import (
    CleanupResponse,
    DispatchResultRead,
    PipelineLogRead,
    PipelineLogsResponse,
    NotificationTestRequest,
)
from .notification import (
    BulkUpdateResponse,
    MarkReadBySourceRequest,
    NotificationPage,
    NotificationRead,
    NotificationUpdate,
    UnreadCountRead,
)
from .realtime import HealthRead, PresenceRead

__all__ = [
    "BulkUpdateResponse",
    "CleanupResponse",
    "DispatchResultRead",
    "HealthRead",
    "MarkReadBySourceRequest",
    "NotificationPage",
    "NotificationRead",
    "NotificationUpdate",
    "PipelineLogRead",
    "PipelineLogsResponse",
    "PresenceRead",
    "NotificationTestRequest",
    "UnreadCountRead",
]
