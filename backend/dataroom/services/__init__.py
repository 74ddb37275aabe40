from .inventory_store import InventoryStore
from .blob_store import BlobStore
from .inventory import InventoryService
from .upload import UploadService
from .analytics import EventLog, AnalyticsAggregator
from .users import UserDirectory
from .sessions import SessionManager

__all__ = [
    'InventoryStore',
    'BlobStore',
    'InventoryService',
    'UploadService',
    'EventLog',
    'AnalyticsAggregator',
    'UserDirectory',
    'SessionManager',
]
