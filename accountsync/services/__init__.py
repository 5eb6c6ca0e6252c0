from .inventory import InventoryService
from .observer import StateObserver
from .users import UserReconciler
from .groups import GroupReconciler
from .sessions import SessionManager, session_manager
