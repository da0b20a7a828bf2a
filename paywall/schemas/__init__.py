"""Schema package exports."""

from .codes import CodeCreate, CodeDocument, CodeRead, CodeUpdate
from .payments import Entitlement, SubscriptionRecord
from .users import SubscriptionStatus, User, UserRead
