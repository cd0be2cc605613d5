from enum import Enum


class AuditCategory(str, Enum):
    PERMISSION = "permission"
    DELIVERY = "delivery"
    SETTINGS = "settings"
    SYSTEM = "system"
