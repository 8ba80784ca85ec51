from sharegate.permissions.cache import PermissionCache
from sharegate.permissions.resolver import PermissionResolver, permission_resolver

__all__ = ["PermissionCache", "PermissionResolver", "permission_resolver"]
