from rest_framework.permissions import BasePermission, SAFE_METHODS

ADMINISTRATOR = 'Administrator'
MANAGER = 'Manager'
STAFF = 'Staff'


class IsManagerOrReadOnly(BasePermission):
    """
    Any authenticated user may read; only Administrator and Manager roles may
    mutate master data (suppliers, categories, warehouses, products).
    """
    message = 'Only Administrator or Manager roles can modify this resource.'

    def has_permission(self, request, view):
        user = request.user
        if not user or not user.is_authenticated:
            return False
        if request.method in SAFE_METHODS:
            return True
        return user.has_role(ADMINISTRATOR, MANAGER)


class IsManager(BasePermission):
    message = 'Only Administrator or Manager roles can access this resource.'

    def has_permission(self, request, view):
        user = request.user
        return bool(user and user.is_authenticated and user.has_role(ADMINISTRATOR, MANAGER))
