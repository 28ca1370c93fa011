from fastapi import Depends

from salesdesk.core.auth import get_current_user
from salesdesk.core.context import CallerContext
from salesdesk.core.errors import AuthorizationError
from salesdesk.metrics import observe_scope_denied


def require_admin(caller: CallerContext = Depends(get_current_user)) -> CallerContext:
    if not caller.is_admin:
        observe_scope_denied("admin")
        raise AuthorizationError("Access denied. Admin role required.")
    return caller
