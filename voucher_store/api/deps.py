from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from voucher_store.core.security import ANONYMOUS, Caller, decode_access_token
from voucher_store.errors import AuthError, ForbiddenError

security = HTTPBearer(auto_error=False)


def get_caller(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> Caller:
    """Anonymous shoppers are individuals; a presented token must be valid."""
    if not credentials:
        return ANONYMOUS
    caller = decode_access_token(credentials.credentials)
    if caller is None:
        raise AuthError("Invalid or expired token", "رمز الدخول غير صالح أو منتهي الصلاحية")
    return caller


def require_admin(caller: Caller = Depends(get_caller)) -> Caller:
    if caller is ANONYMOUS:
        raise AuthError("Login required", "يجب تسجيل الدخول")
    if not caller.is_admin:
        raise ForbiddenError("Admin access required", "صلاحية المسؤول مطلوبة")
    return caller
