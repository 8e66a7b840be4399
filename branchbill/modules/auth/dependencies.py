"""
Authentication dependencies for FastAPI.

Tokens are issued by the session service; the billing API only verifies
them and trusts the role and principal they carry.
"""
from uuid import UUID
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
import jwt

from branchbill.modules.auth.schemas import AuthContext
from branchbill.modules.auth.utils import decode_access_token

# Security scheme
security = HTTPBearer()

STAFF_ROLES = ["admin", "staff"]
ADMIN_ROLES = ["admin"]
CUSTOMER_ROLES = ["customer"]


class AuthDependencies:
    """Reusable authentication dependencies."""

    @staticmethod
    def get_auth_context(
        credentials: HTTPAuthorizationCredentials = Depends(security)
    ) -> AuthContext:
        """Decode the bearer token into an AuthContext."""
        credentials_exception = HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

        try:
            payload = decode_access_token(credentials.credentials)
            principal_id = payload.get("sub")
            role = payload.get("role")
            if principal_id is None or role is None:
                raise credentials_exception
            customer_id = payload.get("customer_id")
            return AuthContext(
                principal_id=UUID(principal_id),
                role=role,
                customer_id=UUID(customer_id) if customer_id else None
            )
        except (jwt.PyJWTError, ValueError):
            raise credentials_exception

    @staticmethod
    def require_role(allowed_roles: list[str]):
        """
        Dependency requiring one of the given roles.
        """
        def role_checker(auth_context: AuthContext = Depends(AuthDependencies.get_auth_context)):
            if auth_context.role not in allowed_roles:
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail=f"One of these roles is required: {', '.join(allowed_roles)}"
                )
            return auth_context
        return role_checker

    @staticmethod
    def require_staff():
        return AuthDependencies.require_role(STAFF_ROLES)

    @staticmethod
    def require_admin():
        return AuthDependencies.require_role(ADMIN_ROLES)

    @staticmethod
    def require_customer():
        """Customer-portal principals must carry a customer_id claim."""
        def customer_checker(auth_context: AuthContext = Depends(AuthDependencies.require_role(CUSTOMER_ROLES))):
            if auth_context.customer_id is None:
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail="Token is not bound to a customer"
                )
            return auth_context
        return customer_checker


get_auth_context = AuthDependencies.get_auth_context
require_staff = AuthDependencies.require_staff
require_admin = AuthDependencies.require_admin
require_customer = AuthDependencies.require_customer
