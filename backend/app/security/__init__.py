# Security module
from app.security.auth import (
    get_password_hash, verify_password, create_access_token,
    get_current_user, require_role, require_manager, require_receptionist_or_manager
)

__all__ = [
    'get_password_hash', 'verify_password', 'create_access_token',
    'get_current_user', 'require_role', 'require_manager', 'require_receptionist_or_manager'
]
