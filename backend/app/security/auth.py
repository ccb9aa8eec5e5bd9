"""
认证与授权模块
JWT Bearer 认证 + 基于员工角色的接口权限
"""
import bcrypt
import logging
from datetime import datetime, timedelta, UTC
from typing import List
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt
from sqlalchemy.orm import Session
from app.config import settings
from app.database import get_db
from app.models.ontology import Employee, EmployeeRole

logger = logging.getLogger(__name__)

security = HTTPBearer()


def get_password_hash(password: str) -> str:
    """密码哈希"""
    salt = bcrypt.gensalt()
    return bcrypt.hashpw(password.encode('utf-8'), salt).decode('utf-8')


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """验证密码"""
    return bcrypt.checkpw(plain_password.encode('utf-8'), hashed_password.encode('utf-8'))


def create_access_token(employee_id: int, role: EmployeeRole) -> str:
    """创建 JWT token"""
    expire = datetime.now(UTC) + timedelta(hours=settings.ACCESS_TOKEN_EXPIRE_HOURS)
    to_encode = {
        "sub": str(employee_id),
        "role": role.value if isinstance(role, EmployeeRole) else str(role),
        "exp": expire
    }
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_token(token: str) -> dict:
    """解码 JWT token"""
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="无效的认证凭证"
        )


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db)
) -> Employee:
    """获取当前登录用户"""
    payload = decode_token(credentials.credentials)

    try:
        employee_id = int(payload.get("sub"))
    except (TypeError, ValueError):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="无效的认证凭证"
        )
    employee = db.query(Employee).filter(Employee.id == employee_id).first()

    if not employee:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="用户不存在"
        )

    if not employee.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="账号已停用"
        )

    return employee


def require_role(allowed_roles: List[EmployeeRole]):
    """角色权限验证"""
    async def role_checker(current_user: Employee = Depends(get_current_user)):
        if current_user.role not in allowed_roles:
            logger.warning(f"Permission denied for {current_user.username} ({current_user.role})")
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="权限不足"
            )
        return current_user
    return role_checker


# 夜审、关账、税率维护需要经理；收款、入账前台即可
require_manager = require_role([EmployeeRole.MANAGER])
require_receptionist_or_manager = require_role([EmployeeRole.MANAGER, EmployeeRole.RECEPTIONIST])
