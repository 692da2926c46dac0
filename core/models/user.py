# =============================================================================
# 用户模型模块
# =============================================================================
# 本模块定义了 FeedImpact 的用户模型（User）。
# 订阅源、文章、钩子、资源和日志都通过 user_id 归属到某个用户：
#   - 文章按 (guid, user_id) 去重
#   - 资源按 (hash, user_id) 去重，跨用户可复用已下载成功的资源
#   - 管理员用户的订阅源出错时，反转钩子会携带完整错误堆栈
# 认证与会话管理不在本项目范围内，因此这里不存储密码信息。
# =============================================================================

"""User model for FeedImpact."""

from __future__ import annotations

from sqlalchemy import Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from common.utils import split_string
from core.models.base import Base, TimestampMixin

# 管理员角色名
ADMIN_ROLE = "admin"


class User(Base, TimestampMixin):
    """Owner of feeds, hooks and resources."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)
    # 角色列表，逗号分隔（如 "admin,user"）
    roles: Mapped[str] = mapped_column(String(255), nullable=False, default="user")

    @property
    def role_list(self) -> list[str]:
        return split_string(self.roles)

    @property
    def is_admin(self) -> bool:
        """Whether the user holds the admin role."""
        return ADMIN_ROLE in self.role_list

    def __repr__(self) -> str:
        return f"<User(id={self.id}, username={self.username})>"
