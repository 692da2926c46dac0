# =============================================================================
# 模块: apps/resource/models.py
# 功能: 资源模型定义（下载的文件、添加到 BitTorrent 客户端的种子/磁力链接）
# 架构角色: 内容寻址去重存储。文件按 MD5、种子按 info-hash 去重：
#   - 同一用户内 (hash, user_id) 唯一
#   - 任意用户已成功获取的资源可以复制一条轻量记录给新用户，而无需重新下载
# 状态流转: unknown -> success / fail / skip；超出磁盘或大小限制时可被回溯标记为 skip
# =============================================================================

"""Resource model for FeedImpact."""

from __future__ import annotations

import enum

from sqlalchemy import BigInteger, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from core.models.base import Base, TimestampMixin

# 种子/磁力资源的固定类型
BIT_TORRENT_MIME = "application/x-bittorrent"


class ResourceStatus(str, enum.Enum):
    UNKNOWN = "unknown"
    SUCCESS = "success"
    FAIL = "fail"
    SKIP = "skip"


class Resource(Base, TimestampMixin):
    """A downloaded file or acquired torrent."""

    __tablename__ = "resources"
    __table_args__ = (
        UniqueConstraint("hash", "user_id", name="uq_resources_hash_user"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    url: Mapped[str] = mapped_column(String(4096), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(1024), nullable=False, default="")
    # 本地文件路径，磁力/种子资源与跨用户复制的资源为空字符串
    path: Mapped[str] = mapped_column(String(2048), nullable=False, default="")
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=ResourceStatus.UNKNOWN.value)
    size: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    type: Mapped[str | None] = mapped_column(String(128), nullable=True)
    # 内容哈希：文件为 MD5，种子为 info-hash；未知时为空，不参与唯一约束
    hash: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)

    def __repr__(self) -> str:
        return f"<Resource(id={self.id}, hash={self.hash}, status={self.status})>"
