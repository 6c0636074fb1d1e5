"""ValidAI - Database Models

SQLAlchemy 数据模型定义

每个验证项目对应一条记录，data 列保存完整的项目结构（整体替换写入），
name/status/created_at 为列表展示冗余字段。
"""
from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, JSON, String

from validai.database.config import Base


class ProjectRecord(Base):
    """验证项目记录"""
    __tablename__ = "project_records"

    id = Column(String(64), primary_key=True)  # PROJ-<ms> / PROJ-IMPORT-<ms>
    name = Column(String(255), nullable=False)
    status = Column(String(32), nullable=False, index=True)
    data = Column(JSON, nullable=False, default=dict)  # 完整 ValidationProject（camelCase）
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))
