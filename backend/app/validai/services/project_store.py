"""ValidAI - Project Store

项目记录存储：按项目 ID 整体替换写入（后写覆盖，无乐观锁）
"""
from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.orm import Session

from validai.database.models import ProjectRecord
from validai.models.project_schemas import ValidationProject

logger = logging.getLogger(__name__)


class ProjectNotFoundError(LookupError):
    """项目不存在"""
    pass


class ProjectStore:
    """项目记录存储"""

    def __init__(self, db: Session):
        self.db = db

    def save(self, project: ValidationProject) -> ValidationProject:
        """
        保存项目（不存在则创建，存在则整体替换）

        Args:
            project: 验证项目

        Returns:
            保存的项目
        """
        record = self.db.query(ProjectRecord).filter(ProjectRecord.id == project.id).first()
        if record is None:
            record = ProjectRecord(id=project.id, created_at=project.created_at)
            self.db.add(record)

        record.name = project.name
        record.status = project.status.value
        record.data = project.to_record()

        self.db.commit()
        logger.debug(f"项目已保存: {project.id} ({project.status.value})")
        return project

    def get(self, project_id: str) -> Optional[ValidationProject]:
        record = self.db.query(ProjectRecord).filter(ProjectRecord.id == project_id).first()
        if record is None:
            return None
        return ValidationProject.model_validate(record.data)

    def require(self, project_id: str) -> ValidationProject:
        project = self.get(project_id)
        if project is None:
            raise ProjectNotFoundError(project_id)
        return project

    def list_all(self) -> list[ValidationProject]:
        """全部项目（最新在前）"""
        records = self.db.query(ProjectRecord).order_by(ProjectRecord.created_at.desc()).all()
        return [ValidationProject.model_validate(r.data) for r in records]

    def delete(self, project_id: str) -> bool:
        record = self.db.query(ProjectRecord).filter(ProjectRecord.id == project_id).first()
        if record is None:
            return False
        self.db.delete(record)
        self.db.commit()
        return True
