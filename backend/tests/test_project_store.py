"""项目记录存储测试"""
from datetime import datetime, timedelta, timezone

import pytest

from conftest import make_project
from validai.database.models import ProjectRecord
from validai.models.project_schemas import ProjectStatus
from validai.services.project_store import ProjectNotFoundError, ProjectStore


def test_save_and_get(db):
    store = ProjectStore(db)
    project = make_project()

    store.save(project)
    loaded = store.get(project.id)

    assert loaded == project


def test_record_uses_camel_case_layout(db):
    ProjectStore(db).save(make_project())

    record = db.query(ProjectRecord).filter(ProjectRecord.id == "PROJ-1").first()

    assert record.name == "Login Flow"
    assert record.status == "Draft"
    assert record.data["platformVersion"] == "1.0.0"
    assert record.data["testCases"][0]["requirementId"] == "REQ-1-0"
    assert record.data["testCases"][0]["steps"][0]["expectedResult"] == "Form is shown"


def test_save_replaces_whole_record(db):
    store = ProjectStore(db)
    project = make_project(case_count=2)
    store.save(project)

    store.save(project.model_copy(update={"test_cases": [], "status": ProjectStatus.IN_PROGRESS}))

    loaded = store.require(project.id)
    assert loaded.test_cases == []
    assert loaded.status == ProjectStatus.IN_PROGRESS
    assert db.query(ProjectRecord).count() == 1


def test_list_newest_first(db):
    store = ProjectStore(db)
    now = datetime.now(timezone.utc)
    store.save(make_project(id="PROJ-old", created_at=now - timedelta(days=1)))
    store.save(make_project(id="PROJ-new", created_at=now))

    assert [p.id for p in store.list_all()] == ["PROJ-new", "PROJ-old"]


def test_require_missing(db):
    with pytest.raises(ProjectNotFoundError):
        ProjectStore(db).require("PROJ-404")


def test_delete(db):
    store = ProjectStore(db)
    store.save(make_project())

    assert store.delete("PROJ-1") is True
    assert store.get("PROJ-1") is None
    assert store.delete("PROJ-1") is False
