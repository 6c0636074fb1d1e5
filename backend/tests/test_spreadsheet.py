"""需求表格导入 / 测试计划导出测试"""
import io

import pandas as pd
import pytest
from openpyxl import load_workbook

from conftest import make_project
from validai.models.project_schemas import Priority, RequirementType
from validai.services.spreadsheet import (
    EXPORT_COLUMNS,
    EXPORT_SHEET_NAME,
    SpreadsheetParseError,
    export_test_plan,
    file_stem,
    parse_requirements,
    project_name_from_filename,
    resolve_priority,
    resolve_type,
)

CSV = (
    "Description,Type,Priority\n"
    "User can reset password,User Story,HIGH\n"
    "   ,Functional,Low\n"
    "API responds under 200ms,Tech constraint,low\n"
    ",,\n"
    "Audit log records logins,,\n"
).encode("utf-8")


class TestImport:
    def test_csv_rows(self):
        requirements, name = parse_requirements(CSV, "password-reset_v2.csv")

        assert name == "Password reset v2"
        assert [r.description for r in requirements] == [
            "User can reset password",
            "API responds under 200ms",
            "Audit log records logins",
        ]
        assert requirements[0].type == RequirementType.USER
        assert requirements[0].priority == Priority.HIGH
        assert requirements[1].type == RequirementType.TECHNICAL
        assert requirements[1].priority == Priority.LOW
        assert requirements[2].type == RequirementType.FUNCTIONAL
        assert requirements[2].priority == Priority.MEDIUM

    def test_ids_are_import_scoped(self):
        requirements, _ = parse_requirements(CSV, "reqs.csv")
        assert all(r.id.startswith("REQ-IMPORT-") for r in requirements)
        assert len({r.id for r in requirements}) == len(requirements)

    def test_alternate_columns(self):
        content = "Requirement,Category\nShow order history,user facing\n".encode("utf-8")
        requirements, _ = parse_requirements(content, "orders.csv")

        assert requirements[0].description == "Show order history"
        assert requirements[0].type == RequirementType.USER

    def test_falls_back_to_first_column(self):
        content = "Summary,Owner\nExport invoices as PDF,Finance\n".encode("utf-8")
        requirements, _ = parse_requirements(content, "billing.csv")
        assert requirements[0].description == "Export invoices as PDF"

    def test_xlsx_first_sheet(self):
        buffer = io.BytesIO()
        with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
            pd.DataFrame({"Description": ["Checkout works"], "Priority": ["High"]}).to_excel(
                writer, sheet_name="Reqs", index=False
            )
            pd.DataFrame({"Description": ["Ignored"]}).to_excel(writer, sheet_name="Other", index=False)

        requirements, name = parse_requirements(buffer.getvalue(), "checkout.xlsx")

        assert name == "Checkout"
        assert [r.description for r in requirements] == ["Checkout works"]
        assert requirements[0].priority == Priority.HIGH

    def test_unsupported_extension(self):
        with pytest.raises(SpreadsheetParseError):
            parse_requirements(b"hello", "notes.txt")

    def test_unreadable_file(self):
        with pytest.raises(SpreadsheetParseError):
            parse_requirements(b"\x00\x01 not a workbook", "broken.xlsx")


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("User Requirement", RequirementType.USER),
        ("technical", RequirementType.TECHNICAL),
        ("Functional", RequirementType.FUNCTIONAL),
        ("anything", RequirementType.FUNCTIONAL),
    ],
)
def test_resolve_type(raw, expected):
    assert resolve_type(raw) == expected


@pytest.mark.parametrize("raw,expected", [("High", Priority.HIGH), ("LOW", Priority.LOW), ("p2", Priority.MEDIUM)])
def test_resolve_priority(raw, expected):
    assert resolve_priority(raw) == expected


def test_project_name_from_filename():
    assert project_name_from_filename("my_app-reqs.final.xlsx") == "My app reqs"


def test_file_stem_replaces_whitespace_and_separators():
    assert file_stem("Login / Logout\\Flow  v2") == "Login_Logout_Flow_v2"


def test_export_test_plan():
    project = make_project(case_count=2, name="Login Flow")

    content, filename = export_test_plan(project)

    assert filename == "Login_Flow_TestPlan.xlsx"
    workbook = load_workbook(io.BytesIO(content))
    sheet = workbook[EXPORT_SHEET_NAME]
    rows = list(sheet.iter_rows(values_only=True))
    assert list(rows[0]) == EXPORT_COLUMNS
    # 2 个用例 × 2 个步骤
    assert len(rows) == 5
    assert rows[1][:4] == ("TC-1-0", "REQ-1-0", "Login case 0", 1)
    assert rows[1][6] == "PENDING"
