"""验证报告导出测试"""
from conftest import make_project
from validai.models.project_schemas import TestCaseStatus
from validai.services.evidence import render_placeholder
from validai.services.report_export import export_report, render_html, summarize


def _executed_project():
    project = make_project(case_count=3, name="Login Flow", platform_version="2.1.0")
    cases = list(project.test_cases)
    cases[0] = cases[0].model_copy(update={"status": TestCaseStatus.PASSED})
    cases[1] = cases[1].model_copy(update={
        "status": TestCaseStatus.FAILED,
        "failed_step_number": 1,
        "failure_reason": "Element not found within timeout",
        "evidence": render_placeholder(TestCaseStatus.FAILED, "Login case 1", 1, "Element not found within timeout"),
    })
    cases[2] = cases[2].model_copy(update={"status": TestCaseStatus.PASSED})
    return project.model_copy(update={"test_cases": cases})


def test_summary():
    summary = summarize(_executed_project())

    assert summary.total == 3
    assert summary.passed == 2
    assert summary.failed == 1
    assert summary.pass_rate == 67


def test_summary_empty_project():
    assert summarize(make_project(case_count=0)).pass_rate == 0


def test_pdf_export():
    document = export_report(_executed_project())

    assert document.filename == "ValidAI_Report_Login_Flow_v2.1.0.pdf"
    assert document.media_type == "application/pdf"
    assert document.content.startswith(b"%PDF")
    assert not document.fallback


def test_falls_back_to_html_when_pdf_fails():
    def broken(_project):
        raise RuntimeError("renderer crashed")

    document = export_report(_executed_project(), pdf_renderer=broken)

    assert document.fallback
    assert document.filename == "ValidAI_Report_Login_Flow_v2.1.0.html"
    assert document.media_type == "text/html"
    assert b"window.print()" in document.content


def test_html_escapes_content():
    project = make_project(name="<script>alert(1)</script>")
    assert "<script>alert(1)</script>" not in render_html(project)
