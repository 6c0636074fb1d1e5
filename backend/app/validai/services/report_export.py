"""ValidAI - Report Export

验证报告导出：ReportLab 生成分页 PDF，失败时降级为可打印 HTML
"""
from __future__ import annotations

import html
import io
import logging
from dataclasses import dataclass
from typing import Callable

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import (
    Image,
    Paragraph,
    SimpleDocTemplate,
    Spacer,
    Table,
    TableStyle,
)

from validai.models.project_schemas import TestCase, TestCaseStatus, ValidationProject
from validai.services.evidence import decode_evidence
from validai.services.spreadsheet import file_stem

logger = logging.getLogger(__name__)


def _para(text: str) -> str:
    """Paragraph 标记转义（只转义 &、<、>）"""
    return html.escape(text, quote=False)


@dataclass(frozen=True)
class ReportSummary:
    """报告统计"""
    total: int
    passed: int
    failed: int
    pass_rate: int  # 百分比，四舍五入


@dataclass(frozen=True)
class ReportDocument:
    """导出的报告文件"""
    filename: str
    media_type: str
    content: bytes
    fallback: bool = False


def summarize(project: ValidationProject) -> ReportSummary:
    total = len(project.test_cases)
    passed = sum(1 for tc in project.test_cases if tc.status == TestCaseStatus.PASSED)
    failed = sum(1 for tc in project.test_cases if tc.status == TestCaseStatus.FAILED)
    pass_rate = int(passed * 100 / total + 0.5) if total else 0
    return ReportSummary(total=total, passed=passed, failed=failed, pass_rate=pass_rate)


def failure_text(tc: TestCase) -> str:
    if tc.failed_step_number is None:
        return tc.failure_reason or "Failed"
    return f"Step {tc.failed_step_number}: {tc.failure_reason or 'Unknown error'}"


def report_basename(project: ValidationProject) -> str:
    return f"ValidAI_Report_{file_stem(project.name)}_v{project.platform_version}"


def render_pdf(project: ValidationProject) -> bytes:
    """渲染 A4 分页 PDF"""
    buffer = io.BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        leftMargin=10 * mm,
        rightMargin=10 * mm,
        topMargin=10 * mm,
        bottomMargin=10 * mm,
        title=f"Validation Report - {project.name}",
    )
    styles = getSampleStyleSheet()
    summary = summarize(project)
    story = []

    story.append(Paragraph(f"Validation Report: {_para(project.name)}", styles["Title"]))
    story.append(Paragraph(
        f"Platform version {_para(project.platform_version)} | "
        f"Created {project.created_at.strftime('%Y-%m-%d %H:%M')} | "
        f"Status <b>{project.status.value}</b>",
        styles["Normal"],
    ))
    story.append(Spacer(1, 6 * mm))

    cards = Table(
        [
            ["Total Tests", "Passed", "Failed", "Pass Rate"],
            [summary.total, summary.passed, summary.failed, f"{summary.pass_rate}%"],
        ],
        hAlign="LEFT",
    )
    cards.setStyle(TableStyle([
        ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#1e293b")),
        ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
        ("GRID", (0, 0), (-1, -1), 0.5, colors.HexColor("#cbd5e1")),
    ]))
    story.append(cards)
    story.append(Spacer(1, 6 * mm))

    story.append(Paragraph("Requirements", styles["Heading2"]))
    req_rows = [["ID", "Type", "Priority", "Description"]]
    for req in project.requirements:
        req_rows.append([
            req.id,
            req.type.value,
            req.priority.value,
            Paragraph(_para(req.description), styles["BodyText"]),
        ])
    req_table = Table(req_rows, colWidths=[45 * mm, 40 * mm, 20 * mm, 85 * mm], repeatRows=1)
    req_table.setStyle(TableStyle([
        ("GRID", (0, 0), (-1, -1), 0.5, colors.HexColor("#cbd5e1")),
        ("VALIGN", (0, 0), (-1, -1), "TOP"),
    ]))
    story.append(req_table)
    story.append(Spacer(1, 6 * mm))

    story.append(Paragraph("Test Results", styles["Heading2"]))
    for tc in project.test_cases:
        story.append(Paragraph(
            f"<b>{_para(tc.id)}</b> {_para(tc.title)} - {tc.status.value}",
            styles["Heading4"],
        ))
        if tc.status == TestCaseStatus.FAILED:
            story.append(Paragraph(
                f"Failure: {_para(failure_text(tc))}",
                styles["BodyText"],
            ))
        for step in tc.steps:
            story.append(Paragraph(
                f"{step.step_number}. {_para(step.action)} -&gt; {_para(step.expected_result)}",
                styles["BodyText"],
            ))
        if tc.evidence is not None:
            story.append(Image(io.BytesIO(decode_evidence(tc.evidence)), width=96 * mm, height=54 * mm))
        story.append(Spacer(1, 3 * mm))

    doc.build(story)
    return buffer.getvalue()


def render_html(project: ValidationProject) -> str:
    """可打印 HTML（加载后弹出打印对话框）"""
    summary = summarize(project)
    esc = html.escape
    rows = []
    for tc in project.test_cases:
        reason = ""
        if tc.status == TestCaseStatus.FAILED:
            reason = esc(failure_text(tc))
        rows.append(
            f"<tr><td>{esc(tc.id)}</td><td>{esc(tc.title)}</td>"
            f"<td>{tc.status.value}</td><td>{reason}</td></tr>"
        )
    requirements = "".join(
        f"<li><b>{esc(r.id)}</b> [{r.type.value}, {r.priority.value}] {esc(r.description)}</li>"
        for r in project.requirements
    )
    return (
        "<!DOCTYPE html><html><head><meta charset=\"utf-8\">"
        f"<title>Validation Report - {esc(project.name)}</title></head>"
        "<body onload=\"window.print()\">"
        f"<h1>Validation Report: {esc(project.name)}</h1>"
        f"<p>Platform version {esc(project.platform_version)} | Status {project.status.value}</p>"
        f"<p>Total {summary.total} | Passed {summary.passed} | Failed {summary.failed} "
        f"| Pass Rate {summary.pass_rate}%</p>"
        f"<h2>Requirements</h2><ul>{requirements}</ul>"
        "<h2>Test Results</h2><table border=\"1\" cellpadding=\"4\">"
        "<tr><th>ID</th><th>Title</th><th>Status</th><th>Failure</th></tr>"
        f"{''.join(rows)}</table></body></html>"
    )


def export_report(
    project: ValidationProject,
    pdf_renderer: Callable[[ValidationProject], bytes] = render_pdf,
) -> ReportDocument:
    """导出报告：优先 PDF，渲染失败降级为可打印 HTML"""
    basename = report_basename(project)
    try:
        content = pdf_renderer(project)
        return ReportDocument(filename=f"{basename}.pdf", media_type="application/pdf", content=content)
    except Exception as e:
        logger.error(f"PDF 生成失败，降级为打印版 HTML: {e}")
        return ReportDocument(
            filename=f"{basename}.html",
            media_type="text/html",
            content=render_html(project).encode("utf-8"),
            fallback=True,
        )
