"""ValidAI - Evidence

模拟执行的占位截图（Pillow 绘制 640x360 PNG，data URL 形式）
"""
from __future__ import annotations

import base64
import io
from datetime import datetime, timezone
from typing import Optional

from PIL import Image, ImageDraw, ImageFont

from validai.models.project_schemas import Evidence, EvidenceKind, TestCaseStatus

WIDTH, HEIGHT = 640, 360

_BACKGROUND = {
    TestCaseStatus.PASSED: "#f0fdf4",
    TestCaseStatus.FAILED: "#fef2f2",
}
_STATUS_COLOR = {
    TestCaseStatus.PASSED: "#15803d",
    TestCaseStatus.FAILED: "#b91c1c",
}


def _truncate(text: str, limit: int) -> str:
    return text if len(text) <= limit else f"{text[:limit]}..."


def render_placeholder(
    status: TestCaseStatus,
    title: str,
    failed_step: Optional[int] = None,
    reason: Optional[str] = None,
) -> Evidence:
    """
    绘制占位截图

    Args:
        status: 最终状态（PASSED/FAILED）
        title: 用例标题
        failed_step: 失败步骤编号
        reason: 失败原因

    Returns:
        Evidence（kind=synthetic-placeholder）
    """
    captured_at = datetime.now(timezone.utc)
    image = Image.new("RGB", (WIDTH, HEIGHT), _BACKGROUND.get(status, "#f8fafc"))
    draw = ImageDraw.Draw(image)
    font = ImageFont.load_default()

    # 页面头部
    draw.rectangle((0, 0, WIDTH, 40), fill="#1e293b")

    draw.text((40, 90), f"Test: {_truncate(title, 30)}", fill="#334155", font=font)
    draw.text((40, 130), f"Status: {status.value}", fill=_STATUS_COLOR.get(status, "#334155"), font=font)

    if failed_step:
        draw.text(
            (40, 165),
            f"Failed at Step {failed_step}: {_truncate(reason or '', 30)}",
            fill="#b91c1c",
            font=font,
        )

    draw.text((40, 315), f"Timestamp: {captured_at.isoformat()}", fill="#94a3b8", font=font)

    # 模拟表单控件
    draw.rectangle((40, 200, 240, 230), fill="#e2e8f0")
    draw.rectangle((40, 240, 240, 270), fill="#e2e8f0")
    draw.rectangle((260, 240, 360, 270), fill="#3b82f6")

    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    encoded = base64.b64encode(buffer.getvalue()).decode("ascii")

    return Evidence(
        kind=EvidenceKind.SYNTHETIC_PLACEHOLDER,
        media_type="image/png",
        data_url=f"data:image/png;base64,{encoded}",
        captured_at=captured_at,
    )


def decode_evidence(evidence: Evidence) -> bytes:
    """取出 data URL 中的图片字节"""
    _, _, payload = evidence.data_url.partition(",")
    return base64.b64decode(payload)
