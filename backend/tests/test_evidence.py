"""占位截图测试"""
import io

from PIL import Image

from validai.models.project_schemas import EvidenceKind, TestCaseStatus
from validai.services.evidence import HEIGHT, WIDTH, decode_evidence, render_placeholder


def test_placeholder_is_png_data_url():
    evidence = render_placeholder(TestCaseStatus.FAILED, "Login case", 2, "Button is not clickable")

    assert evidence.kind == EvidenceKind.SYNTHETIC_PLACEHOLDER
    assert evidence.media_type == "image/png"
    assert evidence.data_url.startswith("data:image/png;base64,")


def test_decoded_image_size():
    evidence = render_placeholder(TestCaseStatus.PASSED, "A very long test case title that will be truncated")
    image = Image.open(io.BytesIO(decode_evidence(evidence)))

    assert image.format == "PNG"
    assert image.size == (WIDTH, HEIGHT)
