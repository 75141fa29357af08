"""
Verification photo watermark.
Burns the capture date, time and location into the bottom of the image.
"""
import io
from datetime import datetime
from typing import List, Optional

from PIL import Image as PILImage, ImageDraw, ImageFont

from ..config import settings
from .time_rules import utc_to_local

ADDRESS_MAX_CHARS = 50
BAND_OPACITY = int(255 * 0.75)


class PhotoValidationError(ValueError):
    pass


def validate_photo(content_type: Optional[str], size_bytes: int) -> None:
    """
    Raises:
        PhotoValidationError: empty, too large or not an accepted image type
    """
    if size_bytes <= 0:
        raise PhotoValidationError("Photo is empty")
    if size_bytes > settings.upload_max_bytes:
        limit_mb = settings.upload_max_bytes / (1024 * 1024)
        raise PhotoValidationError(f"Photo exceeds the {limit_mb:g}MB limit")
    if (content_type or "").lower() not in settings.upload_allowed_types:
        raise PhotoValidationError(
            "Only " + ", ".join(t.split("/")[-1].upper() for t in settings.upload_allowed_types) + " images are accepted"
        )


def location_line(
    address: Optional[str], latitude: Optional[float] = None, longitude: Optional[float] = None
) -> Optional[str]:
    if address:
        if len(address) > ADDRESS_MAX_CHARS:
            return address[:ADDRESS_MAX_CHARS] + "..."
        return address
    if latitude is not None and longitude is not None:
        return f"Lat: {latitude:.6f}, Lng: {longitude:.6f}"
    return None


def overlay_lines(
    taken_at: datetime,
    address: Optional[str] = None,
    latitude: Optional[float] = None,
    longitude: Optional[float] = None,
    project_label: Optional[str] = None,
    timezone_str: Optional[str] = None,
) -> List[str]:
    """Text rows of the overlay, top to bottom."""
    local = utc_to_local(taken_at, timezone_str)
    lines = [
        f"Date: {local.strftime('%m/%d/%Y')}",
        f"Time: {local.strftime('%I:%M:%S %p')}",
    ]
    where = location_line(address, latitude, longitude)
    if where:
        lines.append(where)
    if project_label:
        lines.append(f"Project: {project_label}")
    return lines


def _font(size: int, bold: bool = False):
    name = "DejaVuSans-Bold.ttf" if bold else "DejaVuSans.ttf"
    try:
        return ImageFont.truetype(name, size)
    except OSError:
        return ImageFont.load_default()


def render_watermark(
    content: bytes,
    taken_at: datetime,
    address: Optional[str] = None,
    latitude: Optional[float] = None,
    longitude: Optional[float] = None,
    project_label: Optional[str] = None,
    timezone_str: Optional[str] = None,
) -> bytes:
    """
    Return JPEG bytes of the photo with a translucent info band along the bottom.

    Date and time rows use a bold 18px face, location and project rows 14px, both
    scaled with the image width. The original dimensions are preserved.
    """
    lines = overlay_lines(taken_at, address, latitude, longitude, project_label, timezone_str)

    im = PILImage.open(io.BytesIO(content))
    try:
        base = im.convert("RGBA")
    finally:
        im.close()

    scale = max(1.0, base.width / 1000.0)
    margin = int(10 * scale)
    line_h = int(25 * scale)
    band_h = min(base.height - margin, line_h * len(lines) + int(15 * scale))
    band_top = base.height - band_h - margin

    overlay = PILImage.new("RGBA", base.size, (0, 0, 0, 0))
    draw = ImageDraw.Draw(overlay)
    draw.rectangle(
        [margin, band_top, base.width - margin, base.height - margin],
        fill=(0, 0, 0, BAND_OPACITY),
    )

    y = band_top + int(8 * scale)
    for idx, text in enumerate(lines):
        bold = idx < 2
        font = _font(int((18 if bold else 14) * scale), bold=bold)
        draw.text((margin * 2, y), text, fill=(255, 255, 255, 255), font=font)
        y += line_h

    out = io.BytesIO()
    PILImage.alpha_composite(base, overlay).convert("RGB").save(out, format="JPEG", quality=90)
    return out.getvalue()


def watermark_filename(taken_at_ms: int) -> str:
    return f"attendance_{taken_at_ms}.jpg"
