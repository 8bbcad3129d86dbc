"""Resize and legacy-format encoding for the in-process converter."""
import io
import logging
from typing import Optional

from PIL import Image

from retroportal.conversion.models import ImageFormat

logger = logging.getLogger("retroportal.resize")


def resize_to_box(img: Image.Image, target_width: int, target_height: int) -> Image.Image:
    """
    Scale image to fit inside (target_width, target_height), maintaining aspect ratio.
    Same geometry as ImageMagick's -resize WxH: smaller images are enlarged.
    """
    w, h = img.size
    scale = min(target_width / w, target_height / h)
    new_w = max(1, int(round(w * scale)))
    new_h = max(1, int(round(h * scale)))
    if (new_w, new_h) == (w, h):
        return img.copy()
    return img.resize((new_w, new_h), Image.Resampling.LANCZOS)


def _flatten(img: Image.Image) -> Image.Image:
    """Composite transparency onto white; legacy formats have no alpha."""
    if img.mode in ("RGBA", "LA") or (img.mode == "P" and "transparency" in img.info):
        rgba = img.convert("RGBA")
        background = Image.new("RGB", rgba.size, (255, 255, 255))
        background.paste(rgba, mask=rgba.getchannel("A"))
        return background
    if img.mode not in ("RGB", "L"):
        return img.convert("RGB")
    return img


def _wbmp_int(value: int) -> bytes:
    """WBMP multi-byte integer: 7 bits per byte, high bit set on all but the last."""
    out = [value & 0x7F]
    value >>= 7
    while value:
        out.append(0x80 | (value & 0x7F))
        value >>= 7
    return bytes(reversed(out))


def encode_wbmp(img: Image.Image) -> bytes:
    """Type 0 WBMP: monochrome, rows padded to whole bytes, 1 = white."""
    mono = _flatten(img).convert("1")
    width, height = mono.size
    # PIL packs mode "1" MSB first with 1 for white, which is the WBMP layout
    return b"\x00\x00" + _wbmp_int(width) + _wbmp_int(height) + mono.tobytes()


def encode_image(img: Image.Image, fmt: ImageFormat, size: Optional[tuple[int, int]] = None) -> bytes:
    work = _flatten(img)
    if size:
        work = resize_to_box(work, size[0], size[1])
    if fmt == ImageFormat.WBMP:
        return encode_wbmp(work)
    buf = io.BytesIO()
    work.save(buf, format="GIF")
    logger.debug("Encoded %s %sx%s", fmt.value, work.width, work.height)
    return buf.getvalue()
