import base64
import logging
import os
import tempfile
from contextlib import contextmanager
from pathlib import Path

from PIL import Image, ImageOps

# Large panoramas are downscaled right after opening
Image.MAX_IMAGE_PIXELS = None

from config import RESIZE_MAX_SIZE, TEMP_PREFIX

logger = logging.getLogger(__name__)

_heif_registered = False


def register_heif() -> None:
    """Register HEIF/HEIC opener with Pillow (idempotent)."""
    global _heif_registered
    if _heif_registered:
        return
    try:
        from pillow_heif import register_heif_opener

        register_heif_opener()
        _heif_registered = True
        logger.info("HEIF support registered")
    except ImportError:
        logger.warning("pillow-heif not installed; HEIF/HEIC files will be skipped")


def resize_image(source: Path, dest: Path, max_size: int) -> Path:
    """Downscale so the longest edge is ``max_size``, keeping aspect ratio."""
    register_heif()
    with Image.open(source) as img:
        img = ImageOps.exif_transpose(img)
        if img.mode not in ("RGB", "L"):
            img = img.convert("RGB")
        img.thumbnail((max_size, max_size), Image.LANCZOS)
        fmt = "PNG" if dest.suffix.lower() == ".png" else "JPEG"
        img.save(dest, fmt)
    return dest


@contextmanager
def resized_temp_image(source: str | Path, max_size: int = RESIZE_MAX_SIZE):
    """Yield a resized temporary copy of ``source``; always deleted on exit."""
    source = Path(source)
    suffix = ".png" if source.suffix.lower() == ".png" else ".jpg"
    fd, name = tempfile.mkstemp(prefix=TEMP_PREFIX, suffix=suffix)
    tmp = Path(name)
    try:
        os.close(fd)
        resize_image(source, tmp, max_size)
        yield tmp
    finally:
        try:
            tmp.unlink()
        except FileNotFoundError:
            pass
        except OSError:
            logger.warning("Failed to remove temp image %s", tmp, exc_info=True)


def image_bytes(path: Path) -> bytes:
    return Path(path).read_bytes()


def image_base64(path: Path) -> str:
    return base64.b64encode(image_bytes(path)).decode("ascii")


def image_data_url(path: Path) -> str:
    mime = "image/png" if Path(path).suffix.lower() == ".png" else "image/jpeg"
    return f"data:{mime};base64,{image_base64(path)}"


def load_rgb(path: Path) -> Image.Image:
    """Open an image as RGB, pixels in memory and the file handle closed."""
    register_heif()
    with Image.open(path) as img:
        img = ImageOps.exif_transpose(img)
        img.load()
        if img.mode != "RGB":
            img = img.convert("RGB")
        return img
