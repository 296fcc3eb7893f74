"""Read and write PhotoRecords in the EXIF ImageDescription field.

The record travels as a compact JSON blob inside the photo itself; there
are no side-car files. Writes go to a sibling temp file that replaces the
original only once Pillow has finished saving, so a failed save leaves
the previous container untouched.
"""

import json
import logging
import os
import shutil
from pathlib import Path

from PIL import Image, UnidentifiedImageError
from PIL.ExifTags import Base as ExifBase

from errors import CodecError, NotFoundError
from images import register_heif
from record import PhotoRecord

logger = logging.getLogger(__name__)

DESCRIPTION_TAG = ExifBase.ImageDescription

# Formats Pillow can save with an ``exif=`` block
WRITABLE_FORMATS = {"JPEG", "PNG", "WEBP", "TIFF"}


def _as_text(value) -> str:
    if isinstance(value, bytes):
        value = value.decode("utf-8", errors="strict")
    return str(value).strip().strip("\x00").strip()


def _tmp_path(path: Path) -> Path:
    return path.with_name(f".{path.name}.tmp")


def _save_params(img: Image.Image) -> dict:
    params: dict = {}
    if img.format == "JPEG":
        params["quality"] = "keep"
        params["subsampling"] = "keep"
    icc = img.info.get("icc_profile")
    if icc:
        params["icc_profile"] = icc
    return params


class MetadataCodec:
    """Round-trips a PhotoRecord through a photo's EXIF ImageDescription."""

    def read_raw(self, path: str | Path) -> str:
        path = Path(path)
        if not path.is_file():
            raise NotFoundError("File does not exist", str(path))
        register_heif()
        try:
            with Image.open(path) as img:
                value = img.getexif().get(DESCRIPTION_TAG)
        except (UnidentifiedImageError, OSError) as exc:
            raise CodecError("Cannot read metadata", str(path), exc) from exc
        if value is None:
            return ""
        try:
            return _as_text(value)
        except UnicodeDecodeError as exc:
            raise CodecError("ImageDescription is not text", str(path), exc) from exc

    def decode(self, path: str | Path) -> PhotoRecord:
        """Return the stored record, or an empty record when none is stored."""
        raw = self.read_raw(path)
        if not raw:
            return PhotoRecord()
        try:
            return PhotoRecord.from_json(raw)
        except (json.JSONDecodeError, ValueError, TypeError) as exc:
            raise CodecError("ImageDescription is not a photo record", str(path), exc) from exc

    def encode(self, path: str | Path, record: PhotoRecord) -> None:
        """Replace the stored record with ``record``."""
        path = Path(path)
        if not path.is_file():
            raise NotFoundError("File does not exist", str(path))
        register_heif()
        tmp = _tmp_path(path)
        try:
            with Image.open(path) as img:
                if img.format not in WRITABLE_FORMATS:
                    raise CodecError(f"Cannot write metadata to {img.format} files", str(path))
                exif = img.getexif()
                exif[DESCRIPTION_TAG] = record.to_json()
                img.save(tmp, format=img.format, exif=exif, **_save_params(img))
            shutil.copymode(path, tmp)
            os.replace(tmp, path)
        except CodecError:
            raise
        except (UnidentifiedImageError, OSError, ValueError) as exc:
            raise CodecError("Cannot write metadata", str(path), exc) from exc
        finally:
            if tmp.exists():
                try:
                    tmp.unlink()
                except OSError:
                    logger.warning("Could not remove %s", tmp, exc_info=True)
        logger.debug("Wrote metadata to %s", path)

    def clear(self, path: str | Path) -> PhotoRecord:
        record = PhotoRecord()
        self.encode(path, record)
        return record
