"""
Photo metadata: extraction from image bytes (EXIF, via Pillow) and the flat
string encoding that is stored as blob metadata next to each object.

The blob metadata is the only place this record is persisted; the index only
caches date_taken (as PhotoObject.time_taken) for sorting.
"""

import io
import logging
import math
from datetime import UTC, datetime
from typing import IO, Any

from PIL import ExifTags, Image
from pydantic import BaseModel

# Blob metadata keys for storing photo metadata
KEY_LATITUDE = "latitude"
KEY_LONGITUDE = "longitude"
KEY_DATE_TAKEN = "date_taken"
KEY_WIDTH = "width"
KEY_HEIGHT = "height"
KEY_ORIGINAL_FILENAME = "original_filename"
KEY_CAMERA_MAKE = "camera_make"
KEY_CAMERA_MODEL = "camera_model"
KEY_FOCAL_LENGTH = "focal_length"
KEY_ISO = "iso"
KEY_APERTURE = "aperture"
KEY_EXPOSURE_TIME = "exposure_time"
KEY_LENS_MODEL = "lens_model"

PHOTO_METADATA_KEYS = (
    KEY_LATITUDE,
    KEY_LONGITUDE,
    KEY_DATE_TAKEN,
    KEY_WIDTH,
    KEY_HEIGHT,
    KEY_ORIGINAL_FILENAME,
    KEY_CAMERA_MAKE,
    KEY_CAMERA_MODEL,
    KEY_FOCAL_LENGTH,
    KEY_ISO,
    KEY_APERTURE,
    KEY_EXPOSURE_TIME,
    KEY_LENS_MODEL,
)

EXIF_DATETIME_FORMAT = "%Y:%m:%d %H:%M:%S"


class PhotoMetadata(BaseModel):
    """
    Metadata of a single photo. All fields are optional; the has_* flags tell
    "zero" apart from "absent" for location, date taken and dimensions.
    Exposure fields use 0 for absent, as a real photo never has a zero focal length or ISO.
    """

    latitude: float = 0.0
    longitude: float = 0.0
    has_location: bool = False
    date_taken: datetime | None = None
    has_date_taken: bool = False
    width: int = 0
    height: int = 0
    has_dimensions: bool = False
    original_filename: str = ""
    camera_make: str = ""
    camera_model: str = ""
    lens_model: str = ""
    focal_length: float = 0.0
    iso: int = 0
    aperture: float = 0.0
    exposure_time: float = 0.0

    def format_date_taken(self) -> str | None:
        if self.has_date_taken and self.date_taken is not None:
            return format_timestamp(self.date_taken)
        return None


def format_timestamp(value: datetime) -> str:
    """RFC 3339 with second precision. Naive datetimes are taken to be UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.isoformat(timespec="seconds").replace("+00:00", "Z")


def parse_timestamp(value: str) -> datetime:
    result = datetime.fromisoformat(value)
    if result.tzinfo is None:
        result = result.replace(tzinfo=UTC)
    return result


def to_blob_metadata(meta: PhotoMetadata) -> dict[str, str]:
    """Encode metadata as a flat str->str map. Only populated fields are included."""
    result: dict[str, str] = {}

    if meta.has_location:
        result[KEY_LATITUDE] = f"{meta.latitude:.6f}"
        result[KEY_LONGITUDE] = f"{meta.longitude:.6f}"
    if meta.has_date_taken and meta.date_taken is not None:
        result[KEY_DATE_TAKEN] = format_timestamp(meta.date_taken)
    if meta.has_dimensions:
        result[KEY_WIDTH] = str(meta.width)
        result[KEY_HEIGHT] = str(meta.height)
    if meta.original_filename:
        result[KEY_ORIGINAL_FILENAME] = meta.original_filename
    if meta.camera_make:
        result[KEY_CAMERA_MAKE] = meta.camera_make
    if meta.camera_model:
        result[KEY_CAMERA_MODEL] = meta.camera_model
    if meta.focal_length > 0:
        result[KEY_FOCAL_LENGTH] = f"{meta.focal_length:.2f}"
    if meta.iso > 0:
        result[KEY_ISO] = str(meta.iso)
    if meta.aperture > 0:
        result[KEY_APERTURE] = f"{meta.aperture:.2f}"
    if meta.exposure_time > 0:
        result[KEY_EXPOSURE_TIME] = f"{meta.exposure_time:g}"
    if meta.lens_model:
        result[KEY_LENS_MODEL] = meta.lens_model

    return result


def from_blob_metadata(metadata: dict[str, str] | None) -> PhotoMetadata:
    """Decode a blob metadata map. Unparseable values are treated as absent."""
    metadata = metadata or {}
    meta = PhotoMetadata()

    if KEY_LATITUDE in metadata and KEY_LONGITUDE in metadata:
        lat, lng = _float(metadata[KEY_LATITUDE]), _float(metadata[KEY_LONGITUDE])
        if lat is not None and lng is not None:
            meta.latitude, meta.longitude, meta.has_location = lat, lng, True

    if KEY_DATE_TAKEN in metadata:
        try:
            meta.date_taken = parse_timestamp(metadata[KEY_DATE_TAKEN])
            meta.has_date_taken = True
        except ValueError:
            pass

    if KEY_WIDTH in metadata and KEY_HEIGHT in metadata:
        width, height = _int(metadata[KEY_WIDTH]), _int(metadata[KEY_HEIGHT])
        if width is not None and height is not None:
            meta.width, meta.height, meta.has_dimensions = width, height, True

    meta.original_filename = metadata.get(KEY_ORIGINAL_FILENAME, "")
    meta.camera_make = metadata.get(KEY_CAMERA_MAKE, "")
    meta.camera_model = metadata.get(KEY_CAMERA_MODEL, "")
    meta.lens_model = metadata.get(KEY_LENS_MODEL, "")
    meta.focal_length = _float(metadata.get(KEY_FOCAL_LENGTH)) or 0.0
    meta.iso = _int(metadata.get(KEY_ISO)) or 0
    meta.aperture = _float(metadata.get(KEY_APERTURE)) or 0.0
    meta.exposure_time = _float(metadata.get(KEY_EXPOSURE_TIME)) or 0.0

    return meta


def _float(value: str | None) -> float | None:
    if value is None:
        return None
    try:
        result = float(value)
    except ValueError:
        return None
    return result if math.isfinite(result) else None


def _int(value: str | None) -> int | None:
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


######################## EXIF EXTRACTION #########################


def extract_photo_metadata(source: bytes | IO[bytes], original_filename: str) -> PhotoMetadata:
    """
    Extract metadata from image data. Anything that cannot be read is left absent;
    data that is not an image at all yields metadata with only the original filename.

    If source is a file object, it is rewound before and after reading.
    """
    meta = PhotoMetadata(original_filename=original_filename)
    fp = io.BytesIO(source) if isinstance(source, (bytes, bytearray)) else source
    fp.seek(0)
    try:
        with Image.open(fp) as img:
            size = img.size
            exif = img.getexif()
            _read_exif(exif, meta)
            if not meta.has_dimensions and size[0] > 0 and size[1] > 0:
                meta.width, meta.height = size
                meta.has_dimensions = True
    except (OSError, ValueError, TypeError, SyntaxError, Image.DecompressionBombError) as e:
        logging.debug(f"No image metadata for {original_filename}: {e}")
    finally:
        fp.seek(0)
    return meta


def _read_exif(exif: Image.Exif, meta: PhotoMetadata) -> None:
    if not exif:
        return
    base = ExifTags.Base
    details = exif.get_ifd(ExifTags.IFD.Exif)
    gps = exif.get_ifd(ExifTags.IFD.GPSInfo)

    location = _gps_location(gps)
    if location is not None:
        meta.latitude, meta.longitude = location
        meta.has_location = True

    taken = _exif_datetime(
        details.get(base.DateTimeOriginal) or exif.get(base.DateTime),
        details.get(base.OffsetTimeOriginal),
    )
    if taken is not None:
        meta.date_taken, meta.has_date_taken = taken, True

    width, height = _exif_int(details.get(base.ExifImageWidth)), _exif_int(details.get(base.ExifImageHeight))
    if not (width and height):
        width, height = _exif_int(exif.get(base.ImageWidth)), _exif_int(exif.get(base.ImageLength))
    if width and height:
        meta.width, meta.height, meta.has_dimensions = width, height, True

    meta.camera_make = _exif_str(exif.get(base.Make))
    meta.camera_model = _exif_str(exif.get(base.Model))
    meta.lens_model = _exif_str(details.get(base.LensModel))
    meta.focal_length = _exif_float(details.get(base.FocalLength)) or 0.0
    meta.iso = _exif_int(details.get(base.ISOSpeedRatings)) or 0
    meta.aperture = _exif_float(details.get(base.FNumber)) or 0.0
    meta.exposure_time = _exif_float(details.get(base.ExposureTime)) or 0.0


def _exif_str(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        value = value.decode("utf-8", errors="replace")
    return str(value).strip("\x00").strip()


def _exif_float(value: Any) -> float | None:
    if isinstance(value, tuple) and len(value) == 2:
        num, denom = value
        value = num / denom if denom else None
    if value is None:
        return None
    try:
        result = float(value)
    except (TypeError, ValueError, ZeroDivisionError):
        return None
    return result if math.isfinite(result) else None


def _exif_int(value: Any) -> int | None:
    if isinstance(value, (tuple, list)):
        value = value[0] if value else None
    result = _exif_float(value)
    return int(result) if result is not None else None


def _exif_datetime(value: Any, offset: Any = None) -> datetime | None:
    text = _exif_str(value)
    if not text:
        return None
    try:
        taken = datetime.strptime(text[:19], EXIF_DATETIME_FORMAT)
    except ValueError:
        return None
    offset_text = _exif_str(offset)
    if offset_text:
        try:
            return datetime.fromisoformat(taken.isoformat() + offset_text)
        except ValueError:
            pass
    return taken.replace(tzinfo=UTC)


def _gps_location(gps: dict) -> tuple[float, float] | None:
    lat = _gps_degrees(gps.get(ExifTags.GPS.GPSLatitude), gps.get(ExifTags.GPS.GPSLatitudeRef), "S")
    lng = _gps_degrees(gps.get(ExifTags.GPS.GPSLongitude), gps.get(ExifTags.GPS.GPSLongitudeRef), "W")
    if lat is None or lng is None:
        return None
    return lat, lng


def _gps_degrees(coords: Any, ref: Any, negative_ref: str) -> float | None:
    if not isinstance(coords, (tuple, list)) or len(coords) != 3:
        return None
    parts = [_exif_float(c) for c in coords]
    if any(p is None for p in parts):
        return None
    degrees, minutes, seconds = parts  # type: ignore[misc]
    decimal = degrees + minutes / 60 + seconds / 3600
    if _exif_str(ref).upper() == negative_ref:
        decimal = -decimal
    return round(decimal, 6)
