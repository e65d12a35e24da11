"""Object keys for input and output artifacts.

Input keys look like ``q85_w128_h128/photo.png``. The resize worker writes
its result to ``resized-<prefix>/<base name>.<output format>``, so the output
location can be computed here without asking anyone. Keys from before the
width/height prefix existed (``quality85/photo.png``) are still understood,
but never produced.
"""

import logging
import re
from dataclasses import dataclass

from pixel_pusher.config import settings
from pixel_pusher.jobs.schemas import JobParameters

logger = logging.getLogger(__name__)

OUTPUT_PREFIX = "resized-"

_NEW_SHAPE = re.compile(r"(q\d+_w\d+_h\d+)/(.+)", re.DOTALL)
_LEGACY_SHAPE = re.compile(r"(quality\d+)/(.+)", re.DOTALL)


@dataclass(frozen=True)
class NewShapeKey:
    prefix: str
    file_name: str


@dataclass(frozen=True)
class LegacyShapeKey:
    prefix: str
    file_name: str


@dataclass(frozen=True)
class ParseError:
    """Returned, not raised: the key matches neither known shape."""

    key: str
    reason: str = "unrecognized key shape"


ParsedKey = NewShapeKey | LegacyShapeKey | ParseError


def build_prefix(params: JobParameters) -> str:
    return f"q{params.quality}_w{params.max_width}_h{params.max_height}"


def build_input_key(params: JobParameters) -> str:
    return f"{build_prefix(params)}/{params.file_name}"


def parse_input_key(key: str) -> ParsedKey:
    match = _NEW_SHAPE.fullmatch(key)
    if match:
        return NewShapeKey(prefix=match.group(1), file_name=match.group(2))
    match = _LEGACY_SHAPE.fullmatch(key)
    if match:
        return LegacyShapeKey(prefix=match.group(1), file_name=match.group(2))
    return ParseError(key=key)


def strip_extension(file_name: str) -> str:
    """Drop the trailing extension; names like ``.env`` or ``README`` are kept whole."""
    base, dot, _ = file_name.rpartition(".")
    return base if dot and base else file_name


def derive_output_location(input_key: str, output_extension: str) -> str | ParseError:
    parsed = parse_input_key(input_key)
    if isinstance(parsed, ParseError):
        logger.error(f"Could not parse prefix from base key: {input_key}")
        return parsed
    if isinstance(parsed, LegacyShapeKey):
        logger.warning("Detected old key format, generating compatible output key.")
    base_name = strip_extension(parsed.file_name)
    return f"{OUTPUT_PREFIX}{parsed.prefix}/{base_name}.{output_extension.lower()}"


def extract_display_name(input_key: str | None, default_extension: str | None = None) -> str:
    extension = (default_extension or settings.output_format).lower()
    if not input_key:
        return f"resized_image.{extension}"
    _, sep, tail = input_key.rpartition("/")
    if not sep:
        return f"resized_{input_key}.{extension}"
    return tail


def build_download_name(input_key: str | None, output_extension: str) -> str:
    display_name = extract_display_name(input_key, output_extension)
    return f"resized_{strip_extension(display_name)}.{output_extension.lower()}"
