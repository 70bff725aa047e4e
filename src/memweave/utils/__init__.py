from .json_parser import JSONParseError, parse_json, strip_code_fences
from .timeutils import generate_id, normalize_timestamp, now_iso, parse_iso

__all__ = [
    "JSONParseError",
    "parse_json",
    "strip_code_fences",
    "generate_id",
    "normalize_timestamp",
    "now_iso",
    "parse_iso",
]
