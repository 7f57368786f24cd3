"""
Parsing and validation of image query requests.

A request names one image field and its options:

    {
        "my_image": {
            "feature": "COLOR_HISTOGRAM",   # required
            "image": "<base64>",            # or raw bytes
            "hash": "LSH",                  # optional: BIT_SAMPLING | LSH
            "boost": 2.0,                   # optional, default 1.0
            "limit": 100,                   # optional, only used with hash
            # instead of "image", reuse a feature stored on a document:
            "index": "products", "type": "_doc", "id": "42",
            "path": "my_image", "routing": null
        }
    }

Parsing never touches an index or the document store. Any malformed
request is rejected here with QueryParsingError.
"""

import base64
import binascii
import logging
import math
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from .exceptions import QueryParsingError
from .features import FeatureKind, feature_field
from .hashing import HashAlgorithm

logger = logging.getLogger(__name__)

NAME = "image"


@dataclass(frozen=True)
class ImageQueryParams:
    """A validated image query request."""

    field: str
    feature_kind: FeatureKind
    image: Optional[bytes] = None
    hash_algorithm: Optional[HashAlgorithm] = None
    boost: float = 1.0
    limit: Optional[int] = None
    lookup_index: Optional[str] = None
    lookup_type: Optional[str] = None
    lookup_id: Optional[str] = None
    lookup_path: Optional[str] = None
    lookup_routing: Optional[str] = None

    @property
    def feature_field(self) -> str:
        return feature_field(self.field, self.feature_kind)

    @property
    def lookup_field(self) -> Optional[str]:
        if self.lookup_path is None:
            return None
        return feature_field(self.lookup_path, self.feature_kind)

    @property
    def has_lookup(self) -> bool:
        return None not in (self.lookup_index, self.lookup_type,
                            self.lookup_id, self.lookup_path)


def _text(name: str, value: Any) -> str:
    if not isinstance(value, str):
        raise QueryParsingError(f"[{NAME}] query [{name}] must be a string")
    return value


def _image_bytes(value: Any) -> bytes:
    if isinstance(value, (bytes, bytearray, memoryview)):
        data = bytes(value)
    elif isinstance(value, str):
        try:
            data = base64.b64decode(value, validate=True)
        except (binascii.Error, ValueError) as e:
            raise QueryParsingError(f"[{NAME}] query [image] is not valid base64") from e
    else:
        raise QueryParsingError(f"[{NAME}] query [image] must be bytes or a base64 string")
    if not data:
        raise QueryParsingError(f"[{NAME}] query [image] is empty")
    return data


def _boost(value: Any) -> float:
    if isinstance(value, bool):
        raise QueryParsingError(f"[{NAME}] query [boost] must be a number")
    try:
        boost = float(value)
    except (TypeError, ValueError):
        raise QueryParsingError(f"[{NAME}] query [boost] must be a number") from None
    if not math.isfinite(boost) or boost < 0:
        raise QueryParsingError(
            f"[{NAME}] query [boost] must be a non-negative number, got {value!r}"
        )
    return boost


def _limit(value: Any) -> Optional[int]:
    if isinstance(value, bool) or isinstance(value, float):
        raise QueryParsingError(f"[{NAME}] query [limit] must be an integer")
    try:
        limit = int(value)
    except (TypeError, ValueError):
        raise QueryParsingError(f"[{NAME}] query [limit] must be an integer") from None
    # Non-positive limits mean "no limit"
    return limit if limit > 0 else None


def parse_image_query(body: Mapping[str, Any],
                      default_index: Optional[str] = None) -> ImageQueryParams:
    """
    Validate an image query request.

    Args:
        body: Mapping of exactly one field name to its options.
        default_index: Index used for lookups when the request names none.

    Returns:
        ImageQueryParams ready for RetrievalComposer.compose().

    Raises:
        QueryParsingError: On any malformed request.
    """
    if not isinstance(body, Mapping) or len(body) != 1:
        raise QueryParsingError(f"[{NAME}] query malformed, no field")

    (field, options), = body.items()
    if not isinstance(field, str) or not field or not isinstance(options, Mapping):
        raise QueryParsingError(f"[{NAME}] query malformed, no field")

    values = {"lookup_index": default_index}

    for name, value in options.items():
        if name == "feature":
            try:
                values["feature_kind"] = FeatureKind.from_name(_text(name, value))
            except ValueError as e:
                raise QueryParsingError(f"[{NAME}] query: {e}") from None
        elif name == "image":
            values["image"] = _image_bytes(value)
        elif name == "hash":
            try:
                values["hash_algorithm"] = HashAlgorithm.from_name(_text(name, value))
            except ValueError as e:
                raise QueryParsingError(f"[{NAME}] query: {e}") from None
        elif name == "boost":
            values["boost"] = _boost(value)
        elif name == "limit":
            values["limit"] = _limit(value)
        elif name in ("index", "type", "id", "path"):
            values[f"lookup_{name}"] = _text(name, value)
        elif name == "routing":
            values["lookup_routing"] = None if value is None else _text(name, value)
        else:
            raise QueryParsingError(f"[{NAME}] query does not support [{name}]")

    if "feature_kind" not in values:
        raise QueryParsingError("No feature specified for image query")

    params = ImageQueryParams(field=field, **values)

    lookup_given = any(
        v is not None for v in (params.lookup_type, params.lookup_id, params.lookup_path)
    )
    if params.image is not None and lookup_given:
        raise QueryParsingError(
            f"[{NAME}] query accepts either [image] or a lookup "
            f"([type], [id], [path]), not both"
        )
    if params.image is None and not params.has_lookup:
        raise QueryParsingError(
            f"[{NAME}] query requires [image] or a complete lookup "
            f"([index], [type], [id], [path])"
        )

    if params.limit is not None and params.hash_algorithm is None:
        logger.warning(f"[{NAME}] query on [{field}]: [limit] ignored without [hash]")

    return params
