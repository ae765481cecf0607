import json
import math
from collections.abc import Mapping
from typing import Any, Dict, List, Optional, Sequence, Tuple

from loguru import logger
from pydantic import ValidationError

from app.core.config import settings
from app.core.errors import RowNormalizationError
from app.models.ingestion import ROW_ERROR_KEY, RawCatalogRow
from app.models.product import Dimensions, NormalizedProductDraft, ProductStatus, Specification

DIMENSION_FIELDS = ("length", "width", "height", "weight")
REQUIRED_TEXT_FIELDS = ("name", "description", "category")
VENDOR_FIELDS = ("vendor", "vendor_id", "vendorid")


class _Reject(Exception):
    """Internal: carries the reason a field could not be coerced."""


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str) and not value.strip():
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    return False


def _to_float(field: str, value: Any) -> float:
    if isinstance(value, bool):
        raise _Reject(f"{field} must be a number, got {value!r}")
    try:
        number = float(str(value).strip()) if isinstance(value, str) else float(value)
    except (TypeError, ValueError):
        raise _Reject(f"{field} must be a number, got {value!r}")
    if not math.isfinite(number):
        raise _Reject(f"{field} must be a finite number, got {value!r}")
    return number


def _to_int(field: str, value: Any) -> int:
    number = _to_float(field, value)
    if not number.is_integer():
        raise _Reject(f"{field} must be a whole number, got {value!r}")
    return int(number)


def _maybe_json(field: str, value: Any) -> Any:
    if isinstance(value, str):
        try:
            return json.loads(value)
        except json.JSONDecodeError as e:
            raise _Reject(f"{field} is not valid JSON: {e.msg}")
    return value


class RowNormalizer:
    """Turns one raw catalog row into a NormalizedProductDraft."""

    def __init__(self, tag_delimiter: Optional[str] = None):
        self.tag_delimiter = tag_delimiter or settings.TAG_DELIMITER

    def _text(self, row: Mapping, field: str, required: bool = True) -> Optional[str]:
        value = row.get(field)
        if _is_blank(value):
            if required:
                raise _Reject(f"missing required field '{field}'")
            return None
        return str(value).strip()

    def _price(self, row: Mapping) -> float:
        value = row.get("price")
        if _is_blank(value):
            raise _Reject("missing required field 'price'")
        price = _to_float("price", value)
        if price < 0:
            raise _Reject(f"price must not be negative, got {value!r}")
        return price

    def _stock(self, row: Mapping) -> int:
        value = row.get("stock")
        if _is_blank(value):
            return 0
        stock = _to_int("stock", value)
        if stock < 0:
            raise _Reject(f"stock must not be negative, got {value!r}")
        return stock

    def _dimensions(self, row: Mapping) -> Dimensions:
        nested = row.get("dimensions")
        source: Dict[str, Any] = {}
        if not _is_blank(nested):
            nested = _maybe_json("dimensions", nested)
            if not isinstance(nested, Mapping):
                raise _Reject("dimensions must be an object")
            source.update(nested)
        # Flat columns win over a nested object
        for field in DIMENSION_FIELDS:
            if not _is_blank(row.get(field)):
                source[field] = row[field]

        values = {}
        for field in DIMENSION_FIELDS:
            raw = source.get(field)
            if _is_blank(raw):
                values[field] = 0.0
                continue
            number = _to_float(field, raw)
            if number < 0:
                raise _Reject(f"{field} must not be negative, got {raw!r}")
            values[field] = number
        return Dimensions(**values)

    def _specifications(self, row: Mapping) -> List[Specification]:
        value = row.get("specifications")
        if _is_blank(value):
            return []
        value = _maybe_json("specifications", value)
        if isinstance(value, Mapping):
            return [Specification(name=str(k), value=str(v)) for k, v in value.items()]
        if isinstance(value, list):
            specs = []
            for item in value:
                if not isinstance(item, Mapping) or "name" not in item:
                    raise _Reject("specifications entries must be objects with 'name' and 'value'")
                specs.append(Specification(name=str(item["name"]), value=str(item.get("value", ""))))
            return specs
        raise _Reject("specifications must be an object or a list of {name, value} objects")

    def split_tags(self, value: Any) -> List[str]:
        """Splits delimiter-joined tag text (or a list) into trimmed, de-duplicated tags."""
        if _is_blank(value):
            return []
        if isinstance(value, (list, tuple, set)):
            candidates = [str(tag) for tag in value]
        else:
            candidates = str(value).split(self.tag_delimiter)
        tags: List[str] = []
        for tag in candidates:
            tag = tag.strip()
            if tag and tag not in tags:
                tags.append(tag)
        return tags

    def _status(self, row: Mapping) -> ProductStatus:
        value = row.get("status")
        if _is_blank(value):
            return ProductStatus.DRAFT
        try:
            return ProductStatus(str(value).strip())
        except ValueError:
            logger.debug(f"Unknown product status {value!r}, falling back to draft")
            return ProductStatus.DRAFT

    def normalize(self, row: RawCatalogRow, row_index: int, vendor_id: str) -> NormalizedProductDraft:
        """Raises RowNormalizationError when the row cannot be coerced."""
        if not isinstance(row, Mapping):
            raise RowNormalizationError(row_index, f"expected an object, got {type(row).__name__}")
        if ROW_ERROR_KEY in row:
            raise RowNormalizationError(row_index, str(row[ROW_ERROR_KEY]))

        ignored = [field for field in VENDOR_FIELDS if field in row]
        if ignored:
            logger.debug(f"Row {row_index}: ignoring vendor fields {ignored} from input")

        try:
            name, description, category = (self._text(row, field) for field in REQUIRED_TEXT_FIELDS)
            return NormalizedProductDraft(
                name=name,
                description=description,
                price=self._price(row),
                category=category,
                stock=self._stock(row),
                dimensions=self._dimensions(row),
                specifications=self._specifications(row),
                tags=self.split_tags(row.get("tags")),
                manufacturer=self._text(row, "manufacturer", required=False),
                status=self._status(row),
                vendor_id=vendor_id,
            )
        except _Reject as e:
            raise RowNormalizationError(row_index, str(e)) from None
        except ValidationError as e:
            errors = "; ".join(f"{'.'.join(map(str, err['loc']))}: {err['msg']}" for err in e.errors())
            raise RowNormalizationError(row_index, errors) from None

    def normalize_rows(self, rows: Sequence[RawCatalogRow],
                       vendor_id: str) -> Tuple[List[NormalizedProductDraft], List[RowNormalizationError]]:
        """Normalizes every row; bad rows are collected, never raised."""
        drafts: List[NormalizedProductDraft] = []
        errors: List[RowNormalizationError] = []
        for index, row in enumerate(rows):
            try:
                drafts.append(self.normalize(row, index, vendor_id))
            except RowNormalizationError as e:
                logger.warning(f"Skipping row {index}: {e.reason}")
                errors.append(e)
        logger.info(f"Normalized {len(drafts)}/{len(rows)} rows ({len(errors)} rejected)")
        return drafts, errors
