import json
import logging
from pathlib import Path
from typing import Any, List, Union

from pydantic import ValidationError

from models.schemas import InputRecord
from services.errors import RecordInvalid, SourceError

logger = logging.getLogger(__name__)


def parse_records(payload: Any) -> List[Any]:
    """Check that a decoded payload is a list of records and return it."""
    if not isinstance(payload, list):
        raise SourceError(f"Expected a JSON array of records, got {type(payload).__name__}")
    return payload


def load_records(path: Union[str, Path]) -> List[Any]:
    """Read a JSON file holding an array of product records.

    Raises:
        SourceError: if the file is missing, unreadable, not valid JSON, or
            its top level is not an array.
    """
    path = Path(path)
    if not path.is_file():
        raise SourceError(f"File not found: {path}")

    try:
        with open(path, "r", encoding="utf-8") as f:
            payload = json.load(f)
    except (OSError, UnicodeDecodeError) as exc:
        raise SourceError(f"Could not read {path}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise SourceError(f"Invalid JSON in {path}: {exc}") from exc

    records = parse_records(payload)
    logger.info(f"Loaded {len(records)} records from {path}")
    return records


def build_record(raw: Any) -> InputRecord:
    """Validate one raw record; records without ``title`` or ``categories`` are invalid."""
    if not isinstance(raw, dict):
        raise RecordInvalid("record is not an object", raw)
    if "title" not in raw or "categories" not in raw:
        raise RecordInvalid("record is missing title or categories", raw)

    try:
        return InputRecord.model_validate(raw)
    except ValidationError as exc:
        raise RecordInvalid(f"record has {exc.error_count()} invalid fields", raw) from exc
