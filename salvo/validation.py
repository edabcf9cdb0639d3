from __future__ import annotations

from pathlib import Path
from typing import Any
import json
import yaml
from jsonschema import Draft202012Validator
from pydantic import ValidationError

from salvo.errors import PrettyError
from salvo.models import HostSheet


SCHEMA_DIR = Path(__file__).resolve().parent / "schema"
SHEET_SCHEMA = SCHEMA_DIR / "sheet.schema.json"


def _read_json(path: Path) -> Any:
    return json.loads(path.read_text(encoding="utf-8"))


def _read_sheet(path: Path) -> Any:
    text = path.read_text(encoding="utf-8")
    try:
        if path.suffix.lower() == ".json":
            return json.loads(text)
        return yaml.safe_load(text)
    except (ValueError, yaml.YAMLError) as e:
        raise PrettyError(f"could not parse {path.name}: {e}")


def _validate_jsonschema(obj: Any, schema_path: Path) -> None:
    schema = _read_json(schema_path)
    v = Draft202012Validator(schema)
    errors = sorted(v.iter_errors(obj), key=lambda e: [str(p) for p in e.path])
    if errors:
        lines = []
        for e in errors[:5]:
            ptr = "/" + "/".join([str(p) for p in e.path])
            lines.append(f"- {ptr or '/'}: {e.message}")
        more = "" if len(errors) <= 5 else f" (+{len(errors)-5} more)"
        raise PrettyError("JSON Schema validation failed:\n" + "\n".join(lines) + more)


def _format_errors(e: ValidationError) -> str:
    lines = []
    for err in e.errors(include_url=False):
        loc = "/".join(str(p) for p in err["loc"])
        lines.append(f"- /{loc}: {err['msg']}")
    return "Sheet validation failed:\n" + "\n".join(lines)


# Public API


def validate_sheet_data(data: Any) -> HostSheet:
    _validate_jsonschema(data, SHEET_SCHEMA)
    try:
        return HostSheet.model_validate(data)
    except ValidationError as e:
        raise PrettyError(_format_errors(e))


def load_sheet(path: Path) -> HostSheet:
    return validate_sheet_data(_read_sheet(path))


__all__ = ["load_sheet", "validate_sheet_data", "PrettyError"]
