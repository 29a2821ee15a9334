"""
JSON Schema checks at the document boundary.

Frontmatter is checked before every write and migration logs when they are
loaded back for a rollback. Schemas live in trackdown/schemas/ as
<name>.schema.json; compiled validators are cached per name.
"""

import json
from functools import lru_cache
from pathlib import Path

import jsonschema
from jsonschema.exceptions import best_match

SCHEMAS_DIR = Path(__file__).parent.parent / "schemas"


class SchemaValidationError(Exception):
    """Data does not match a schema (or the schema/file can't be loaded)."""

    def __init__(self, schema_name: str, message: str, path: str = None):
        self.schema_name = schema_name
        self.path = path
        super().__init__(f"[{schema_name}] {message}" + (f" at {path}" if path else ""))


@lru_cache(maxsize=None)
def _validator(schema_name: str) -> jsonschema.Draft7Validator:
    schema_path = SCHEMAS_DIR / f"{schema_name}.schema.json"
    try:
        schema = json.loads(schema_path.read_text())
    except (OSError, json.JSONDecodeError) as e:
        raise SchemaValidationError(schema_name, f"Cannot load schema {schema_path}: {e}") from None
    return jsonschema.Draft7Validator(schema)


def _location(error: jsonschema.ValidationError) -> str:
    return ".".join(str(p) for p in error.absolute_path) or "(root)"


def schema_errors(data, schema_name: str) -> list[str]:
    """Every violation of `schema_name` in `data`, as "location: message" strings."""
    errors = sorted(_validator(schema_name).iter_errors(data), key=lambda e: list(map(str, e.absolute_path)))
    return [f"{_location(e)}: {e.message}" for e in errors]


def validate(data, schema_name: str) -> None:
    """Check `data` against a named schema.

    Raises:
        SchemaValidationError: On the first (shallowest) violation
    """
    error = best_match(_validator(schema_name).iter_errors(data))
    if error is not None:
        raise SchemaValidationError(schema_name, error.message, _location(error))


def validate_file(filepath: Path, schema_name: str):
    """Read a JSON file and check it. Returns the parsed data.

    Raises:
        SchemaValidationError: If the file is missing, not JSON, or invalid
    """
    try:
        data = json.loads(Path(filepath).read_text())
    except FileNotFoundError:
        raise SchemaValidationError(schema_name, f"File not found: {filepath}") from None
    except (OSError, json.JSONDecodeError) as e:
        raise SchemaValidationError(schema_name, f"Unreadable JSON in {filepath}: {e}") from None

    validate(data, schema_name)
    return data


def validate_before_write(data: dict, schema_name: str, filepath: Path) -> None:
    """Refuse to persist data that doesn't match its schema.

    Raises:
        SchemaValidationError: Listing every violation found
    """
    problems = schema_errors(data, schema_name)
    if problems:
        raise SchemaValidationError(
            schema_name,
            f"Refusing to write {filepath}: " + "; ".join(problems),
        )
