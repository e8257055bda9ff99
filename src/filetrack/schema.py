"""Schema gate: decides whether raw record bytes are valid, schema-invalid or unparsable.

The three contracts (issue, config, contractor credential file) are JSON
Schemas bundled with the package.  They are compiled against a referencing
registry that only holds those bundled documents; any other ``$ref`` target
is refused instead of being fetched.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from importlib import resources
from typing import Any

from jsonschema import Draft202012Validator
from referencing import Registry, Resource
from referencing.exceptions import NoSuchResource

from filetrack import jsonfmt
from filetrack.models import ISSUE_VERSION

logger = logging.getLogger("filetrack.schema")

ISSUE_SCHEMA = "issue.schema.json"
CONFIG_SCHEMA = "config.schema.json"
CONTRACTOR_SCHEMA = "contractor.schema.json"
BUNDLED_SCHEMAS = (ISSUE_SCHEMA, CONFIG_SCHEMA, CONTRACTOR_SCHEMA)


class Outcome(Enum):
    VALID = "valid"
    SCHEMA_INVALID = "schema_invalid"
    UNPARSABLE = "unparsable"


@dataclass(frozen=True)
class SchemaViolation:
    location: str
    message: str

    def __str__(self) -> str:
        return f"{self.location}: {self.message}"


@dataclass
class GateResult:
    outcome: Outcome
    document: Any = None
    violations: list[SchemaViolation] = field(default_factory=list)
    parse_error: str = ""

    @property
    def is_valid(self) -> bool:
        return self.outcome is Outcome.VALID

    @property
    def is_schema_invalid(self) -> bool:
        return self.outcome is Outcome.SCHEMA_INVALID

    @property
    def is_unparsable(self) -> bool:
        return self.outcome is Outcome.UNPARSABLE

    def detail(self) -> str:
        if self.parse_error:
            return self.parse_error
        return "\n".join(str(v) for v in self.violations)


def _refuse_retrieval(uri: str) -> Resource:
    # Only bundled schemas may be referenced: no network, no file lookups.
    raise NoSuchResource(ref=uri)


def load_bundled_schema(name: str) -> dict[str, Any]:
    ref = resources.files("filetrack") / "schemas" / name
    return json.loads(ref.read_text(encoding="utf-8"))  # type: ignore[no-any-return]


class SchemaGate:
    """Compiled validators for the bundled contracts."""

    def __init__(self, schemas: dict[str, dict[str, Any]] | None = None) -> None:
        if schemas is None:
            schemas = {name: load_bundled_schema(name) for name in BUNDLED_SCHEMAS}
        registry: Registry = Registry(retrieve=_refuse_retrieval)  # type: ignore[call-arg]
        for schema in schemas.values():
            Draft202012Validator.check_schema(schema)
            resource = Resource.from_contents(schema)
            if resource.id():
                registry = registry.with_resource(resource.id(), resource)
        self._validators = {
            name: Draft202012Validator(schema, registry=registry)
            for name, schema in schemas.items()
        }

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def classify_issue(self, data: bytes) -> GateResult:
        """Classify issue bytes; an unsupported ``version`` makes the record schema-invalid."""
        result = self.classify(ISSUE_SCHEMA, data)
        if result.outcome is Outcome.UNPARSABLE:
            return result
        doc = result.document
        version = doc.get("version") if isinstance(doc, dict) else None
        if type(version) is int and version != ISSUE_VERSION:
            result.violations.append(SchemaViolation("/version", f"unsupported version {version}"))
            result.outcome = Outcome.SCHEMA_INVALID
        return result

    def validate_config(self, data: bytes) -> GateResult:
        return self.classify(CONFIG_SCHEMA, data)

    def validate_contractor(self, data: bytes) -> GateResult:
        return self.classify(CONTRACTOR_SCHEMA, data)

    def classify(self, schema_name: str, data: bytes) -> GateResult:
        validator = self._validators.get(schema_name)
        if validator is None:
            msg = f"schema not loaded: {schema_name}"
            raise KeyError(msg)

        try:
            document = jsonfmt.loads(data)
        except ValueError as exc:
            return GateResult(Outcome.UNPARSABLE, parse_error=f"parse json: {exc}")

        violations = sorted(
            (SchemaViolation(_location(err.absolute_path), err.message) for err in validator.iter_errors(document)),
            key=lambda v: (v.location, v.message),
        )
        if violations:
            logger.debug("%s: %d schema violation(s)", schema_name, len(violations))
            return GateResult(Outcome.SCHEMA_INVALID, document=document, violations=violations)
        return GateResult(Outcome.VALID, document=document)


def _location(path: Any) -> str:
    parts = [str(p) for p in path]
    return "/" + "/".join(parts) if parts else "/"
