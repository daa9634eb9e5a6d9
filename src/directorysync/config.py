"""Configuration contracts for Directory sync runs."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

from jsonschema import FormatChecker
from jsonschema.validators import validator_for

from directorysync.errors import ConfigurationError

DEFAULT_SCHEMA_PATH = Path(__file__).resolve().parent / "schemas" / "sync_config.schema.json"


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry of whole sync attempts."""

    max_attempts: int = 1
    interval_seconds: float = 0.0
    backoff_factor: float = 1.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.interval_seconds < 0:
            raise ValueError("interval_seconds cannot be negative")
        if self.backoff_factor < 1:
            raise ValueError("backoff_factor must be at least 1")

    def delay_before(self, attempt: int) -> float:
        """Seconds to wait before ``attempt`` (1-based); the first attempt never waits."""

        if attempt <= 1:
            return 0.0
        return self.interval_seconds * self.backoff_factor ** (attempt - 2)


@dataclass(frozen=True)
class ComponentSpec:
    """Registered component name plus constructor keyword arguments."""

    name: str
    params: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class SyncConfiguration:
    """Everything a :class:`~directorysync.pipeline.SyncOrchestrator` needs."""

    directory_client: ComponentSpec = field(default_factory=lambda: ComponentSpec("rest"))
    clinical_store: ComponentSpec = field(default_factory=lambda: ComponentSpec("fhir"))
    default_collection_id: str | None = None
    allow_star_model: bool = True
    min_donors: int = 10
    max_facts: int = -1
    skip_unknown_age: bool = False
    mock: bool = False
    only_login: bool = False
    import_biobanks: bool = True
    import_collections: bool = False
    retry: RetryPolicy = field(default_factory=RetryPolicy)

    def __post_init__(self) -> None:
        if self.min_donors < 0:
            raise ValueError("min_donors cannot be negative")


class SyncConfigLoader:
    """Load sync configuration JSON, validated against the bundled schema."""

    def __init__(self, schema_path: str | Path | None = None) -> None:
        self.schema_path = Path(schema_path) if schema_path else DEFAULT_SCHEMA_PATH

    def load(self, path: str | Path) -> SyncConfiguration:
        config_path = Path(path)
        if not config_path.exists():
            raise ConfigurationError(f"Config not found: {config_path}")
        try:
            payload = json.loads(config_path.read_text())
        except json.JSONDecodeError as exc:
            raise ConfigurationError(f"Invalid JSON in {config_path}: {exc}") from exc
        return self.parse(payload)

    def parse(self, payload: Mapping[str, Any]) -> SyncConfiguration:
        self.validate(payload)

        directory = dict(payload.get("directory", {}))
        if directory.get("write_to_file"):
            client = ComponentSpec(
                "file",
                {"output_directory": directory.get("output_directory", "directory_output")},
            )
        else:
            client = ComponentSpec(
                str(directory.get("client", "rest")).strip().lower(),
                dict(directory.get("params", {})),
            )

        source = dict(payload.get("source", {}))
        retry = dict(payload.get("retry", {}))

        try:
            return SyncConfiguration(
                directory_client=client,
                clinical_store=ComponentSpec(
                    str(source.get("type", "fhir")).strip().lower(),
                    dict(source.get("params", {})),
                ),
                default_collection_id=directory.get("default_collection_id") or None,
                allow_star_model=bool(directory.get("allow_star_model", True)),
                min_donors=int(directory.get("min_donors", 10)),
                max_facts=int(directory.get("max_facts", -1)),
                skip_unknown_age=bool(directory.get("skip_unknown_age", False)),
                mock=bool(directory.get("mock", False)),
                only_login=bool(directory.get("only_login", False)),
                import_biobanks=bool(payload.get("import_biobanks", True)),
                import_collections=bool(payload.get("import_collections", False)),
                retry=RetryPolicy(
                    max_attempts=int(retry.get("max_attempts", 1)),
                    interval_seconds=float(retry.get("interval_seconds", 0.0)),
                    backoff_factor=float(retry.get("backoff_factor", 1.0)),
                ),
            )
        except ValueError as exc:
            raise ConfigurationError(str(exc)) from exc

    def validate(self, payload: Mapping[str, Any]) -> None:
        schema = json.loads(self.schema_path.read_text())
        validator_cls = validator_for(schema)
        validator_cls.check_schema(schema)
        validator = validator_cls(schema, format_checker=FormatChecker())

        errors = sorted(validator.iter_errors(payload), key=lambda err: [str(part) for part in err.path])
        if errors:
            details = "; ".join(
                f"{'/'.join(str(part) for part in err.path) or '<root>'}: {err.message}"
                for err in errors
            )
            raise ConfigurationError(f"Invalid sync configuration: {details}")
