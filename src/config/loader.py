"""Engine configuration loader with validation."""

import hashlib
import time
from pathlib import Path

import structlog
import yaml
from pydantic import ValidationError

from src.config.error_hints import format_validation_error
from src.config.schemas.engine import EngineConfig


logger = structlog.get_logger()


class ConfigValidationError(Exception):
    """Raised when configuration validation fails."""

    def __init__(self, errors: list[dict[str, str]], file_path: str) -> None:
        """Initialize the error.

        Args:
            errors: List of validation error details.
            file_path: Path to the file that failed validation.
        """
        self.errors = errors
        self.file_path = file_path
        super().__init__(f"Validation failed for {file_path}: {len(errors)} errors")

    def formatted(self) -> list[str]:
        """Return each error formatted with a remediation hint."""
        return [
            format_validation_error(err["loc"], err["msg"], err["type"])
            for err in self.errors
        ]


class ConfigLoader:
    """Loads and validates the engine configuration file.

    A missing path yields the built-in defaults. A path that is given
    but does not exist is an error.
    """

    def __init__(self) -> None:
        """Initialize the loader."""
        self._checksum: str | None = None
        self._validation_duration_ms: float = 0.0
        self._log = logger.bind(component="config")

    @property
    def checksum(self) -> str | None:
        """SHA-256 of the last loaded file, if any."""
        return self._checksum

    @property
    def validation_duration_ms(self) -> float:
        """Get validation duration in milliseconds."""
        return self._validation_duration_ms

    def load(self, config_path: Path | None = None) -> EngineConfig:
        """Load and validate the engine configuration.

        Args:
            config_path: Path to a YAML file, or None for defaults.

        Returns:
            Validated EngineConfig.

        Raises:
            ConfigValidationError: If the file is missing, unparsable or invalid.
        """
        if config_path is None:
            self._log.info("config_defaults_used")
            return EngineConfig()

        start = time.perf_counter()
        path_str = str(config_path)

        try:
            content = config_path.read_bytes()
        except FileNotFoundError as e:
            self._log.error("config_file_not_found", file_path=path_str)
            raise ConfigValidationError(
                [{"loc": "file", "msg": str(e), "type": "file_not_found"}], path_str
            ) from e

        self._checksum = hashlib.sha256(content).hexdigest()

        try:
            data = yaml.safe_load(content.decode("utf-8")) or {}
        except yaml.YAMLError as e:
            self._log.error("config_yaml_parse_error", file_path=path_str, error=str(e))
            raise ConfigValidationError(
                [{"loc": "yaml", "msg": str(e), "type": "yaml_parse_error"}], path_str
            ) from e

        try:
            config = EngineConfig.model_validate(data)
        except ValidationError as e:
            errors = [
                {
                    "loc": ".".join(str(loc) for loc in err["loc"]),
                    "msg": err["msg"],
                    "type": err["type"],
                }
                for err in e.errors()
            ]
            self._log.error(
                "config_validation_failed",
                file_path=path_str,
                validation_error_count=len(errors),
                errors=errors,
            )
            raise ConfigValidationError(errors, path_str) from e

        self._validation_duration_ms = (time.perf_counter() - start) * 1000
        self._log.info(
            "config_loaded",
            file_path=path_str,
            file_sha256=self._checksum,
            config_validation_duration_ms=round(self._validation_duration_ms, 2),
        )
        return config


def load_engine_config(config_path: Path | None = None) -> EngineConfig:
    """Load engine configuration from an optional YAML path."""
    return ConfigLoader().load(config_path)
