"""Receiver configuration: YAML loading, schema validation, and clamping."""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from importlib import resources
from pathlib import Path
from typing import Any

import yaml
from jsonschema import ValidationError, validators

from eiscpctl.core.errors import ConfigLoadError, ConfigValidationError
from eiscpctl.core.inputs import label_overrides_from_mapping, normalize_input_code

DEFAULT_PORT = 60128
DEFAULT_POLL_INTERVAL_MS = 5000
DEFAULT_RETRY_INTERVAL_MS = 10000
DEFAULT_VOLUME_MAX_RAW = 160
PRESENCE_MARGIN_MS = 1000
LOGGER = logging.getLogger(__name__)


class UniqueKeyLoader(yaml.SafeLoader):
    """YAML loader that rejects duplicate mapping keys."""


def _construct_mapping(loader: UniqueKeyLoader, node: yaml.Node, deep: bool = False) -> dict[str, Any]:
    mapping: dict[str, Any] = {}
    for key_node, value_node in node.value:
        key = loader.construct_object(key_node, deep=deep)
        if key in mapping:
            raise ConfigValidationError(f"Duplicate key '{key}' in YAML document")
        mapping[key] = loader.construct_object(value_node, deep=deep)
    return mapping


UniqueKeyLoader.add_constructor(
    yaml.resolver.BaseResolver.DEFAULT_MAPPING_TAG,
    _construct_mapping,
)


@dataclass(frozen=True)
class AdapterConfig:
    id: str = ""
    name: str = ""
    host: str = ""
    port: int = DEFAULT_PORT
    poll_interval_ms: int = DEFAULT_POLL_INTERVAL_MS
    retry_interval_ms: int = DEFAULT_RETRY_INTERVAL_MS
    volume_max_raw: int = DEFAULT_VOLUME_MAX_RAW
    active_sli_codes: tuple[str, ...] = ()
    input_labels: dict[str, str] = field(default_factory=dict)
    use_eiscp: bool = True
    use_crlf: bool = False
    meta: dict[str, Any] = field(default_factory=dict)

    @property
    def presence_timeout_ms(self) -> int:
        return self.poll_interval_ms + PRESENCE_MARGIN_MS

    @property
    def is_addressable(self) -> bool:
        return bool(self.host) and self.port > 0

    def meta_str(self, key: str) -> str:
        value = self.meta.get(key)
        return value.strip() if isinstance(value, str) else ""


@dataclass(frozen=True)
class LoadedConfig:
    config: AdapterConfig
    warnings: tuple[str, ...]


def _load_schema_validator() -> Any:
    schema_text = resources.files("eiscpctl.schemas").joinpath("config.schema.json").read_text(
        encoding="utf-8"
    )
    schema = json.loads(schema_text)
    validator_cls = validators.validator_for(schema)
    validator_cls.check_schema(schema)
    return validator_cls(schema)


def default_config_path() -> Path:
    xdg_config = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    return xdg_config / "eiscpctl/config.yaml"


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigLoadError(f"Could not read config file {path}: {exc}") from exc

    try:
        loaded = yaml.load(content, Loader=UniqueKeyLoader)
    except yaml.YAMLError as exc:
        raise ConfigValidationError(f"Invalid YAML in {path}: {exc}") from exc

    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise ConfigValidationError(f"Config file {path} must contain a mapping at root")
    return loaded


def _int_setting(
    doc: Mapping[str, Any],
    key: str,
    default: int,
    lower: int,
    upper: int,
    warnings: list[str],
) -> int:
    value = doc.get(key)
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        warnings.append(f"{key}={value!r} is not an integer; using {default}")
        return default
    number = int(value)
    clamped = min(max(number, lower), upper)
    if clamped != number:
        warnings.append(f"{key}={number} clamped to {clamped}")
    return clamped


def _str_setting(doc: Mapping[str, Any], key: str) -> str:
    value = doc.get(key)
    return value.strip() if isinstance(value, str) else ""


def _active_codes(doc: Mapping[str, Any]) -> tuple[str, ...]:
    value = doc.get("activeSliCodes")
    if not isinstance(value, (list, tuple)):
        return ()
    codes: list[str] = []
    for entry in value:
        code = normalize_input_code(entry)
        if code and code not in codes:
            codes.append(code)
    return tuple(codes)


def build_config(doc: Mapping[str, Any]) -> LoadedConfig:
    """Coerce a host-provided settings mapping into an AdapterConfig."""
    warnings: list[str] = []

    port_value = doc.get("port")
    if isinstance(port_value, int) and not isinstance(port_value, bool) and port_value > 0:
        port = _int_setting(doc, "port", DEFAULT_PORT, 1, 65535, warnings)
    else:
        port = DEFAULT_PORT

    config = AdapterConfig(
        id=_str_setting(doc, "id"),
        name=_str_setting(doc, "name"),
        host=_str_setting(doc, "host"),
        port=port,
        poll_interval_ms=_int_setting(
            doc, "pollIntervalMs", DEFAULT_POLL_INTERVAL_MS, 500, 300000, warnings
        ),
        retry_interval_ms=_int_setting(
            doc, "retryIntervalMs", DEFAULT_RETRY_INTERVAL_MS, 1000, 300000, warnings
        ),
        volume_max_raw=_int_setting(doc, "volumeMaxRaw", DEFAULT_VOLUME_MAX_RAW, 1, 500, warnings),
        active_sli_codes=_active_codes(doc),
        input_labels=label_overrides_from_mapping(doc),
        use_eiscp=doc.get("useEiscp", True) is not False,
        use_crlf=doc.get("useCrlf", False) is True,
        meta=dict(doc),
    )
    for warning in warnings:
        LOGGER.warning(warning)
    return LoadedConfig(config=config, warnings=tuple(warnings))


def load_config(path: Path | None = None) -> LoadedConfig:
    """Load and validate a YAML config file.

    Without an explicit path the XDG default is used; a missing default file
    yields the built-in defaults.
    """
    if path is None:
        path = default_config_path()
        if not path.exists():
            return build_config({})

    doc = _read_yaml(path)
    validator = _load_schema_validator()
    try:
        validator.validate(doc)
    except ValidationError as exc:
        where = ".".join(str(p) for p in exc.path)
        where = f" ({where})" if where else ""
        raise ConfigValidationError(f"Schema validation failed for {path}{where}: {exc.message}") from exc
    return build_config(doc)


def apply_overrides(config: AdapterConfig, **changes: Any) -> AdapterConfig:
    """Return ``config`` rebuilt with host-style keys replaced (e.g. host=..., port=...)."""
    doc = dict(config.meta)
    doc.update({key: value for key, value in changes.items() if value is not None})
    return build_config(doc).config
