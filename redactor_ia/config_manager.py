"""Layered configuration loader and CLI for Redactor IA.

Layers are merged in a fixed order (built-in defaults, ``config.toml``,
``.env`` and finally ``REDACTOR__SECTION__KEY`` process variables). Every
value remembers the layer it came from so ``--explain`` can report it.
"""
from __future__ import annotations

import argparse
import json
import os
import shutil
import sys
import tempfile
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Mapping, MutableMapping, Optional, Sequence

import tomli_w
from dotenv import dotenv_values
from pydantic import ValidationError

try:  # Python 3.11+
    import tomllib
except ModuleNotFoundError:  # pragma: no cover - Python 3.10
    import tomli as tomllib  # type: ignore[no-redef]

from redactor_ia.config_schema import DEFAULT_CONFIG, Config, iter_field_docs

DEFAULT_ENV_PREFIX = "REDACTOR"
DEFAULT_CONFIG_FILENAME = "config.toml"
DEFAULT_ENV_FILENAME = ".env"
BACKUP_DIRNAME = "backups"
MASK = "***masked***"

# Plain environment variables honoured for credentials when the config leaves them empty.
SECRET_ENV_FALLBACKS: Dict[str, str] = {
    "llm.openai_api_key": "OPENAI_API_KEY",
    "llm.anthropic_api_key": "ANTHROPIC_API_KEY",
    "collection.newsapi_key": "NEWSAPI_KEY",
    "facebook.page_token": "FACEBOOK_PAGE_TOKEN",
    "facebook.page_id": "FACEBOOK_PAGE_ID",
}


@dataclass(frozen=True)
class ConfigValueOrigin:
    """Where a single configuration value came from."""

    layer: str
    source: str
    env_var: str | None = None

    def render(self) -> str:
        details = [item for item in (self.env_var, self.source) if item]
        if details:
            return f"{self.layer} ({', '.join(details)})"
        return self.layer


@dataclass
class ConfigMetadata:
    """Provenance information attached to a loaded :class:`Config`."""

    config_path: Path
    env_path: Optional[Path]
    env_prefix: str
    provenance: Dict[str, ConfigValueOrigin] = field(default_factory=dict)
    load_order: tuple[str, ...] = ("defaults", "file", "env-file", "env")

    def describe_sources(self) -> list[str]:
        env_file = f".env file: {self.env_path}" if self.env_path else ".env file: not found"
        return [
            "defaults: built into redactor_ia.config_schema",
            f"config file: {self.config_path}",
            env_file,
            f"environment prefix: {self.env_prefix}__*",
        ]


class ConfigError(RuntimeError):
    """Raised when configuration loading or validation fails."""


def _project_root() -> Path:
    return Path(__file__).resolve().parents[1]


def _default_paths() -> tuple[Path, Path]:
    root = _project_root()
    return root / DEFAULT_CONFIG_FILENAME, root / DEFAULT_ENV_FILENAME


def _is_secret(path: str) -> bool:
    lowered = path.lower()
    return any(token in lowered for token in ("password", "secret", "token", "key"))


def _copy_tree(mapping: Mapping[str, Any]) -> Dict[str, Any]:
    copied: Dict[str, Any] = {}
    for key, value in mapping.items():
        if isinstance(value, Mapping):
            copied[key] = _copy_tree(value)
        elif isinstance(value, list):
            copied[key] = [_copy_tree(v) if isinstance(v, Mapping) else v for v in value]
        else:
            copied[key] = value
    return copied


def _merge_layer(
    target: MutableMapping[str, Any],
    updates: Mapping[str, Any],
    provenance: Dict[str, ConfigValueOrigin],
    *,
    origin: ConfigValueOrigin,
    prefix: str = "",
) -> None:
    for key, value in updates.items():
        dotted = f"{prefix}.{key}" if prefix else str(key)
        if isinstance(value, Mapping):
            branch = target.get(key)
            if not isinstance(branch, MutableMapping):
                branch = {}
                target[key] = branch
            _merge_layer(branch, value, provenance, origin=origin, prefix=dotted)
            continue
        target[key] = value
        provenance[dotted] = origin


def _coerce_text(value: str) -> Any:
    """Turn a textual override into bool, None, number, JSON or plain text."""

    text = value.strip()
    if not text:
        return ""
    lowered = text.lower()
    if lowered in {"true", "false"}:
        return lowered == "true"
    if lowered in {"null", "none"}:
        return None
    try:
        return int(text)
    except ValueError:
        pass
    try:
        return float(text)
    except ValueError:
        pass
    if text[0] + text[-1] in ("[]", "{}"):
        try:
            return json.loads(text)
        except json.JSONDecodeError:
            return text
    return text


def _env_key_to_path(raw_key: str, prefix: str) -> str:
    if not raw_key.startswith(prefix + "__"):
        raise ConfigError(f"Environment override '{raw_key}' does not start with {prefix}__")
    segments = [part.lower() for part in raw_key[len(prefix) + 2 :].split("__") if part]
    if not segments:
        raise ConfigError(f"Environment override '{raw_key}' is missing key segments")
    return ".".join(segments)


def _assign_path(target: MutableMapping[str, Any], path: str, value: Any) -> None:
    *parents, leaf = path.split(".")
    node: MutableMapping[str, Any] = target
    for segment in parents:
        child = node.get(segment)
        if not isinstance(child, MutableMapping):
            child = {}
            node[segment] = child
        node = child
    node[leaf] = value


def _resolve_value(mapping: Mapping[str, Any], path: str) -> Any:
    node: Any = mapping
    for segment in path.split("."):
        if not isinstance(node, Mapping) or segment not in node:
            raise ConfigError(f"Unknown configuration key: {path}")
        node = node[segment]
    return node


def _flatten(mapping: Mapping[str, Any], prefix: str = "") -> Dict[str, Any]:
    flat: Dict[str, Any] = {}
    for key, value in mapping.items():
        dotted = f"{prefix}.{key}" if prefix else str(key)
        if isinstance(value, Mapping):
            flat.update(_flatten(value, dotted))
        else:
            flat[dotted] = value
    return flat


def _to_toml_payload(value: Any) -> Any:
    if isinstance(value, Config):
        return _to_toml_payload(value.model_dump(mode="python"))
    if value is None:
        # TOML has no null; unset optionals are stored as empty strings.
        return ""
    if isinstance(value, Mapping):
        return {key: _to_toml_payload(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_to_toml_payload(item) for item in value]
    if isinstance(value, Path):
        return str(value)
    return value


def _load_toml(path: Path) -> Mapping[str, Any]:
    try:
        with path.open("rb") as handle:
            return tomllib.load(handle)
    except FileNotFoundError:
        return {}
    except (tomllib.TOMLDecodeError, OSError) as exc:
        raise ConfigError(f"Failed to parse {path}: {exc}") from exc


def _write_atomic(path: Path, payload: Mapping[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with tempfile.NamedTemporaryFile(
        prefix=".redactor-config-", dir=str(path.parent), delete=False
    ) as handle:
        tmp_path = Path(handle.name)
        tomli_w.dump(payload, handle)
    try:
        if path.exists():
            stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
            backup_dir = path.parent / BACKUP_DIRNAME
            backup_dir.mkdir(parents=True, exist_ok=True)
            shutil.copy2(path, backup_dir / f"{path.name}.{stamp}.bak")
        os.replace(tmp_path, path)
    except OSError as exc:
        tmp_path.unlink(missing_ok=True)
        raise ConfigError(f"Failed to persist configuration: {exc}") from exc


def _detect_env_path(config_path: Path) -> Path:
    candidate = config_path.parent / DEFAULT_ENV_FILENAME
    if candidate.exists():
        return candidate
    default_env = _default_paths()[1]
    return default_env if default_env.exists() else candidate


def _validation_error(
    error: ValidationError, provenance: Mapping[str, ConfigValueOrigin]
) -> ConfigError:
    lines: list[str] = []
    for record in error.errors():
        location = ".".join(str(part) for part in record.get("loc", ()))
        origin = provenance.get(location)
        detail = record.get("msg", "invalid value")
        received = record.get("input")
        if received is not None and not _is_secret(location):
            detail += f" (received={received!r})"
        suffix = f" [{origin.render()}]" if origin else ""
        lines.append(f"{location or '<root>'}: {detail}{suffix}")
    return ConfigError("Configuration validation failed:\n - " + "\n - ".join(lines))


def _apply_secret_fallbacks(
    merged: MutableMapping[str, Any],
    provenance: Dict[str, ConfigValueOrigin],
    runtime_env: Mapping[str, str],
) -> None:
    for path, env_name in SECRET_ENV_FALLBACKS.items():
        current = _resolve_value(merged, path)
        value = runtime_env.get(env_name)
        if current in (None, "") and value:
            _assign_path(merged, path, value)
            provenance[path] = ConfigValueOrigin(layer="env", source="process", env_var=env_name)


def load_config(
    path: Path | None = None,
    *,
    env_prefix: str = DEFAULT_ENV_PREFIX,
    environ: Mapping[str, str] | None = None,
) -> Config:
    """Build a validated :class:`Config` from every configuration layer."""

    config_path = path or _default_paths()[0]
    env_path = _detect_env_path(config_path)
    runtime_env = os.environ if environ is None else environ

    defaults = DEFAULT_CONFIG.model_dump(mode="python")
    merged = _copy_tree(defaults)
    provenance: Dict[str, ConfigValueOrigin] = {}
    _merge_layer(
        merged,
        defaults,
        provenance,
        origin=ConfigValueOrigin(layer="defaults", source="redactor_ia.config_schema"),
    )

    file_data = _load_toml(config_path)
    if file_data:
        _merge_layer(
            merged,
            file_data,
            provenance,
            origin=ConfigValueOrigin(layer="file", source=str(config_path)),
        )

    if env_path.exists():
        for key, value in dotenv_values(env_path, verbose=False).items():
            if value is None or not key.startswith(env_prefix + "__"):
                continue
            dotted = _env_key_to_path(key, env_prefix)
            _assign_path(merged, dotted, _coerce_text(value))
            provenance[dotted] = ConfigValueOrigin(
                layer="env-file", source=str(env_path), env_var=key
            )

    for key, value in runtime_env.items():
        if not key.startswith(env_prefix + "__"):
            continue
        dotted = _env_key_to_path(key, env_prefix)
        _assign_path(merged, dotted, _coerce_text(value))
        provenance[dotted] = ConfigValueOrigin(layer="env", source="process", env_var=key)

    _apply_secret_fallbacks(merged, provenance, runtime_env)

    try:
        config = Config.model_validate(merged)
    except ValidationError as exc:
        raise _validation_error(exc, provenance) from exc
    config._metadata = ConfigMetadata(
        config_path=config_path,
        env_path=env_path if env_path.exists() else None,
        env_prefix=env_prefix,
        provenance=provenance,
    )
    return config


def save_config(config: Config, path: Path | None = None) -> Path:
    """Write the configuration to TOML, keeping a timestamped backup."""

    metadata = getattr(config, "_metadata", None)
    target = path or (metadata.config_path if metadata else _default_paths()[0])
    _write_atomic(target, _to_toml_payload(config))
    return target


def _render(value: Any) -> str:
    if isinstance(value, Path):
        return str(value)
    try:
        return json.dumps(value, ensure_ascii=False)
    except TypeError:
        return repr(value)


def _diff_configs(before: Mapping[str, Any], after: Mapping[str, Any]) -> list[str]:
    old_flat, new_flat = _flatten(before), _flatten(after)
    changes: list[str] = []
    for key in sorted(set(old_flat) | set(new_flat)):
        old, new = old_flat.get(key), new_flat.get(key)
        if old == new:
            continue
        if _is_secret(key):
            changes.append(f"{key}: {MASK} -> {MASK}")
        else:
            changes.append(f"{key}: {_render(old)} -> {_render(new)}")
    return changes


def _schema_table() -> str:
    headers = ["Field", "Type", "Default", "Description", "Constraints"]
    rows = ["| " + " | ".join(headers) + " |", "|" + " --- |" * len(headers)]
    for entry in iter_field_docs(DEFAULT_CONFIG):
        default = "" if entry["default"] is None else _render(entry["default"])
        if _is_secret(str(entry["name"])) and default:
            default = MASK
        cells = [
            str(entry["name"]),
            str(entry["type"]),
            default,
            str(entry["description"]),
            str(entry["constraints"]),
        ]
        rows.append("| " + " | ".join(cells) + " |")
    return "\n".join(rows)


def _explain(config: Config, key: str) -> str:
    metadata: ConfigMetadata | None = getattr(config, "_metadata", None)
    if metadata is None:
        raise ConfigError("Configuration metadata is unavailable")
    value = _resolve_value(config.model_dump(mode="python"), key)
    origin = metadata.provenance.get(key)
    shown = MASK if _is_secret(key) else _render(value)
    return f"{key} = {shown}\nsource: {origin.render() if origin else 'unknown'}"


def _apply_updates(config: Config, updates: Mapping[str, str]) -> Config:
    baseline = config.model_dump(mode="python")
    known = set(_flatten(baseline))
    updated = _copy_tree(baseline)
    metadata: ConfigMetadata | None = getattr(config, "_metadata", None)
    for key, raw in updates.items():
        if key not in known:
            parent = key.rpartition(".")[0]
            if not parent or not isinstance(_resolve_value(baseline, parent), Mapping):
                raise ConfigError(f"Unknown configuration key: {key}")
        _assign_path(updated, key, _coerce_text(raw))
        if metadata:
            metadata.provenance[key] = ConfigValueOrigin(layer="cli", source="runtime")
    try:
        refreshed = Config.model_validate(updated)
    except ValidationError as exc:
        raise _validation_error(exc, metadata.provenance if metadata else {}) from exc
    refreshed._metadata = metadata
    return refreshed


def main(argv: Sequence[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Redactor IA configuration utilities",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("--config", type=Path, help="Path to the TOML configuration file")
    parser.add_argument(
        "--env-prefix",
        default=DEFAULT_ENV_PREFIX,
        help="Environment prefix (e.g. REDACTOR__SCANNER__STRICT_CUBA)",
    )
    actions = parser.add_mutually_exclusive_group(required=True)
    actions.add_argument("--validate", action="store_true", help="Validate the active configuration")
    actions.add_argument("--dump-defaults", action="store_true", help="Print built-in defaults as TOML")
    actions.add_argument("--print-schema", action="store_true", help="Print a Markdown table of all fields")
    actions.add_argument("--show-sources", action="store_true", help="Show configuration source precedence")
    actions.add_argument("--explain", metavar="KEY", help="Explain where a value comes from")
    actions.add_argument("--set", nargs="+", metavar="KEY=VALUE", help="Validate and persist updates")
    args = parser.parse_args(argv)

    try:
        if args.dump_defaults:
            sys.stdout.write(tomli_w.dumps(_to_toml_payload(DEFAULT_CONFIG)))
            return 0
        if args.print_schema:
            sys.stdout.write(_schema_table() + "\n")
            return 0

        config = load_config(args.config, env_prefix=args.env_prefix)
        if args.validate:
            print("Configuration OK")
        elif args.show_sources:
            metadata: ConfigMetadata = config._metadata  # type: ignore[assignment]
            print("Active configuration sources:")
            for line in metadata.describe_sources():
                print(f"- {line}")
        elif args.explain:
            print(_explain(config, args.explain))
        elif args.set:
            updates: Dict[str, str] = {}
            for item in args.set:
                if "=" not in item:
                    raise ConfigError(f"Invalid --set argument: '{item}'")
                key, value = item.split("=", 1)
                updates[key.strip()] = value
            refreshed = _apply_updates(config, updates)
            for line in _diff_configs(config.model_dump(mode="python"), refreshed.model_dump(mode="python")):
                print(line)
            print(f"Saved configuration to {save_config(refreshed, args.config)}")
    except ConfigError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":  # pragma: no cover - module CLI entry point
    raise SystemExit(main())
