import json
import shlex
import tomllib
from pathlib import Path
from typing import Any, Mapping

import yaml

from procforge.executor.types import Task

from .types import ConfigError, ProjectConfig, ServiceConfig, UnsupportedConfigFormatError

TASK_SECTIONS = ("checks", "fix", "prepare")
TASK_KEYS = {"command", "cwd", "hint", "subsystem", "env", "requires"}
SERVICE_KEYS = {"command", "cwd", "env", "requires", "stdin"}


def load_project(path: str | Path) -> ProjectConfig:
    pure_path = Path(path).expanduser().resolve()

    if not pure_path.exists():
        raise ConfigError(f"Config file not found: {pure_path}")

    if not pure_path.is_file():
        raise ConfigError(f"Config path is not a file: {pure_path}")

    fmt = _detect_format(pure_path)
    raw_file = _parse_file(pure_path, fmt)
    return _build_project_config(raw_file)


def _detect_format(path: Path) -> str:
    match path.suffix:
        case ".yaml" | ".yml":
            return "yaml"
        case ".toml":
            return "toml"
        case ".json":
            return "json"
        case _:
            raise UnsupportedConfigFormatError(
                f"Non supported file extension: {path.suffix}\n Expected format: .yml/.yaml, .toml, .json"
            )


def _parse_file(path: Path, fmt: str) -> Mapping[str, Any]:
    text = path.read_text(encoding="utf-8")
    match fmt:
        case "yaml":
            try:
                raw_file = yaml.safe_load(text)
            except yaml.YAMLError as exc:
                raise ConfigError(f"{path}: invalid YAML") from exc
        case "toml":
            try:
                raw_file = tomllib.loads(text)
            except tomllib.TOMLDecodeError as exc:
                raise ConfigError(f"{path}: invalid TOML") from exc
        case "json":
            try:
                raw_file = json.loads(text)
            except json.JSONDecodeError as exc:
                raise ConfigError(f"{path}: invalid JSON") from exc
        case _:
            raise AssertionError("Unreachable")

    if not isinstance(raw_file, Mapping):
        raise ConfigError(
            f"{path}: {fmt.upper()} parsed successfully but top-level value is not an object: {type(raw_file)}"
        )

    return raw_file


def _build_project_config(raw: Mapping[str, Any]) -> ProjectConfig:
    for key in raw.keys():
        if key not in (*TASK_SECTIONS, "services"):
            raise ConfigError(f"Unknown top-level field: {key}")

    sections: dict[str, dict[str, Task]] = {}
    for section in TASK_SECTIONS:
        sections[section] = {
            name: _build_task(name, fields)
            for name, fields in _named_entries(raw, section)
        }

    services = {
        name: _build_service(name, fields)
        for name, fields in _named_entries(raw, "services")
    }

    if not sections["checks"] and not services:
        raise ConfigError("There must be at least one check or service in the config file")

    return ProjectConfig(
        checks=sections["checks"],
        fix=sections["fix"],
        prepare=sections["prepare"],
        services=services,
    )


def _named_entries(raw: Mapping[str, Any], section: str) -> list[tuple[str, Mapping[str, Any]]]:
    if section not in raw:
        return []

    entries = raw[section]
    if not isinstance(entries, Mapping):
        raise ConfigError(f"'{section}' must be a mapping, got {type(entries)}")

    out: list[tuple[str, Mapping[str, Any]]] = []
    seen: set[str] = set()

    for name, fields in entries.items():
        if not isinstance(name, str):
            raise ConfigError(f"{section}: name must be a string, got {type(name)}")

        name_norm = name.strip()

        if len(name_norm) < 1:
            raise ConfigError(f"{section}: a name can't be empty")

        if name_norm in seen:
            raise ConfigError(f"{section}: duplicate name after normalization: {name_norm}")

        if not isinstance(fields, Mapping):
            raise ConfigError(f"{name_norm} must be a mapping")

        seen.add(name_norm)
        out.append((name_norm, fields))

    return out


def _build_task(name: str, fields: Mapping[str, Any]) -> Task:
    _check_keys(name, fields, TASK_KEYS)

    hint = _optional_string(name, fields, "hint")
    subsystem = _optional_string(name, fields, "subsystem") or "general"

    return Task(
        name=name,
        argv=_command(name, fields),
        cwd=_optional_string(name, fields, "cwd"),
        hint=hint,
        subsystem=subsystem,
        env=_env(name, fields),
        requires=_requires(name, fields),
    )


def _build_service(name: str, fields: Mapping[str, Any]) -> ServiceConfig:
    _check_keys(name, fields, SERVICE_KEYS)

    stdin = fields.get("stdin", False)
    if not isinstance(stdin, bool):
        raise ConfigError(f"{name}: 'stdin' should be a boolean")

    return ServiceConfig(
        name=name,
        argv=_command(name, fields),
        cwd=_optional_string(name, fields, "cwd"),
        env=_env(name, fields),
        requires=_requires(name, fields),
        stdin=stdin,
    )


def _check_keys(name: str, fields: Mapping[str, Any], keys: set[str]) -> None:
    for field in fields.keys():
        if field not in keys:
            raise ConfigError(f"{name}: Can't process: {field}")

    if not "command" in fields:
        raise ConfigError(f"{name}: missing 'command'")


def _command(name: str, fields: Mapping[str, Any]) -> tuple[str, ...]:
    command = fields["command"]

    # A string is split like a shell would, but never executed through one
    if isinstance(command, str):
        try:
            argv = shlex.split(command)
        except ValueError as exc:
            raise ConfigError(f"{name}: can't split command: {exc}") from exc
    elif isinstance(command, list):
        for item in command:
            if not isinstance(item, str):
                raise ConfigError(f"{name}: {item!r} should be a string in the command list")
        argv = list(command)
    else:
        raise ConfigError(f"{name}: The command should be a string or a list of strings")

    if len(argv) < 1 or len(argv[0].strip()) < 1:
        raise ConfigError(f"{name}: Command missing")

    return tuple(argv)


def _optional_string(name: str, fields: Mapping[str, Any], key: str) -> str | None:
    if key not in fields:
        return None

    value = fields[key]
    if not isinstance(value, str):
        raise ConfigError(f"{name}: The {key} should be a string")

    if len(value.strip()) < 1:
        raise ConfigError(f"{name}: Please provide a non-empty {key} or remove this field")

    return value.strip()


def _env(name: str, fields: Mapping[str, Any]) -> dict[str, str]:
    env: dict[str, str] = {}

    if "env" not in fields:
        return env

    if not isinstance(fields["env"], Mapping):
        raise ConfigError(f"{name}: Env should be a mapping")

    for key, item in fields["env"].items():
        if not isinstance(key, str):
            raise ConfigError(f"{name}: {key} should be a string")

        if len(key.strip()) < 1:
            raise ConfigError(f"{name}: A key can't be empty")

        if not isinstance(item, str):
            raise ConfigError(f"{name}: {item} should be a string")

        env[key.strip()] = item

    return env


def _requires(name: str, fields: Mapping[str, Any]) -> tuple[str, ...]:
    if "requires" not in fields:
        return ()

    if not isinstance(fields["requires"], list):
        raise ConfigError(f"{name}: 'requires' should be a list of executable names")

    tools: list[str] = []
    for item in fields["requires"]:
        if not isinstance(item, str) or len(item.strip()) < 1:
            raise ConfigError(f"{name}: {item!r} should be a non-empty string in 'requires'")

        # Duplicates are ignored
        if item.strip() not in tools:
            tools.append(item.strip())

    return tuple(tools)
