from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping

from procforge.executor.types import Task


@dataclass(frozen=True)
class ServiceConfig:
    name: str
    argv: tuple[str, ...]
    cwd: str | None = None
    env: Mapping[str, str] = field(default_factory=dict, hash=False)
    requires: tuple[str, ...] = ()
    stdin: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "env", MappingProxyType(dict(self.env)))


@dataclass
class ProjectConfig:
    checks: dict[str, Task] = field(default_factory=dict)
    fix: dict[str, Task] = field(default_factory=dict)
    prepare: dict[str, Task] = field(default_factory=dict)
    services: dict[str, ServiceConfig] = field(default_factory=dict)

    def __len__(self):
        return len(self.checks) + len(self.services)

    def has_check(self, name: str) -> bool:
        return name in self.checks

    def get_check(self, name: str) -> Task:
        if not self.has_check(name):
            raise KeyError(name)

        return self.checks[name]

    def get_service(self, name: str) -> ServiceConfig:
        if name not in self.services:
            raise KeyError(name)

        return self.services[name]

    def select_checks(self, names: list[str]) -> list[Task]:
        if not names:
            return list(self.checks.values())
        return [self.get_check(name) for name in names]

    def select_services(self, names: list[str]) -> list[ServiceConfig]:
        if not names:
            return list(self.services.values())
        return [self.get_service(name) for name in names]


class ConfigError(Exception):
    def __init__(self, *args: object) -> None:
        super().__init__(*args)


class UnsupportedConfigFormatError(ConfigError):
    def __init__(self, *args: object) -> None:
        super().__init__(*args)
