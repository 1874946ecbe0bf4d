"""Configuration persistence."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Protocol

import yaml

from mutate.core.errors import RuleDecodeError
from mutate.core.schema import Configuration

logger = logging.getLogger(__name__)


class ConfigStore(Protocol):
    """Persistence contract for rule configurations."""

    def get(self, configuration_id: str) -> Configuration | None: ...

    def save(self, configuration: Configuration) -> Configuration: ...

    def versions(self, configuration_id: str) -> list[Configuration]: ...


class InMemoryConfigStore:
    """Keeps every version of every configuration; ``get`` returns the latest."""

    def __init__(self, configurations: list[Configuration] | None = None) -> None:
        self._versions: dict[str, list[Configuration]] = {}
        for configuration in configurations or []:
            self.save(configuration)

    def get(self, configuration_id: str) -> Configuration | None:
        history = self._versions.get(configuration_id)
        return history[-1] if history else None

    def save(self, configuration: Configuration) -> Configuration:
        history = self._versions.setdefault(configuration.id, [])
        if not history:
            history.append(configuration)
            return configuration

        current = history[-1]
        if current.same_definition(configuration):
            # metadata-only edits do not create a version
            updated = configuration.model_copy(update={"version": current.version})
            history[-1] = updated
            return updated

        updated = configuration.model_copy(update={"version": current.version + 1})
        history.append(updated)
        logger.info("Configuration %s is now at version %s", configuration.id, updated.version)
        return updated

    def versions(self, configuration_id: str) -> list[Configuration]:
        return list(self._versions.get(configuration_id, []))

    def reset(self) -> None:
        self._versions.clear()


def load_configuration_file(path: Path) -> Configuration:
    """Read one configuration from a YAML document."""

    try:
        with path.open("r", encoding="utf-8") as fp:
            data = yaml.safe_load(fp)
    except yaml.YAMLError as exc:
        raise RuleDecodeError(f"{path.name}: invalid YAML: {exc}") from exc
    if not isinstance(data, dict):
        raise RuleDecodeError(f"{path.name}: expected a mapping at the top level")
    data.setdefault("id", path.stem)
    return Configuration.from_dict(data)


class YamlConfigStore:
    """Configurations kept as one ``<id>.yaml`` file each."""

    def __init__(self, directory: Path) -> None:
        self._directory = Path(directory)

    def _path_for(self, configuration_id: str) -> Path | None:
        for suffix in (".yaml", ".yml"):
            candidate = self._directory / f"{configuration_id}{suffix}"
            if candidate.is_file():
                return candidate
        return None

    def get(self, configuration_id: str) -> Configuration | None:
        path = self._path_for(configuration_id)
        if path is None:
            return None
        return load_configuration_file(path)

    def save(self, configuration: Configuration) -> Configuration:
        current = self.get(configuration.id)
        version = configuration.version
        if current is not None:
            version = current.version if current.same_definition(configuration) else current.version + 1
        stored = configuration.model_copy(update={"version": version})

        self._directory.mkdir(parents=True, exist_ok=True)
        path = self._path_for(configuration.id) or self._directory / f"{configuration.id}.yaml"
        document = stored.model_dump(mode="json", by_alias=True, exclude_none=True)
        with path.open("w", encoding="utf-8") as fp:
            yaml.safe_dump(document, fp, allow_unicode=True, sort_keys=False)
        return stored

    def versions(self, configuration_id: str) -> list[Configuration]:
        # files only hold the current version
        current = self.get(configuration_id)
        return [current] if current is not None else []
