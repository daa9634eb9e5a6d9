"""Registries for pluggable Directory clients and clinical stores.

Extra components can be listed in a plugin file::

    {
      "clients": [{"name": "graphql", "module": "acme.sync", "class_name": "GraphqlClient"}],
      "stores": [{"name": "omop", "module": "acme.sync", "class_name": "OmopStore"}]
    }

Each entry is imported at startup and becomes selectable through the matching
config key (``directory.client`` or ``source.type``).
"""

from __future__ import annotations

import importlib
import json
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Generic, TypeVar

from directorysync.config import ComponentSpec
from directorysync.directory import (
    DirectoryRestClient,
    FileOutputRegistryClient,
    InMemoryRegistryClient,
    RegistryClient,
)
from directorysync.errors import ConfigurationError
from directorysync.sources import ClinicalStore, CsvClinicalStore, FhirStoreClient

ComponentT = TypeVar("ComponentT")

PLUGIN_FIELDS: tuple[str, ...] = ("name", "module", "class_name")


@dataclass(frozen=True)
class ComponentPluginSpec:
    """Spec describing a dynamically imported client or store implementation."""

    name: str
    module: str
    class_name: str

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> ComponentPluginSpec:
        missing = [key for key in PLUGIN_FIELDS if not raw.get(key)]
        if missing:
            raise ConfigurationError(f"Plugin entry {dict(raw)} is missing {', '.join(missing)}")
        return cls(name=str(raw["name"]), module=str(raw["module"]), class_name=str(raw["class_name"]))


class ComponentRegistry(Generic[ComponentT]):
    """Map the names used in sync configs to component constructors.

    ``config_key`` is the config path that selects a component from this
    registry; it is quoted in lookup errors.
    """

    def __init__(self, kind: str, config_key: str | None = None) -> None:
        self.kind = kind
        self.config_key = config_key
        self._factories: dict[str, Callable[..., ComponentT]] = {}

    def register(self, name: str, factory: Callable[..., ComponentT]) -> None:
        key = name.strip().lower()
        if not key:
            raise ValueError(f"{self.kind.capitalize()} name cannot be empty")
        if key in self._factories:
            raise ValueError(f"{self.kind.capitalize()} already registered: {name}")
        self._factories[key] = factory

    def register_plugin(self, plugin: ComponentPluginSpec) -> None:
        """Register a component by importing a module/class at runtime."""

        try:
            module = importlib.import_module(plugin.module)
            component_cls = getattr(module, plugin.class_name)
        except (ImportError, AttributeError) as exc:
            raise ConfigurationError(
                f"Cannot load {self.kind} plugin '{plugin.name}' from {plugin.module}.{plugin.class_name}: {exc}"
            ) from exc
        self.register(plugin.name, component_cls)

    def load_plugins(self, entries: Iterable[Mapping[str, Any]]) -> list[str]:
        names = []
        for raw in entries:
            plugin = ComponentPluginSpec.from_mapping(raw)
            self.register_plugin(plugin)
            names.append(plugin.name)
        return names

    def create(self, name: str, **kwargs: Any) -> ComponentT:
        key = name.strip().lower()
        if key not in self._factories:
            source = f" (set by '{self.config_key}')" if self.config_key else ""
            raise KeyError(
                f"Unknown {self.kind} '{name}'{source}. Available: {', '.join(self.available())}"
            )
        return self._factories[key](**kwargs)

    def create_from(self, spec: ComponentSpec, **defaults: Any) -> ComponentT:
        """Build ``spec``; its params win over ``defaults``."""

        params = dict(defaults)
        params.update(spec.params)
        return self.create(spec.name, **params)

    def available(self) -> list[str]:
        return sorted(self._factories.keys())


def build_default_client_registry() -> ComponentRegistry[RegistryClient]:
    """Create a registry preloaded with the built-in Directory clients."""

    registry: ComponentRegistry[RegistryClient] = ComponentRegistry("directory client", "directory.client")
    registry.register(DirectoryRestClient.name, DirectoryRestClient)
    registry.register(FileOutputRegistryClient.name, FileOutputRegistryClient)
    registry.register(InMemoryRegistryClient.name, InMemoryRegistryClient)
    return registry


def build_default_store_registry() -> ComponentRegistry[ClinicalStore]:
    """Create a registry preloaded with the built-in clinical stores."""

    registry: ComponentRegistry[ClinicalStore] = ComponentRegistry("clinical store", "source.type")
    registry.register(FhirStoreClient.name, FhirStoreClient)
    registry.register(CsvClinicalStore.name, CsvClinicalStore)
    return registry


def register_plugin_file(
    path: str | Path,
    clients: ComponentRegistry[RegistryClient],
    stores: ComponentRegistry[ClinicalStore],
) -> list[str]:
    """Register every plugin listed in a plugin file; returns the new names."""

    plugin_path = Path(path)
    try:
        payload = json.loads(plugin_path.read_text())
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigurationError(f"Cannot read plugin file {plugin_path}: {exc}") from exc
    if not isinstance(payload, dict):
        raise ConfigurationError(f"Plugin file {plugin_path} must hold a JSON object")

    return [
        *clients.load_plugins(payload.get("clients", [])),
        *stores.load_plugins(payload.get("stores", [])),
    ]
