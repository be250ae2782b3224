"""Built-in components and how to launch them once installed."""

from __future__ import annotations

from collections.abc import Iterable, Iterator

from binstaller.errors import ConfigError
from binstaller.models import ComponentConfig, ComponentSpec

LANGUAGE_SERVER = ComponentSpec(
    id="languageServer",
    binary_name="jsonnet-language-server",
    display_name="language server",
)

DEBUGGER = ComponentSpec(
    id="debugger",
    binary_name="jsonnet-debugger",
    display_name="debugger",
    launch_args=("-d", "-s"),
)

# Boolean config keys that append a flag to the language server command line
_LANGUAGE_SERVER_FLAGS = (
    ("tankaMode", "--tanka"),
    ("lint", "--lint"),
)


class ComponentRegistry:
    """Process-wide set of manageable components, keyed by id."""

    def __init__(self, specs: Iterable[ComponentSpec] = ()) -> None:
        self._specs: dict[str, ComponentSpec] = {}
        for spec in specs:
            self.register(spec)

    def register(self, spec: ComponentSpec) -> None:
        if spec.id in self._specs:
            raise ConfigError(f"Component '{spec.id}' is already registered")
        self._specs[spec.id] = spec

    def get(self, component_id: str) -> ComponentSpec:
        try:
            return self._specs[component_id]
        except KeyError:
            known = ", ".join(sorted(self._specs)) or "none"
            raise ConfigError(f"Unknown component '{component_id}' (known: {known})") from None

    @property
    def ids(self) -> list[str]:
        return list(self._specs)

    def __iter__(self) -> Iterator[ComponentSpec]:
        return iter(self._specs.values())

    def __len__(self) -> int:
        return len(self._specs)


def default_registry() -> ComponentRegistry:
    return ComponentRegistry([LANGUAGE_SERVER, DEBUGGER])


def launch_command(spec: ComponentSpec, path: str, config: ComponentConfig) -> list[str]:
    """Command line that starts an installed component."""
    args = [path, *spec.launch_args]
    if spec.id == LANGUAGE_SERVER.id:
        args += ["--log-level", str(config.extra.get("logLevel") or "info")]
        for key, flag in _LANGUAGE_SERVER_FLAGS:
            if str(config.extra.get(key)).lower() == "true":
                args.append(flag)
    return args
