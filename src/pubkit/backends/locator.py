# Copyright 2026 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
#
# SPDX-License-Identifier: Apache-2.0

"""Backend discovery and instantiation.

Backends are held in an ordered registry. Detection walks it in
declaration order and returns every match, so the same project always
yields the same candidate list and ``candidates[0]`` is reproducible.

Detection flow::

    project_dir
        │
        ├── npm       package.json?            ─→ DetectedRegistry(npm, …, 1.0)
        ├── crates    Cargo.toml [package]?    ─→ DetectedRegistry(crates, …, 1.0)
        ├── pypi      pyproject.toml/setup.py? ─→ DetectedRegistry(pypi, …, 1.0|0.9)
        └── homebrew  Formula/*.rb | *.rb?     ─→ DetectedRegistry(homebrew, …, 1.0|0.7)
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

from pubkit.backends.base import Backend, BaseBackend
from pubkit.backends.crates import CratesBackend
from pubkit.backends.homebrew import HomebrewBackend
from pubkit.backends.npm import NpmBackend
from pubkit.backends.pypi import PyPIBackend
from pubkit.errors import E, PubkitError
from pubkit.logging import get_logger

log = get_logger('pubkit.backends.locator')

BUILTIN_BACKENDS: tuple[tuple[str, type[BaseBackend]], ...] = (
    ('npm', NpmBackend),
    ('crates', CratesBackend),
    ('pypi', PyPIBackend),
    ('homebrew', HomebrewBackend),
)


@dataclass(frozen=True)
class DetectedRegistry:
    """One detection match.

    Attributes:
        registry_type: Backend name.
        manifest_path: File that triggered the match.
        confidence: 0.0-1.0; higher means a more specific signal.
    """

    registry_type: str
    manifest_path: Path
    confidence: float


class BackendLocator:
    """Ordered registry of backend classes.

    Args:
        backends: ``(name, class)`` pairs in priority order. Defaults to
            :data:`BUILTIN_BACKENDS`.
        backend_kwargs: Extra keyword arguments passed to every backend
            constructor (e.g. a test ``runner``).
    """

    def __init__(
        self,
        backends: tuple[tuple[str, type[BaseBackend]], ...] = BUILTIN_BACKENDS,
        **backend_kwargs: Any,  # noqa: ANN401 - forwarded to backend constructors
    ) -> None:
        """Initialize with an ordered backend table."""
        self._backends: dict[str, type[BaseBackend]] = dict(backends)
        self._backend_kwargs = backend_kwargs

    @property
    def names(self) -> list[str]:
        """Registered backend names in declaration order."""
        return list(self._backends)

    def register(self, name: str, backend: type[BaseBackend]) -> None:
        """Append a custom backend; re-registering a name replaces it in place."""
        self._backends[name] = backend

    def detect(self, path: Path) -> list[DetectedRegistry]:
        """Return every backend whose detection signal matches ``path``."""
        found: list[DetectedRegistry] = []
        for name, backend in self._backends.items():
            match = backend.probe(path)
            if match is None:
                continue
            manifest, confidence = match
            found.append(DetectedRegistry(registry_type=name, manifest_path=manifest, confidence=confidence))
        log.debug('registries_detected', path=str(path), found=[d.registry_type for d in found])
        return found

    def load(self, registry_type: str, project_dir: Path) -> Backend:
        """Instantiate the backend registered as ``registry_type``.

        Raises:
            PubkitError: ``REGISTRY_UNKNOWN`` if no such backend exists.
        """
        backend = self._backends.get(registry_type)
        if backend is None:
            raise PubkitError(
                E.REGISTRY_UNKNOWN,
                f"No backend for registry '{registry_type}'.",
                hint=f'Supported registries: {", ".join(self._backends)}.',
                registry=registry_type,
            )
        return backend(project_dir, **self._backend_kwargs)


__all__ = [
    'BUILTIN_BACKENDS',
    'BackendLocator',
    'DetectedRegistry',
]
