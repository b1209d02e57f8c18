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

"""Layered configuration for pubkit.

Settings come from five layers; a higher layer wins key by key (tables
are merged, not replaced)::

    ┌───────────────────────────────┐  highest
    │ CLI overrides                 │
    ├───────────────────────────────┤
    │ PUBLISH_* environment         │
    ├───────────────────────────────┤
    │ <project>/.publish-config.toml│
    ├───────────────────────────────┤
    │ ~/.publish-config.toml        │
    ├───────────────────────────────┤
    │ built-in defaults             │
    └───────────────────────────────┘  lowest

Key Concepts (ELI5)::

    ┌─────────────────────────┬────────────────────────────────────────────┐
    │ Concept                 │ ELI5 Explanation                           │
    ├─────────────────────────┼────────────────────────────────────────────┤
    │ PublishConfig           │ The control panel: which registry, ask    │
    │                         │ before publishing?, scan for secrets?     │
    ├─────────────────────────┼────────────────────────────────────────────┤
    │ ${VAR} expansion        │ String values can pull from the           │
    │                         │ environment, e.g. tag = "${CHANNEL}".     │
    ├─────────────────────────┼────────────────────────────────────────────┤
    │ Fuzzy key matching      │ Typo a key and we suggest the closest     │
    │                         │ valid one.                                │
    └─────────────────────────┴────────────────────────────────────────────┘

Supported keys in ``.publish-config.toml``::

    default_registry = "npm"

    [publish]
    dry_run     = "first"      # "first" | "always" | "never"
    confirm     = true
    verify      = true
    interactive = true

    [security]
    secrets_scanning = true
    ignore_patterns  = ["fixtures/**"]

    [hooks]
    pre_build        = ["npm run build"]
    pre_publish      = []
    post_publish     = ["git tag v${VERSION}"]
    on_error         = []
    allowed_commands = ["npm", "git"]
    timeout          = 300

    [batch]
    sequential        = false
    continue_on_error = false
    max_concurrency   = 3

    [registries.npm]
    tag    = "latest"
    access = "public"
"""

from __future__ import annotations

import copy
import difflib
import os
import re
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

import tomlkit
import tomlkit.exceptions

from pubkit.backends._run import ALLOWED_COMMANDS
from pubkit.errors import E, PubkitError
from pubkit.logging import get_logger
from pubkit.options import ALLOWED_ACCESS, PublishOptions

logger = get_logger(__name__)

CONFIG_FILENAME = '.publish-config.toml'

DRY_RUN_MODES = ('first', 'always', 'never')
HOOK_PHASES = ('pre_build', 'pre_publish', 'post_publish', 'on_error')

_ENV_VAR_RE = re.compile(r'\$\{([A-Za-z_][A-Za-z0-9_]*)\}')
_TRUE = frozenset({'1', 'true', 'yes', 'on'})

# Expected type for every key; nested dicts are tables.
_SCHEMA: dict[str, Any] = {
    'default_registry': str,
    'publish': {
        'dry_run': str,
        'confirm': bool,
        'verify': bool,
        'interactive': bool,
    },
    'security': {
        'secrets_scanning': bool,
        'ignore_patterns': list,
    },
    'hooks': {
        'pre_build': list,
        'pre_publish': list,
        'post_publish': list,
        'on_error': list,
        'allowed_commands': list,
        'timeout': int,
    },
    'batch': {
        'sequential': bool,
        'continue_on_error': bool,
        'max_concurrency': int,
    },
    'registries': dict,
}

_REGISTRY_SCHEMA: dict[str, Any] = {
    'tag': str,
    'access': str,
}


@dataclass(frozen=True)
class PublishPolicy:
    """``[publish]`` table."""

    dry_run: str = 'first'
    confirm: bool = True
    verify: bool = True
    interactive: bool = True


@dataclass(frozen=True)
class SecurityConfig:
    """``[security]`` table."""

    secrets_scanning: bool = True
    ignore_patterns: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class HooksConfig:
    """``[hooks]`` table: commands per lifecycle phase."""

    pre_build: list[str] = field(default_factory=list)
    pre_publish: list[str] = field(default_factory=list)
    post_publish: list[str] = field(default_factory=list)
    on_error: list[str] = field(default_factory=list)
    allowed_commands: list[str] = field(default_factory=lambda: sorted(ALLOWED_COMMANDS))
    timeout: int = 300

    def commands(self, phase: str) -> list[str]:
        """Return the commands configured for ``phase``.

        Raises:
            ValueError: If ``phase`` is not a hook phase.
        """
        if phase not in HOOK_PHASES:
            raise ValueError(f"Unknown hook phase: '{phase}'")
        return list(getattr(self, phase))


@dataclass(frozen=True)
class BatchConfig:
    """``[batch]`` table."""

    sequential: bool = False
    continue_on_error: bool = False
    max_concurrency: int = 3


@dataclass(frozen=True)
class RegistryConfig:
    """``[registries.<name>]`` table."""

    tag: str | None = None
    access: str | None = None


@dataclass(frozen=True)
class PublishConfig:
    """Merged configuration.

    Attributes:
        default_registry: Registry used when detection finds nothing
            more specific and no override is given.
        publish: Confirmation, verification and dry-run policy.
        security: Secrets scanning toggles.
        hooks: Lifecycle hook commands.
        batch: Multi-registry defaults.
        registries: Per-registry publish defaults.
        sources: Files that contributed, lowest precedence first.
    """

    default_registry: str | None = None
    publish: PublishPolicy = field(default_factory=PublishPolicy)
    security: SecurityConfig = field(default_factory=SecurityConfig)
    hooks: HooksConfig = field(default_factory=HooksConfig)
    batch: BatchConfig = field(default_factory=BatchConfig)
    registries: dict[str, RegistryConfig] = field(default_factory=dict)
    sources: list[Path] = field(default_factory=list)

    def interactive(self, options: PublishOptions) -> bool:
        """Whether an attempt with ``options`` may prompt the operator."""
        if options.non_interactive is not None:
            return not options.non_interactive
        return self.publish.interactive

    def simulate_only(self, options: PublishOptions) -> bool:
        """Whether an attempt with ``options`` stops before publishing."""
        if options.dry_run is not None:
            return options.dry_run
        return self.publish.dry_run == 'always'

    def with_default_registry(self, options: PublishOptions) -> PublishOptions:
        """Use ``default_registry`` as the override when none was given."""
        if options.registry or not self.default_registry:
            return options
        return replace(options, registry=self.default_registry)

    def effective_options(self, options: PublishOptions, registry: str) -> PublishOptions:
        """Fill ``tag`` and ``access`` from ``[registries.<registry>]``."""
        defaults = self.registries.get(registry)
        if defaults is None:
            return options
        return replace(
            options,
            tag=options.tag or defaults.tag,
            access=options.access or defaults.access,
        )


def _suggest_key(unknown: str, valid: list[str]) -> str | None:
    """Return the closest valid key for a typo, or None."""
    matches = difflib.get_close_matches(unknown, valid, n=1, cutoff=0.6)
    return matches[0] if matches else None


def _unknown_key(key: str, valid: list[str], where: str) -> PubkitError:
    suggestion = _suggest_key(key.rsplit('.', 1)[-1], valid)
    hint = f"Did you mean '{suggestion}'?" if suggestion else f'Valid keys: {", ".join(sorted(valid))}'
    return PubkitError(E.CONFIG_INVALID_KEY, f"Unknown key '{key}' in {where}", hint=hint)


def _check_type(key: str, value: object, expected: type, where: str) -> None:
    # bool is a subclass of int; reject it where an int is expected.
    if expected is int and isinstance(value, bool):
        ok = False
    else:
        ok = isinstance(value, expected)
    if not ok:
        raise PubkitError(
            E.CONFIG_INVALID_VALUE,
            f"'{key}' in {where} must be {expected.__name__}, got {type(value).__name__}",
        )
    if expected is list and not all(isinstance(item, str) for item in value):  # type: ignore[union-attr]
        raise PubkitError(E.CONFIG_INVALID_VALUE, f"'{key}' in {where} must be a list of strings")


def validate_layer(raw: Mapping[str, Any], where: str) -> None:
    """Check keys and value types of one configuration layer.

    Raises:
        PubkitError: ``CONFIG_INVALID_KEY`` or ``CONFIG_INVALID_VALUE``.
    """
    for key, value in raw.items():
        if key not in _SCHEMA:
            raise _unknown_key(key, list(_SCHEMA), where)
        expected = _SCHEMA[key]
        if key == 'registries':
            _check_type(key, value, dict, where)
            for registry, table in value.items():
                _check_type(f'registries.{registry}', table, dict, where)
                for sub, sub_value in table.items():
                    if sub not in _REGISTRY_SCHEMA:
                        raise _unknown_key(f'registries.{registry}.{sub}', list(_REGISTRY_SCHEMA), where)
                    _check_type(f'registries.{registry}.{sub}', sub_value, _REGISTRY_SCHEMA[sub], where)
        elif isinstance(expected, dict):
            _check_type(key, value, dict, where)
            for sub, sub_value in value.items():
                if sub not in expected:
                    raise _unknown_key(f'{key}.{sub}', list(expected), where)
                _check_type(f'{key}.{sub}', sub_value, expected[sub], where)
        else:
            _check_type(key, value, expected, where)


def expand_env(value: Any, env: Mapping[str, str]) -> Any:  # noqa: ANN401 - recursive over TOML values
    """Expand ``${VAR}`` references in every string of ``value``."""
    if isinstance(value, str):

        def _sub(match: re.Match[str]) -> str:
            name = match.group(1)
            if name not in env:
                logger.warning('config_env_var_unset', variable=name)
                return ''
            return env[name]

        return _ENV_VAR_RE.sub(_sub, value)
    if isinstance(value, list):
        return [expand_env(item, env) for item in value]
    if isinstance(value, dict):
        return {k: expand_env(v, env) for k, v in value.items()}
    return value


def merge(base: dict[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    """Deep-merge ``override`` into a copy of ``base``; tables merge, values replace."""
    result = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(result.get(key), dict):
            result[key] = merge(result[key], value)
        else:
            result[key] = copy.deepcopy(value)
    return result


def read_config_file(path: Path, env: Mapping[str, str]) -> dict[str, Any]:
    """Parse, validate and env-expand one TOML file.

    Raises:
        PubkitError: ``CONFIG_PARSE_ERROR`` for invalid TOML, or a
            validation error from :func:`validate_layer`.
    """
    try:
        doc = tomlkit.parse(path.read_text(encoding='utf-8'))
    except tomlkit.exceptions.TOMLKitError as exc:
        raise PubkitError(
            E.CONFIG_PARSE_ERROR,
            f'Failed to parse {path}: {exc}',
            hint='Check the file for TOML syntax errors.',
        ) from exc
    raw = doc.unwrap()
    validate_layer(raw, str(path))
    return expand_env(raw, env)


def env_layer(env: Mapping[str, str]) -> dict[str, Any]:
    """Translate ``PUBLISH_*`` variables into a configuration layer."""
    layer: dict[str, Any] = {}
    if env.get('PUBLISH_REGISTRY'):
        layer['default_registry'] = env['PUBLISH_REGISTRY']
    dry_run = env.get('PUBLISH_DRY_RUN', '').strip().lower()
    if dry_run:
        if dry_run in DRY_RUN_MODES:
            mode = dry_run
        elif dry_run in _TRUE:
            mode = 'always'
        elif dry_run in {'0', 'false', 'no', 'off'}:
            mode = 'first'
        else:
            raise PubkitError(
                E.CONFIG_INVALID_VALUE,
                f"PUBLISH_DRY_RUN must be one of {', '.join(DRY_RUN_MODES)}, got '{dry_run}'",
            )
        layer.setdefault('publish', {})['dry_run'] = mode
    if env.get('PUBLISH_NON_INTERACTIVE', '').strip().lower() in _TRUE:
        layer.setdefault('publish', {})['interactive'] = False
    return layer


def _build(raw: Mapping[str, Any], sources: list[Path]) -> PublishConfig:
    publish = PublishPolicy(**raw.get('publish', {}))
    if publish.dry_run not in DRY_RUN_MODES:
        raise PubkitError(
            E.CONFIG_INVALID_VALUE,
            f"publish.dry_run must be one of {', '.join(DRY_RUN_MODES)}, got '{publish.dry_run}'",
        )
    batch = BatchConfig(**raw.get('batch', {}))
    if batch.max_concurrency < 1:
        raise PubkitError(E.CONFIG_INVALID_VALUE, f'batch.max_concurrency must be >= 1, got {batch.max_concurrency}')
    hooks = HooksConfig(**raw.get('hooks', {}))
    if hooks.timeout <= 0:
        raise PubkitError(E.CONFIG_INVALID_VALUE, f'hooks.timeout must be positive, got {hooks.timeout}')
    registries: dict[str, RegistryConfig] = {}
    for name, table in raw.get('registries', {}).items():
        entry = RegistryConfig(**table)
        if entry.access is not None and entry.access not in ALLOWED_ACCESS:
            raise PubkitError(
                E.CONFIG_INVALID_VALUE,
                f"registries.{name}.access must be 'public' or 'restricted', got '{entry.access}'",
            )
        registries[name] = entry
    return PublishConfig(
        default_registry=raw.get('default_registry') or None,
        publish=publish,
        security=SecurityConfig(**raw.get('security', {})),
        hooks=hooks,
        batch=batch,
        registries=registries,
        sources=sources,
    )


def load_config(
    project_dir: Path,
    *,
    env: Mapping[str, str] | None = None,
    home: Path | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> PublishConfig:
    """Load and merge every configuration layer.

    Args:
        project_dir: Project root holding ``.publish-config.toml``.
        env: Environment mapping (defaults to ``os.environ``).
        home: Directory holding the global file (defaults to ``~``).
        overrides: Highest-precedence layer, typically from CLI flags.

    Returns:
        A validated :class:`PublishConfig`.

    Raises:
        PubkitError: If any layer is malformed.
    """
    env = os.environ if env is None else env
    home = Path.home() if home is None else home

    merged: dict[str, Any] = {}
    sources: list[Path] = []
    for path in (home / CONFIG_FILENAME, project_dir / CONFIG_FILENAME):
        if path.is_file():
            merged = merge(merged, read_config_file(path, env))
            sources.append(path)
            logger.debug('config_layer_loaded', path=str(path))

    merged = merge(merged, env_layer(env))
    if overrides:
        validate_layer(overrides, 'command-line overrides')
        merged = merge(merged, overrides)

    return _build(merged, sources)


__all__ = [
    'CONFIG_FILENAME',
    'DRY_RUN_MODES',
    'HOOK_PHASES',
    'BatchConfig',
    'HooksConfig',
    'PublishConfig',
    'PublishPolicy',
    'RegistryConfig',
    'SecurityConfig',
    'env_layer',
    'expand_env',
    'load_config',
    'merge',
    'read_config_file',
    'validate_layer',
]
