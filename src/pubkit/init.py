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

"""Scaffold ``.publish-config.toml`` for a project.

``pubkit init`` writes a commented configuration file with the defaults
spelled out, pre-selects the detected registry, and adds the state and
analytics directories to ``.gitignore``. Running it again is a no-op
unless ``force`` is given.
"""

from __future__ import annotations

from pathlib import Path

import tomlkit

from pubkit.analytics import ANALYTICS_DIRNAME
from pubkit.backends.locator import BackendLocator
from pubkit.config import CONFIG_FILENAME
from pubkit.logging import get_logger
from pubkit.state import STATE_DIRNAME

logger = get_logger(__name__)

GITIGNORE_PATTERNS: list[str] = [
    f'{STATE_DIRNAME}/',
    f'{ANALYTICS_DIRNAME}/',
]


def generate_config_toml(default_registry: str | None = None) -> str:
    """Render the default configuration as TOML."""
    doc = tomlkit.document()
    doc.add(tomlkit.comment('pubkit configuration. CLI flags and PUBLISH_* variables override these values.'))
    if default_registry:
        doc.add('default_registry', tomlkit.item(default_registry))
    doc.add(tomlkit.nl())

    publish = tomlkit.table()
    publish.add('dry_run', tomlkit.item('first'))
    publish['dry_run'].comment('"first" | "always" | "never"')
    publish.add('confirm', tomlkit.item(True))
    publish.add('verify', tomlkit.item(True))
    publish.add('interactive', tomlkit.item(True))
    doc.add('publish', publish)

    security = tomlkit.table()
    security.add('secrets_scanning', tomlkit.item(True))
    security.add('ignore_patterns', tomlkit.item([]))
    doc.add('security', security)

    hooks = tomlkit.table()
    for phase in ('pre_build', 'pre_publish', 'post_publish', 'on_error'):
        hooks.add(phase, tomlkit.item([]))
    hooks.add('timeout', tomlkit.item(300))
    doc.add('hooks', hooks)

    batch = tomlkit.table()
    batch.add('sequential', tomlkit.item(False))
    batch.add('continue_on_error', tomlkit.item(False))
    batch.add('max_concurrency', tomlkit.item(3))
    doc.add('batch', batch)

    return tomlkit.dumps(doc)


def write_default_config(project_dir: Path, *, force: bool = False) -> Path | None:
    """Write ``.publish-config.toml`` into ``project_dir``.

    Args:
        project_dir: Project root.
        force: Overwrite an existing file.

    Returns:
        The written path, or ``None`` if a file already existed.
    """
    config_path = project_dir / CONFIG_FILENAME
    if config_path.exists() and not force:
        logger.info('config_exists', path=str(config_path))
        return None

    detected = BackendLocator().detect(project_dir)
    default_registry = detected[0].registry_type if detected else None
    config_path.write_text(generate_config_toml(default_registry), encoding='utf-8')
    logger.info('config_created', path=str(config_path), default_registry=default_registry)

    _update_gitignore(project_dir / '.gitignore')
    return config_path


def _update_gitignore(gitignore_path: Path) -> None:
    """Append pubkit patterns to .gitignore if not already present."""
    existing = ''
    if gitignore_path.exists():
        existing = gitignore_path.read_text(encoding='utf-8')

    lines_to_add = [pattern for pattern in GITIGNORE_PATTERNS if pattern not in existing]
    if not lines_to_add:
        return

    with gitignore_path.open('a', encoding='utf-8') as f:
        if existing and not existing.endswith('\n'):
            f.write('\n')
        for line in lines_to_add:
            f.write(line + '\n')


__all__ = [
    'GITIGNORE_PATTERNS',
    'generate_config_toml',
    'write_default_config',
]
