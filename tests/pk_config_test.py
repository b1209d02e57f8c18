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

"""Tests for pubkit.config module."""

from __future__ import annotations

from pathlib import Path

import pytest
from pubkit.config import (
    CONFIG_FILENAME,
    HooksConfig,
    PublishConfig,
    PublishPolicy,
    RegistryConfig,
    env_layer,
    expand_env,
    load_config,
    merge,
)
from pubkit.errors import E, PubkitError
from pubkit.logging import configure_logging
from pubkit.options import PublishOptions

configure_logging(quiet=True)


def _write(directory: Path, content: str) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / CONFIG_FILENAME
    path.write_text(content, encoding='utf-8')
    return path


def _load(project: Path, home: Path, env: dict[str, str] | None = None, **kwargs: object) -> PublishConfig:
    return load_config(project, env=env or {}, home=home, **kwargs)  # type: ignore[arg-type]


class TestDefaults:
    """No files, no environment."""

    def test_defaults(self, tmp_path: Path) -> None:
        """Built-in defaults apply when nothing is configured."""
        config = _load(tmp_path / 'proj', tmp_path / 'home')
        if config.default_registry is not None:
            raise AssertionError(f'Unexpected default_registry: {config.default_registry}')
        if config.publish != PublishPolicy():
            raise AssertionError(f'Unexpected publish policy: {config.publish}')
        if not config.security.secrets_scanning or config.hooks.timeout != 300:
            raise AssertionError('Unexpected security or hooks defaults')
        if config.batch.max_concurrency != 3 or config.sources:
            raise AssertionError(f'Unexpected batch or sources: {config.batch} {config.sources}')


class TestLayering:
    """Global file, project file, environment, overrides."""

    def test_project_beats_global(self, tmp_path: Path) -> None:
        """Project values win key by key; untouched global keys survive."""
        home, project = tmp_path / 'home', tmp_path / 'proj'
        _write(home, 'default_registry = "pypi"\n[publish]\nverify = false\nconfirm = false\n')
        _write(project, '[publish]\nconfirm = true\n')
        config = _load(project, home)
        if config.default_registry != 'pypi':
            raise AssertionError(f'Global default_registry lost: {config.default_registry}')
        if config.publish.verify or not config.publish.confirm:
            raise AssertionError(f'Tables should merge: {config.publish}')
        if len(config.sources) != 2:
            raise AssertionError(f'Expected two sources, got {config.sources}')

    def test_env_beats_files(self, tmp_path: Path) -> None:
        """PUBLISH_* variables override both files."""
        project = tmp_path / 'proj'
        _write(project, 'default_registry = "npm"\n')
        env = {'PUBLISH_REGISTRY': 'crates', 'PUBLISH_DRY_RUN': 'true', 'PUBLISH_NON_INTERACTIVE': '1'}
        config = _load(project, tmp_path / 'home', env)
        if config.default_registry != 'crates':
            raise AssertionError(f'Expected crates, got {config.default_registry}')
        if config.publish.dry_run != 'always' or config.publish.interactive:
            raise AssertionError(f'Unexpected publish policy: {config.publish}')

    def test_overrides_beat_env(self, tmp_path: Path) -> None:
        """CLI overrides are the top layer."""
        env = {'PUBLISH_REGISTRY': 'crates'}
        config = _load(tmp_path, tmp_path / 'home', env, overrides={'default_registry': 'npm'})
        if config.default_registry != 'npm':
            raise AssertionError(f'Expected npm, got {config.default_registry}')

    def test_registry_tables(self, tmp_path: Path) -> None:
        """[registries.<name>] tables become RegistryConfig entries."""
        _write(tmp_path, '[registries.npm]\ntag = "next"\naccess = "public"\n')
        config = _load(tmp_path, tmp_path / 'home')
        if config.registries != {'npm': RegistryConfig(tag='next', access='public')}:
            raise AssertionError(f'Unexpected registries: {config.registries}')


class TestValidation:
    """Malformed configuration."""

    def test_unknown_key_suggests(self, tmp_path: Path) -> None:
        """A typo gets a 'Did you mean' hint."""
        _write(tmp_path, '[publish]\nconfrim = true\n')
        with pytest.raises(PubkitError) as exc_info:
            _load(tmp_path, tmp_path / 'home')
        if exc_info.value.code != E.CONFIG_INVALID_KEY or 'confirm' not in exc_info.value.hint:
            raise AssertionError(f'Unexpected error: {exc_info.value} / {exc_info.value.hint}')

    def test_wrong_type(self, tmp_path: Path) -> None:
        """A string where a bool is expected is rejected."""
        _write(tmp_path, '[publish]\nverify = "yes"\n')
        with pytest.raises(PubkitError) as exc_info:
            _load(tmp_path, tmp_path / 'home')
        if exc_info.value.code != E.CONFIG_INVALID_VALUE:
            raise AssertionError(f'Expected CONFIG_INVALID_VALUE, got {exc_info.value.code}')

    def test_bool_is_not_int(self, tmp_path: Path) -> None:
        """timeout = true is not an integer."""
        _write(tmp_path, '[hooks]\ntimeout = true\n')
        with pytest.raises(PubkitError):
            _load(tmp_path, tmp_path / 'home')

    def test_parse_error(self, tmp_path: Path) -> None:
        """Broken TOML raises CONFIG_PARSE_ERROR."""
        _write(tmp_path, '[publish\n')
        with pytest.raises(PubkitError) as exc_info:
            _load(tmp_path, tmp_path / 'home')
        if exc_info.value.code != E.CONFIG_PARSE_ERROR:
            raise AssertionError(f'Expected CONFIG_PARSE_ERROR, got {exc_info.value.code}')

    @pytest.mark.parametrize(
        'content',
        [
            '[publish]\ndry_run = "sometimes"\n',
            '[batch]\nmax_concurrency = 0\n',
            '[hooks]\ntimeout = -1\n',
            '[registries.npm]\naccess = "secret"\n',
        ],
    )
    def test_bad_values(self, tmp_path: Path, content: str) -> None:
        """Out-of-range values raise CONFIG_INVALID_VALUE."""
        _write(tmp_path, content)
        with pytest.raises(PubkitError) as exc_info:
            _load(tmp_path, tmp_path / 'home')
        if exc_info.value.code != E.CONFIG_INVALID_VALUE:
            raise AssertionError(f'Expected CONFIG_INVALID_VALUE, got {exc_info.value.code}')

    def test_bad_env_dry_run(self) -> None:
        """PUBLISH_DRY_RUN must be a mode or a boolean."""
        with pytest.raises(PubkitError):
            env_layer({'PUBLISH_DRY_RUN': 'maybe'})


class TestExpandEnv:
    """${VAR} expansion."""

    def test_nested_values(self) -> None:
        """Strings inside lists and tables are expanded."""
        value = {'hooks': {'post_publish': ['git tag v${TAG}']}, 'name': '${NAME}'}
        expanded = expand_env(value, {'TAG': '1.0', 'NAME': 'demo'})
        if expanded != {'hooks': {'post_publish': ['git tag v1.0']}, 'name': 'demo'}:
            raise AssertionError(f'Unexpected expansion: {expanded}')

    def test_unset_is_empty(self) -> None:
        """Unset variables expand to an empty string."""
        if expand_env('a${MISSING}b', {}) != 'ab':
            raise AssertionError('Unset variable should vanish')

    def test_project_file_uses_env(self, tmp_path: Path) -> None:
        """Config files see the env mapping given to load_config."""
        _write(tmp_path, '[registries.npm]\ntag = "${CHANNEL}"\n')
        config = _load(tmp_path, tmp_path / 'home', {'CHANNEL': 'beta'})
        if config.registries['npm'].tag != 'beta':
            raise AssertionError(f'Unexpected tag: {config.registries["npm"].tag}')


class TestMerge:
    """merge() semantics."""

    def test_tables_merge_values_replace(self) -> None:
        """Nested dicts merge; lists are replaced whole."""
        base = {'a': {'x': 1, 'y': [1, 2]}, 'b': 1}
        result = merge(base, {'a': {'y': [3]}, 'c': 2})
        if result != {'a': {'x': 1, 'y': [3]}, 'b': 1, 'c': 2}:
            raise AssertionError(f'Unexpected merge: {result}')
        if base != {'a': {'x': 1, 'y': [1, 2]}, 'b': 1}:
            raise AssertionError('merge() mutated its input')


class TestPublishConfigHelpers:
    """Option resolution helpers on PublishConfig."""

    def test_interactive_option_wins(self) -> None:
        """An explicit non_interactive beats the config."""
        config = PublishConfig(publish=PublishPolicy(interactive=True))
        if config.interactive(PublishOptions(non_interactive=True)):
            raise AssertionError('non_interactive=True should disable prompts')
        if not config.interactive(PublishOptions()):
            raise AssertionError('Config default should apply')

    def test_simulate_only(self) -> None:
        """dry_run option beats dry_run = 'always'."""
        config = PublishConfig(publish=PublishPolicy(dry_run='always'))
        if not config.simulate_only(PublishOptions()):
            raise AssertionError('"always" should simulate only')
        if config.simulate_only(PublishOptions(dry_run=False)):
            raise AssertionError('dry_run=False should win')

    def test_with_default_registry(self) -> None:
        """default_registry fills an empty override only."""
        config = PublishConfig(default_registry='pypi')
        if config.with_default_registry(PublishOptions()).registry != 'pypi':
            raise AssertionError('Default registry not applied')
        if config.with_default_registry(PublishOptions(registry='npm')).registry != 'npm':
            raise AssertionError('Explicit registry must win')

    def test_effective_options(self) -> None:
        """Registry defaults fill only unset tag and access."""
        config = PublishConfig(registries={'npm': RegistryConfig(tag='next', access='public')})
        options = config.effective_options(PublishOptions(tag='beta'), 'npm')
        if options.tag != 'beta' or options.access != 'public':
            raise AssertionError(f'Unexpected options: {options}')
        if config.effective_options(PublishOptions(), 'pypi') != PublishOptions():
            raise AssertionError('Unknown registry should leave options untouched')

    def test_hook_commands(self) -> None:
        """commands() returns a copy for known phases and rejects others."""
        hooks = HooksConfig(pre_build=['make'])
        if hooks.commands('pre_build') != ['make']:
            raise AssertionError('Unexpected commands')
        with pytest.raises(ValueError):
            hooks.commands('pre_deploy')
