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

"""Per-attempt publish options.

:class:`PublishOptions` is what a caller (the CLI or the batch
orchestrator) asks for on a single attempt. Fields left as ``None``
fall back to the loaded configuration; see
:meth:`pubkit.config.PublishConfig.interactive` and
:meth:`pubkit.config.PublishConfig.simulate_only`.
"""

from __future__ import annotations

from dataclasses import dataclass

ALLOWED_ACCESS = frozenset({'public', 'restricted'})


@dataclass(frozen=True)
class PublishOptions:
    """Options for one publish attempt.

    Attributes:
        registry: Explicit registry override.
        dry_run: Stop before publishing and report ``DRY_RUN``.
        non_interactive: Never prompt; ``None`` defers to config.
        resume: Continue an interrupted attempt.
        otp: One-time password for registries with 2FA.
        tag: Distribution tag (npm ``--tag``).
        access: ``public`` or ``restricted`` (npm scoped packages).
        skip_hooks: Do not run any lifecycle hooks.
        hooks_only: Run hooks but stop before publishing.
    """

    registry: str | None = None
    dry_run: bool | None = None
    non_interactive: bool | None = None
    resume: bool = False
    otp: str | None = None
    tag: str | None = None
    access: str | None = None
    skip_hooks: bool = False
    hooks_only: bool = False

    def __post_init__(self) -> None:
        """Validate ``access``."""
        if self.access is not None and self.access not in ALLOWED_ACCESS:
            raise ValueError(f'access must be one of {sorted(ALLOWED_ACCESS)}, got {self.access!r}')


__all__ = [
    'ALLOWED_ACCESS',
    'PublishOptions',
]
