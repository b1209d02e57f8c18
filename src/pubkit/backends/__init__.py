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

"""Registry backends for pubkit.

- :class:`~pubkit.backends.npm.NpmBackend`: npm registry
- :class:`~pubkit.backends.crates.CratesBackend`: crates.io
- :class:`~pubkit.backends.pypi.PyPIBackend`: PyPI
- :class:`~pubkit.backends.homebrew.HomebrewBackend`: Homebrew formulae
"""

from pubkit.backends.base import (
    Backend as Backend,
    BaseBackend as BaseBackend,
    FieldIssue as FieldIssue,
    PublishReceipt as PublishReceipt,
    RollbackReport as RollbackReport,
    SimulationReport as SimulationReport,
    ValidationReport as ValidationReport,
    VerificationReport as VerificationReport,
)
from pubkit.backends.locator import (
    BUILTIN_BACKENDS as BUILTIN_BACKENDS,
    BackendLocator as BackendLocator,
    DetectedRegistry as DetectedRegistry,
)

__all__ = [
    'BUILTIN_BACKENDS',
    'Backend',
    'BackendLocator',
    'BaseBackend',
    'DetectedRegistry',
    'FieldIssue',
    'PublishReceipt',
    'RollbackReport',
    'SimulationReport',
    'ValidationReport',
    'VerificationReport',
]
