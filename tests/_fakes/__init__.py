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

"""Shared test fakes for pubkit.

Provides reusable fakes for the backend contract, the locator, the
secrets scanner, the hook runner, the observer and the subprocess
runner so that individual
test modules don't need to duplicate boilerplate classes.

Usage::

    from tests._fakes import FakeBackend, FakeLocator

    backend = FakeBackend('npm')
    locator = FakeLocator({'npm': backend})
"""

from tests._fakes._backend import FakeBackend as FakeBackend, FakeLocator as FakeLocator, InFlight as InFlight
from tests._fakes._collaborators import (
    FakeHookRunner as FakeHookRunner,
    FakeScanner as FakeScanner,
    ListSink as ListSink,
    SpyObserver as SpyObserver,
)
from tests._fakes._runner import FakeRunner as FakeRunner

__all__ = [
    'FakeBackend',
    'FakeHookRunner',
    'FakeLocator',
    'FakeRunner',
    'FakeScanner',
    'InFlight',
    'ListSink',
    'SpyObserver',
]
