# Copyright 2024 Michael Maillet, Damien Davison, Sacha Davison
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

"""
Exceptions raised while loading and validating service definitions.
"""
from typing import Optional


class DrunnerError(Exception):
    """Base exception for all drunner errors."""

    pass


class ScriptError(DrunnerError):
    """Raised when a service definition script cannot be loaded or fails while running."""

    def __init__(self, path: str, message: str):
        self.path = str(path)
        self.message = message
        super().__init__(f"{self.path}: {message}")


class ServiceValidationError(DrunnerError):
    """Raised when a service definition is structurally invalid."""

    def __init__(self, message: str, service: Optional[str] = None):
        self.service = service
        if service:
            message = f"Service '{service}': {message}"
        super().__init__(message)


class DefinitionError(ServiceValidationError):
    """Raised by the definition builder for an invalid container, volume or config declaration."""

    pass


class ImageNameMismatchError(ServiceValidationError):
    """Raised when a reload derives a different IMAGENAME than the one already recorded."""

    def __init__(self, service: str, recorded: str, derived: str):
        self.recorded = recorded
        self.derived = derived
        super().__init__(
            f"IMAGENAME has changed from '{recorded}' to '{derived}'", service=service
        )


class PersistenceWarning(UserWarning):
    """Category for non-fatal problems reading persisted service variables."""

    pass


class HookTemplateError(DrunnerError):
    """Raised when a hook command template cannot be parsed or substituted."""

    pass
