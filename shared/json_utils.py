# Copyright 2025 Google LLC
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
# ==============================================================================

from typing import Any


def snake_to_camel(value: str) -> str:
    head, *rest = value.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


def convert_keys(data: Any) -> Any:
    """Recursively renames snake_case dict keys to camelCase.

    Non-string keys (e.g. the integer star values of a rating distribution)
    are left untouched.
    """
    if isinstance(data, dict):
        return {
            (snake_to_camel(key) if isinstance(key, str) else key): convert_keys(value)
            for key, value in data.items()
        }
    if isinstance(data, list):
        return [convert_keys(item) for item in data]
    return data
