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

PORTFOLIOS_COLLECTION = "portfolios"
RATINGS_COLLECTION = "ratings"
USERS_COLLECTION = "users"

STAR_VALUES = (1, 2, 3, 4, 5)
MIN_STARS = STAR_VALUES[0]
MAX_STARS = STAR_VALUES[-1]

REQUIRED_PORTFOLIO_FIELDS = ("templateId", "heroSection", "aboutMe")

UNKNOWN_USER_NAME = "Unknown User"
UNKNOWN_USER_EMAIL = "Unknown"
ANONYMOUS_USER_NAME = "Anonymous User"

DEFAULT_RATINGS_PAGE_SIZE = 10
MAX_RATINGS_PAGE_SIZE = 100
MAX_REVIEW_LENGTH = 2000
