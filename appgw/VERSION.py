# Copyright 2018 Datawire. All rights reserved.
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
# limitations under the License

import os

# We don't log errors here, we just silently fall back to the static "0.1.0-dev"
# string. Logging setup hasn't happened yet when this runs.
Version = "0.1.0-dev"
Commit = "MISSING(FILE)"
try:
    with open(os.path.join(os.path.dirname(__file__), "appgw.version")) as version:
        info = version.read().split('\n')
        while len(info) < 2:
            info.append("MISSING(VAL)")

        Version = info[0] or Version
        Commit = info[1]
except FileNotFoundError:
    pass
