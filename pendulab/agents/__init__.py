# Copyright 2026 The Pendulab Authors.
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

from pendulab.agents._ddpg import Actor
from pendulab.agents._ddpg import Critic
from pendulab.agents._ddpg import DDPG
from pendulab.agents._ddpg import DDPGConfig
from pendulab.agents._ddpg import DDPGState
from pendulab.agents._mpc import MPC
from pendulab.agents._mpc import MPCConfig
from pendulab.agents._mpc import MPCState
from pendulab.agents._mpc import MPCStatus
from pendulab.agents._pid import PID
from pendulab.agents._pid import PIDState

__all__ = [
    "Actor",
    "Critic",
    "DDPG",
    "DDPGConfig",
    "DDPGState",
    "MPC",
    "MPCConfig",
    "MPCState",
    "MPCStatus",
    "PID",
    "PIDState",
]
