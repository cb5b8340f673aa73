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

"""pendulab."""

from pendulab import agents
from pendulab import analysis
from pendulab import envs
from pendulab import experiment
from pendulab import plants
from pendulab import training
from pendulab import utils
from pendulab.core import Agent
from pendulab.core import Disturbance
from pendulab.core import Obj
from pendulab.core import Plant
from pendulab.core import PlantState
from pendulab.core import Trajectory
from pendulab.core import field
from pendulab.core import load
from pendulab.core import save
from pendulab.linearize import LinearizationError
from pendulab.linearize import LinearModel
from pendulab.linearize import OperatingPoint
from pendulab.linearize import discretize
from pendulab.linearize import linearize

__version__ = "0.1.0"

__all__ = (
    "agents",
    "analysis",
    "envs",
    "experiment",
    "plants",
    "training",
    "utils",
    "Agent",
    "Disturbance",
    "LinearModel",
    "LinearizationError",
    "Obj",
    "OperatingPoint",
    "Plant",
    "PlantState",
    "Trajectory",
    "discretize",
    "field",
    "linearize",
    "load",
    "save",
)
