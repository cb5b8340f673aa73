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

"""pendulab.core.

Immutable configuration objects and the plant/agent protocols every
controller and environment in the package is built on.
"""
import dataclasses
import os
import pickle
from abc import abstractmethod

import flax
import flax.struct
import jax
import numpy as np


def save(obj, path):
  """Pickles `obj` to `path`, creating parent directories as needed."""
  dirname = os.path.abspath(os.path.dirname(path))
  if not os.path.exists(dirname):
    os.makedirs(dirname)

  with open(path, "wb") as file:
    pickle.dump(obj, file)


def load(path):
  with open(path, "rb") as file:
    return pickle.load(file)


def field(default=None, jaxed=True, **kwargs):
  if "default_factory" not in kwargs:
    kwargs["default"] = default
  kwargs["pytree_node"] = jaxed
  return flax.struct.field(**kwargs)


class Obj:
  """Frozen flax dataclass with a `setup` hook.

  Subclasses are turned into `flax.struct.dataclass`es. `create` builds the
  object, runs `setup` (the only place attributes may be assigned), and
  freezes it; afterwards use `replace` to derive modified copies.
  """

  def freeze(self):
    object.__setattr__(self, "__frozen__", True)

  def unfreeze(self):
    object.__setattr__(self, "__frozen__", False)

  def is_frozen(self):
    return not hasattr(self, "__frozen__") or getattr(self, "__frozen__")

  def __new__(cls, *args, **kwargs):

    def __setattr__(self, name, value):
      if self.is_frozen():
        raise dataclasses.FrozenInstanceError(
            f"cannot assign to field '{name}' of frozen {type(self).__name__}")
      object.__setattr__(self, name, value)

    def replace(self, **updates):
      obj = dataclasses.replace(self, **updates)
      obj.freeze()
      return obj

    cls.__setattr__ = __setattr__
    cls.replace = replace

    obj = object.__new__(cls)
    obj.unfreeze()

    return obj

  @classmethod
  def __init_subclass__(cls, *args, **kwargs):
    flax.struct.dataclass(cls)

  @classmethod
  def create(cls, *args, **kwargs):
    obj = cls(*args, **kwargs)
    obj.setup()
    obj.freeze()

    return obj

  def setup(self):
    """Used in place of __init__"""

  def flatten(self):
    return jax.tree_util.tree_flatten(self)[0]


class PlantState(Obj):
  """Integrated plant state and the number of samples taken."""
  arr: jax.Array = field(jaxed=True)
  h: int = field(0, jaxed=True)


class Plant(Obj):
  """Continuous-time plant sampled at a fixed interval `dt`.

  `dynamics` and `output` are pure functions of arrays so they can be
  differentiated and linearized; `init` and `__call__` follow the
  `(state, observation)` convention used by every environment.
  """

  @abstractmethod
  def dynamics(self, state, inputs):
    """Return the state derivative."""

  @abstractmethod
  def output(self, state):
    """Return the measured output."""

  @abstractmethod
  def init(self, *args, **kwargs):
    """Return an initial `(state, output)` pair."""

  @abstractmethod
  def __call__(self, state, inputs):
    """Return the `(state, output)` pair one sample interval later."""

  @property
  @abstractmethod
  def state_size(self) -> int:
    """Return the size of the state vector"""

  @property
  @abstractmethod
  def input_size(self) -> int:
    """Return the size of the input vector"""

  @property
  def output_size(self) -> int:
    return int(np.size(self.output(np.zeros(self.state_size))))


class Agent(Obj):

  @abstractmethod
  def __call__(self, state, obs, *args, **kwargs):
    """Return an updated state and an action"""

  @abstractmethod
  def init(self, *args, **kwargs):
    """Return the initial agent state"""


class Disturbance(Obj):

  @abstractmethod
  def __call__(self, t):
    """Returns the disturbance input vector at time `t`"""


class Trajectory(Obj):
  """Time-indexed record of a closed-loop run or policy rollout.

  `states` and `outputs` hold one row per entry of `times`, starting with the
  initial sample. `inputs`, `references`, `rewards`, `statuses` and
  `saturated` hold one row per step, one fewer than `times`. Fields that do
  not apply to a run (e.g. `rewards` for an MPC loop) are left as `None`.
  """
  times: np.ndarray = field(jaxed=False)
  states: np.ndarray = field(jaxed=False)
  inputs: np.ndarray = field(jaxed=False)
  outputs: np.ndarray = field(jaxed=False)
  references: np.ndarray = field(jaxed=False)
  rewards: np.ndarray = field(jaxed=False)
  statuses: np.ndarray = field(jaxed=False)
  saturated: np.ndarray = field(jaxed=False)
  faults: int = field(0, jaxed=False)
  aborted: bool = field(False, jaxed=False)
  cause: str = field(None, jaxed=False)

  def __len__(self):
    return len(self.times)
