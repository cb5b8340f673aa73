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

"""Episodic reset/step wrapper around a sampled plant."""

import inspect
from abc import abstractmethod

import jax
import jax.numpy as jnp
import numpy as np
from absl import logging
from gymnasium import spaces

EnvRegistry = {}


def make_env(name, *args, **kwargs):
  if name not in EnvRegistry:
    raise ValueError(f"Env `{name}` not found.")
  return EnvRegistry[name](*args, **kwargs)


class EpisodeDoneError(RuntimeError):
  """`step` was called on a finished episode without a `reset`."""


def wrap_angle(theta):
  return (theta + np.pi) % (2.0 * np.pi) - np.pi


class ControlEnv:
  """Episodic environment over a `pendulab.core.Plant`.

  `step` clips the action to `action_space`, advances the plant by one
  sample, and reports `(obs, reward, done, info)`. `info["cause"]` is
  `"step_budget"`, a failure name or `None` while the episode is running;
  `info["terminal"]` is true only for failures, so value targets should not
  bootstrap through them. Stepping a finished episode raises
  `EpisodeDoneError`.
  """
  observation_space = None
  action_space = None
  angle_index = None

  def __init__(self, plant, max_steps):
    if max_steps < 1:
      raise ValueError(f"max_steps must be positive, got {max_steps}.")
    self.plant = plant
    self.max_steps = int(max_steps)
    self._advance = jax.jit(plant.__call__)
    self._state = None
    self._steps = 0
    self._done = True

  @classmethod
  def __init_subclass__(cls, *args, **kwargs):
    super().__init_subclass__(*args, **kwargs)
    if cls.__name__ not in EnvRegistry and not inspect.isabstract(cls):
      EnvRegistry[cls.__name__] = cls

  @property
  def obs_dim(self):
    return self.observation_space.shape[0]

  @property
  def action_dim(self):
    return self.action_space.shape[0]

  @property
  def action_scale(self):
    return float(np.max(np.abs(self.action_space.high)))

  @property
  def dt(self):
    return self.plant.dt

  @property
  def state(self):
    return None if self._state is None else np.asarray(self._state.arr)

  @abstractmethod
  def initial_state(self, key):
    """Return the plant state an episode starts from."""

  @abstractmethod
  def observe(self, state):
    """Return the observation of a plant state."""

  @abstractmethod
  def reward(self, state, action, failed):
    """Return the scalar reward for arriving in `state`."""

  @abstractmethod
  def plant_inputs(self, action):
    """Map a clipped action to the plant input vector."""

  def limit_state(self, state):
    """Return `state` with any hard physical limits applied."""
    return state

  def failure(self, state):
    """Return the name of a violated physical bound, or None."""
    del state
    return None

  def reset(self, key=None):
    plant_state, _ = self.plant.init()
    arr = np.asarray(self.initial_state(key), dtype=np.float32)
    self._state = plant_state.replace(arr=jnp.asarray(arr))
    self._steps = 0
    self._done = False
    return self.observe(arr)

  def step(self, action):
    if self._done:
      raise EpisodeDoneError(
          "Episode is over; call reset() before stepping again.")

    action = np.clip(
        np.reshape(np.asarray(action, dtype=np.float32), self.action_space.shape),
        self.action_space.low, self.action_space.high)
    self._state, _ = self._advance(self._state, self.plant_inputs(action))
    self._steps += 1
    state = np.asarray(self._state.arr)
    limited = self.limit_state(state)
    if limited is not state:
      state = np.asarray(limited, dtype=state.dtype)
      self._state = self._state.replace(arr=jnp.asarray(state))

    cause, terminal = None, False
    if not np.all(np.isfinite(state)):
      cause, terminal = "non_finite_state", True
      logging.warning("Non-finite plant state %s after %d steps.", state,
                      self._steps)
    else:
      cause = self.failure(state)
      terminal = cause is not None
    if cause is None and self._steps >= self.max_steps:
      cause = "step_budget"

    done = cause is not None
    self._done = done
    reward = float(self.reward(state, action, terminal))
    info = {
        "cause": cause,
        "terminal": terminal,
        "steps": self._steps,
        "state": state,
        "action": action,
    }
    return self.observe(state), reward, done, info


def box(low, high):
  return spaces.Box(
      low=np.asarray(low, dtype=np.float32),
      high=np.asarray(high, dtype=np.float32),
      dtype=np.float32)
