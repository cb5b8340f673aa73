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

"""Fixed-capacity replay memory."""

import collections
import threading

import jax
import numpy as np

Batch = collections.namedtuple(
    "Batch", ["obs", "action", "reward", "next_obs", "terminal"])


class ReplayBuffer:
  """Ring buffer of transitions with uniform sampling.

  Once `capacity` transitions have been stored each insertion overwrites the
  oldest one. Writers and samplers share a single lock: `sample` snapshots
  the current size and copies the selected rows while holding it, so a
  sampled row is never a partially overwritten slot.
  """

  def __init__(self, capacity, obs_dim, action_dim):
    if capacity < 1:
      raise ValueError(f"capacity must be positive, got {capacity}.")
    self.capacity = int(capacity)
    self.obs_dim = int(obs_dim)
    self.action_dim = int(action_dim)
    self._lock = threading.Lock()
    self._obs = np.zeros((capacity, obs_dim), dtype=np.float32)
    self._action = np.zeros((capacity, action_dim), dtype=np.float32)
    self._reward = np.zeros((capacity,), dtype=np.float32)
    self._next_obs = np.zeros((capacity, obs_dim), dtype=np.float32)
    self._terminal = np.zeros((capacity,), dtype=np.float32)
    self._next = 0
    self._size = 0
    self._added = 0

  def __len__(self):
    return self._size

  @property
  def total_added(self):
    return self._added

  def add(self, obs, action, reward, next_obs, terminal):
    with self._lock:
      i = self._next
      self._obs[i] = np.reshape(obs, (self.obs_dim,))
      self._action[i] = np.reshape(action, (self.action_dim,))
      self._reward[i] = reward
      self._next_obs[i] = np.reshape(next_obs, (self.obs_dim,))
      self._terminal[i] = float(terminal)
      self._next = (i + 1) % self.capacity
      self._size = min(self._size + 1, self.capacity)
      self._added += 1

  def sample(self, key, batch_size):
    """Draws `batch_size` distinct transitions uniformly.

    Raises:
      ValueError: if fewer than `batch_size` transitions are stored.
    """
    with self._lock:
      size = self._size
      if batch_size > size:
        raise ValueError(
            f"Cannot sample {batch_size} transitions from a replay buffer "
            f"holding {size}.")
      idx = np.asarray(
          jax.random.choice(key, size, (batch_size,), replace=False))
      return Batch(
          obs=self._obs[idx].copy(),
          action=self._action[idx].copy(),
          reward=self._reward[idx].copy(),
          next_obs=self._next_obs[idx].copy(),
          terminal=self._terminal[idx].copy())

  def transitions(self):
    """All stored transitions, oldest first."""
    with self._lock:
      order = (np.arange(self._size) + self._next - self._size) % self.capacity
      return Batch(
          obs=self._obs[order].copy(),
          action=self._action[order].copy(),
          reward=self._reward[order].copy(),
          next_obs=self._next_obs[order].copy(),
          terminal=self._terminal[order].copy())

  def state_dict(self):
    with self._lock:
      return {
          "capacity": self.capacity,
          "obs_dim": self.obs_dim,
          "action_dim": self.action_dim,
          "obs": self._obs.copy(),
          "action": self._action.copy(),
          "reward": self._reward.copy(),
          "next_obs": self._next_obs.copy(),
          "terminal": self._terminal.copy(),
          "next": self._next,
          "size": self._size,
          "added": self._added,
      }

  @classmethod
  def from_state_dict(cls, state):
    buffer = cls(state["capacity"], state["obs_dim"], state["action_dim"])
    buffer._obs[:] = state["obs"]
    buffer._action[:] = state["action"]
    buffer._reward[:] = state["reward"]
    buffer._next_obs[:] = state["next_obs"]
    buffer._terminal[:] = state["terminal"]
    buffer._next = state["next"]
    buffer._size = state["size"]
    buffer._added = state["added"]
    return buffer
