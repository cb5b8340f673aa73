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

"""Exploration noise with a decaying standard deviation."""

import functools

import jax
import jax.numpy as jnp

from pendulab.core import Obj
from pendulab.core import field


class NoiseState(Obj):
  value: jnp.ndarray = field(jaxed=True)
  std: float = field(0.0, jaxed=True)


class Noise(Obj):
  """Base class. `std` shrinks by a factor `1 - decay` per sample."""
  size: int = field(1, jaxed=False)
  std: float = field(0.3, jaxed=False)
  std_min: float = field(0.0, jaxed=False)
  decay: float = field(1e-5, jaxed=False)

  def init(self):
    return NoiseState(value=jnp.zeros(self.size), std=jnp.asarray(self.std))

  def reset(self, state):
    """Restarts the process for a new episode, keeping the decayed std."""
    return state.replace(value=jnp.zeros(self.size))

  def _decay(self, std):
    return jnp.maximum(std * (1.0 - self.decay), self.std_min)

  def sample(self, state, key, num):
    """Returns `num` consecutive samples as a `(num, size)` array."""
    return _rollout(self, state, key, num)


@functools.partial(jax.jit, static_argnums=(0, 3))
def _rollout(noise, state, key, num):

  def step(carry, k):
    carry, value = noise(carry, k)
    return carry, value

  return jax.lax.scan(step, state, jax.random.split(key, num))


class Gaussian(Noise):

  def __call__(self, state, key):
    value = state.std * jax.random.normal(key, (self.size,))
    return state.replace(value=value, std=self._decay(state.std)), value


class OrnsteinUhlenbeck(Noise):
  """`x += theta (mean - x) dt + std sqrt(dt) N(0, 1)`."""
  theta: float = field(0.15, jaxed=False)
  mean: float = field(0.0, jaxed=False)
  dt: float = field(1.0, jaxed=False)

  def __call__(self, state, key):
    x = state.value
    value = (x + self.theta * (self.mean - x) * self.dt +
             state.std * jnp.sqrt(self.dt) * jax.random.normal(key, x.shape))
    return state.replace(value=value, std=self._decay(state.std)), value


NOISES = {"gaussian": Gaussian, "ou": OrnsteinUhlenbeck}


def make_noise(name, **kwargs):
  if name not in NOISES:
    raise ValueError(f"Unknown noise `{name}`; expected one of {sorted(NOISES)}.")
  return NOISES[name].create(**kwargs)
