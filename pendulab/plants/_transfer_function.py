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

"""SISO plant given by a rational transfer function."""

import jax.numpy as jnp
import numpy as np
from scipy import signal

from pendulab.core import Plant
from pendulab.core import PlantState
from pendulab.core import field

# pylint:disable=invalid-name


class TransferFunction(Plant):
  """`num(s) / den(s)` realized in controllable canonical form.

  `dynamics` evaluates the continuous realization; `__call__` advances the
  exact zero-order-hold discretization by one sample.
  """
  num: tuple = field((1.0,), jaxed=False)
  den: tuple = field((1.0, 10.0, 20.0), jaxed=False)
  dt: float = field(0.01, jaxed=False)
  A: jnp.ndarray = field(jaxed=True)
  B: jnp.ndarray = field(jaxed=True)
  C: jnp.ndarray = field(jaxed=True)
  D: jnp.ndarray = field(jaxed=True)
  Ad: jnp.ndarray = field(jaxed=True)
  Bd: jnp.ndarray = field(jaxed=True)

  def setup(self):
    self.num = tuple(float(v) for v in np.atleast_1d(self.num))
    self.den = tuple(float(v) for v in np.atleast_1d(self.den))
    if len(np.trim_zeros(self.num, "f")) >= len(self.den):
      raise ValueError("Transfer function must be strictly proper.")
    A, B, C, D = signal.tf2ss(self.num, self.den)
    Ad, Bd, _, _, _ = signal.cont2discrete((A, B, C, D), self.dt, method="zoh")
    self.A, self.B = jnp.asarray(A), jnp.asarray(B)
    self.C, self.D = jnp.asarray(C), jnp.asarray(D)
    self.Ad, self.Bd = jnp.asarray(Ad), jnp.asarray(Bd)

  @property
  def state_size(self):
    return len(self.den) - 1

  @property
  def input_size(self):
    return 1

  @property
  def output_size(self):
    return 1

  def dynamics(self, state, inputs):
    return self.A @ state + self.B @ jnp.reshape(inputs, (1,))

  def output(self, state):
    return self.C @ state

  def init(self):
    state = PlantState(arr=jnp.zeros(self.state_size))
    return state, self.output(state.arr)

  def __call__(self, state, inputs):
    arr = self.Ad @ state.arr + self.Bd @ jnp.reshape(inputs, (1,))
    return state.replace(arr=arr, h=state.h + 1), self.output(arr)

  def dc_gain(self):
    return self.num[-1] / self.den[-1]
