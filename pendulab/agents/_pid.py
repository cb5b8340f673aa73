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

"""Discrete PID controller."""

import jax.numpy as jnp

from pendulab.core import Agent
from pendulab.core import Obj
from pendulab.core import field

# pylint:disable=invalid-name


class PIDState(Obj):
  I: float = field(0.0, jaxed=True)
  D: float = field(0.0, jaxed=True)
  err: float = field(0.0, jaxed=True)


class PID(Agent):
  """`u = K_P e + K_I int(e) + K_D de/dt` with fixed gains.

  The integral uses the trapezoidal rule. The derivative is a backward
  difference passed through a first-order filter with time constant `tau`;
  `tau = 0` gives the raw backward difference. When `u_min`/`u_max` are set
  the output is clipped and the integrator is frozen while the clipped
  output would be driven further into saturation.

  The observation is the tracking error `e = r - y`.
  """
  K_P: float = field(0.0, jaxed=True)
  K_I: float = field(0.0, jaxed=True)
  K_D: float = field(0.0, jaxed=True)
  dt: float = field(0.01, jaxed=False)
  tau: float = field(0.0, jaxed=False)
  u_min: float = field(None, jaxed=False)
  u_max: float = field(None, jaxed=False)

  def setup(self):
    if self.dt <= 0:
      raise ValueError(f"dt must be positive, got {self.dt}.")
    if self.tau < 0:
      raise ValueError(f"tau must be non-negative, got {self.tau}.")
    if (self.u_min is not None and self.u_max is not None and
        self.u_min >= self.u_max):
      raise ValueError(f"u_min={self.u_min} must be below u_max={self.u_max}.")

  def init(self):
    return PIDState()

  def __call__(self, state, obs):
    err = jnp.squeeze(obs)
    I = state.I + 0.5 * self.dt * (err + state.err)
    D = (self.tau * state.D + (err - state.err)) / (self.tau + self.dt)

    action = self.K_P * err + self.K_I * I + self.K_D * D

    if self.u_min is not None or self.u_max is not None:
      clipped = jnp.clip(action, self.u_min, self.u_max)
      winding = (clipped != action) & (jnp.sign(err) == jnp.sign(action))
      I = jnp.where(winding, state.I, I)
      action = clipped

    return state.replace(I=I, D=D, err=err), action
