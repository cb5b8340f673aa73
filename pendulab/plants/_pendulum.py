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

"""Pendulum."""

import jax.numpy as jnp

from pendulab.core import Plant
from pendulab.core import PlantState
from pendulab.core import field
from pendulab.plants.integrators import get_integrator
from pendulab.plants.integrators import integrate


class Pendulum(Plant):
  """Torque-driven point-mass pendulum, state `[theta, theta_dot]`.

  `theta = 0` is upright. `max_torque` is the actuator limit; it is enforced
  by the callers that own the actuator (environments, controllers), not by
  the dynamics.
  """
  m: float = field(1.0, jaxed=False)
  l: float = field(1.0, jaxed=False)
  g: float = field(9.81, jaxed=False)
  damping: float = field(0.0, jaxed=False)
  max_torque: float = field(2.0, jaxed=False)
  dt: float = field(0.05, jaxed=False)
  substeps: int = field(1, jaxed=False)
  integrator: str = field("rk4", jaxed=False)
  init_state: tuple = field((jnp.pi, 0.0), jaxed=False)

  def setup(self):
    if min(self.m, self.l, self.dt, self.max_torque) <= 0:
      raise ValueError("Mass, length, max_torque and dt must be positive.")
    get_integrator(self.integrator)
    self.init_state = tuple(float(v) for v in self.init_state)

  @property
  def state_size(self):
    return 2

  @property
  def input_size(self):
    return 1

  @property
  def output_size(self):
    return 2

  def dynamics(self, state, inputs):
    theta, theta_dot = state
    inertia = self.m * self.l**2
    theta_ddot = (self.g / self.l * jnp.sin(theta) -
                  self.damping * theta_dot / inertia + inputs[0] / inertia)
    return jnp.stack([theta_dot, theta_ddot])

  def output(self, state):
    return state

  def init(self):
    state = PlantState(arr=jnp.array(self.init_state))
    return state, state.arr

  def __call__(self, state, inputs):
    inputs = jnp.reshape(jnp.asarray(inputs, dtype=jnp.float32), (1,))
    arr = integrate(self.dynamics, state.arr, inputs, self.dt, self.substeps,
                    self.integrator)
    return state.replace(arr=arr, h=state.h + 1), arr
