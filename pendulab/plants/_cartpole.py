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

"""Inverted pendulum on a cart."""

import jax.numpy as jnp
import numpy as np

from pendulab.core import Plant
from pendulab.core import PlantState
from pendulab.core import field
from pendulab.linearize import LinearModel
from pendulab.linearize import OperatingPoint
from pendulab.plants.integrators import get_integrator
from pendulab.plants.integrators import integrate

# pylint:disable=invalid-name


class CartPendulum(Plant):
  """Point-mass pendulum on a massless rod hinged to a cart.

  State is `[x, x_dot, theta, theta_dot]` with `theta = 0` upright and
  positive when the pendulum leans toward `+x`. Inputs are `[F, dF]`: the
  force on the cart and a horizontal disturbance force at the pendulum tip.
  Outputs are the measured `[x, theta]`.

  Attributes:
    M: cart mass.
    m: pendulum mass.
    l: pendulum length.
    g: gravitational acceleration.
    b: viscous friction between cart and track.
    c: viscous friction at the pivot.
    mu: Coulomb friction between cart and track. Makes the dynamics
      discontinuous at zero cart velocity.
    dt: sample time of `__call__`.
    substeps: integrator steps per sample.
    integrator: one of `pendulab.plants.integrators.INTEGRATORS`.
    init_state: state returned by `init`.
  """
  M: float = field(1.0, jaxed=False)
  m: float = field(1.0, jaxed=False)
  l: float = field(0.5, jaxed=False)
  g: float = field(9.81, jaxed=False)
  b: float = field(10.0, jaxed=False)
  c: float = field(0.0, jaxed=False)
  mu: float = field(0.0, jaxed=False)
  dt: float = field(0.01, jaxed=False)
  substeps: int = field(1, jaxed=False)
  integrator: str = field("rk4", jaxed=False)
  init_state: tuple = field((0.0, 0.0, 0.0, 0.0), jaxed=False)

  def setup(self):
    if min(self.M, self.m, self.l, self.dt) <= 0:
      raise ValueError("Masses, length and sample time must be positive.")
    if self.substeps < 1:
      raise ValueError(f"substeps must be >= 1, got {self.substeps}.")
    get_integrator(self.integrator)
    self.init_state = tuple(float(v) for v in self.init_state)

  @property
  def state_size(self):
    return 4

  @property
  def input_size(self):
    return 2

  @property
  def output_size(self):
    return 2

  def dynamics(self, state, inputs):
    _, x_dot, theta, theta_dot = state
    F, dF = inputs[0], inputs[1]
    s, co = jnp.sin(theta), jnp.cos(theta)
    M, m, l, g = self.M, self.m, self.l, self.g

    x_ddot = (F + dF * s**2 - self.b * x_dot - self.mu * jnp.sign(x_dot) +
              m * l * s * theta_dot**2 - m * g * s * co +
              self.c * co * theta_dot / l) / (M + m * s**2)
    theta_ddot = ((g * s - co * x_ddot) / l - self.c * theta_dot /
                  (m * l**2) + dF * co / (m * l))
    return jnp.stack([x_dot, x_ddot, theta_dot, theta_ddot])

  def output(self, state):
    return jnp.stack([state[0], state[2]])

  def init(self):
    state = PlantState(arr=jnp.array(self.init_state))
    return state, self.output(state.arr)

  def __call__(self, state, inputs):
    inputs = jnp.reshape(jnp.asarray(inputs, dtype=jnp.float32), (2,))
    arr = integrate(self.dynamics, state.arr, inputs, self.dt, self.substeps,
                    self.integrator)
    return state.replace(arr=arr, h=state.h + 1), self.output(arr)

  def analytic_linearization(self):
    """Closed-form Jacobians at the upright equilibrium.

    Coulomb friction is ignored: the dynamics have no derivative there when
    `mu > 0`.
    """
    M, m, l, g, b, c = self.M, self.m, self.l, self.g, self.b, self.c
    A = np.array([
        [0.0, 1.0, 0.0, 0.0],
        [0.0, -b / M, -m * g / M, c / (M * l)],
        [0.0, 0.0, 0.0, 1.0],
        [0.0, b / (M * l), (M + m) * g / (M * l), -c * (M + m) / (M * m * l**2)],
    ])
    B = np.array([
        [0.0, 0.0],
        [1.0 / M, 0.0],
        [0.0, 0.0],
        [-1.0 / (M * l), 1.0 / (m * l)],
    ])
    C = np.array([[1.0, 0.0, 0.0, 0.0], [0.0, 0.0, 1.0, 0.0]])
    op = OperatingPoint.create(state=np.zeros(4), inputs=np.zeros(2))
    return LinearModel.create(A=A, B=B, C=C, D=np.zeros((2, 2)), op=op)
