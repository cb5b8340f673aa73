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

"""Swing-up and balance of a pendulum on a cart."""

import jax
import numpy as np

from pendulab.envs.core import ControlEnv
from pendulab.envs.core import box
from pendulab.envs.core import wrap_angle
from pendulab.plants import CartPendulum


class CartPendulumEnv(ControlEnv):
  """Observation `[sin theta, cos theta, x, theta_dot, x_dot]`, action `[F]`.

  The disturbance input of the plant is held at zero. An episode fails when
  the cart leaves `[-x_limit, x_limit]`. The reward is

    -w (w_angle theta^2 + x^2 + w_effort (F / max_force)^2) - penalty [failed]

  with `theta` wrapped to `[-pi, pi)`.
  """
  angle_index = 2

  def __init__(self,
               plant=None,
               max_steps=1250,
               max_force=200.0,
               x_limit=3.5,
               init_noise=0.05,
               w=0.1,
               w_angle=5.0,
               w_effort=0.05,
               penalty=100.0):
    if plant is None:
      plant = CartPendulum.create(
          dt=0.02, substeps=4, init_state=(0.0, 0.0, np.pi, 0.0))
    super().__init__(plant, max_steps)
    self.max_force = max_force
    self.x_limit = x_limit
    self.init_noise = init_noise
    self.w = w
    self.w_angle = w_angle
    self.w_effort = w_effort
    self.penalty = penalty
    self.observation_space = box(
        [-1.0, -1.0, -np.inf, -np.inf, -np.inf],
        [1.0, 1.0, np.inf, np.inf, np.inf])
    self.action_space = box([-max_force], [max_force])

  def initial_state(self, key):
    state = np.array(self.plant.init_state, dtype=np.float32)
    if key is not None and self.init_noise > 0:
      state[2] += float(jax.random.uniform(
          key, minval=-self.init_noise, maxval=self.init_noise))
    return state

  def observe(self, state):
    x, x_dot, theta, theta_dot = state
    return np.array([np.sin(theta), np.cos(theta), x, theta_dot, x_dot],
                    dtype=np.float32)

  def failure(self, state):
    if abs(state[0]) > self.x_limit:
      return "cart_out_of_bounds"
    return None

  def reward(self, state, action, failed):
    x, theta = state[0], wrap_angle(state[2])
    effort = float(action[0]) / self.max_force
    return (-self.w * (self.w_angle * theta**2 + x**2 + self.w_effort * effort**2)
            - self.penalty * float(failed))

  def plant_inputs(self, action):
    return np.array([action[0], 0.0], dtype=np.float32)
