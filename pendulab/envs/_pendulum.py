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

"""Swing-up and balance of a simple pendulum."""

import jax
import numpy as np

from pendulab.envs.core import ControlEnv
from pendulab.envs.core import box
from pendulab.envs.core import wrap_angle
from pendulab.plants import Pendulum


class PendulumEnv(ControlEnv):
  """Observation `[sin theta, cos theta, theta_dot]`, action `[torque]`.

  Episodes start hanging down (`theta = pi`) and never fail; they end on the
  step budget. With `max_speed` set, `theta_dot` is clipped to
  `[-max_speed, max_speed]` after every step. The reward is
  `-(theta^2 + w_rate theta_dot^2 + w_effort u^2)` with `theta` wrapped to
  `[-pi, pi)`.
  """
  angle_index = 0

  def __init__(self,
               plant=None,
               max_steps=400,
               max_speed=8.0,
               init_noise=0.0,
               w_rate=0.1,
               w_effort=1e-3):
    if plant is None:
      plant = Pendulum.create(dt=0.1, substeps=2)
    super().__init__(plant, max_steps)
    self.init_noise = init_noise
    self.w_rate = w_rate
    self.w_effort = w_effort
    self.max_speed = max_speed
    speed = np.inf if max_speed is None else max_speed
    self.observation_space = box([-1.0, -1.0, -speed], [1.0, 1.0, speed])
    self.action_space = box([-plant.max_torque], [plant.max_torque])

  def initial_state(self, key):
    state = np.array(self.plant.init_state, dtype=np.float32)
    if key is not None and self.init_noise > 0:
      state[0] += float(jax.random.uniform(
          key, minval=-self.init_noise, maxval=self.init_noise))
    return state

  def limit_state(self, state):
    if self.max_speed is None:
      return state
    return np.array([state[0], np.clip(state[1], -self.max_speed,
                                       self.max_speed)])

  def observe(self, state):
    theta, theta_dot = state
    return np.array([np.sin(theta), np.cos(theta), theta_dot],
                    dtype=np.float32)

  def reward(self, state, action, failed):
    del failed
    theta, theta_dot = state
    return -(wrap_angle(theta)**2 + self.w_rate * theta_dot**2 +
             self.w_effort * float(action[0])**2)

  def plant_inputs(self, action):
    return action
