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

"""Tests for pendulab.envs."""

import jax
import numpy as np
import pytest

from pendulab.envs import CartPendulumEnv
from pendulab.envs import EpisodeDoneError
from pendulab.envs import PendulumEnv
from pendulab.envs import make_env
from pendulab.envs.core import wrap_angle


@pytest.mark.parametrize("name", ["PendulumEnv", "CartPendulumEnv"])
def test_reset_observation_in_space(name):
    env = make_env(name)
    for seed in range(3):
        obs = env.reset(jax.random.PRNGKey(seed))
        assert env.observation_space.contains(obs)
        assert obs.shape == (env.obs_dim,)


def test_unknown_env():
    with pytest.raises(ValueError):
        make_env("DoublePendulumEnv")


def test_step_after_done_raises():
    env = PendulumEnv(max_steps=3)
    env.reset()
    for _ in range(3):
        _, _, done, info = env.step(np.zeros(1))
    assert done
    assert info["cause"] == "step_budget"
    assert not info["terminal"]
    with pytest.raises(EpisodeDoneError):
        env.step(np.zeros(1))
    env.reset()
    env.step(np.zeros(1))


def test_step_before_reset_raises():
    with pytest.raises(EpisodeDoneError):
        CartPendulumEnv().step(np.zeros(1))


def test_action_is_clipped():
    env = PendulumEnv()
    env.reset()
    _, _, _, info = env.step(np.array([10.0]))
    np.testing.assert_allclose(info["action"], [2.0])


def test_pendulum_speed_is_limited():
    env = PendulumEnv(max_speed=0.3)
    env.reset()
    speeds = []
    for _ in range(20):
        obs, _, _, info = env.step(np.array([2.0]))
        speeds.append(abs(info["state"][1]))
        assert env.observation_space.contains(obs)
    assert max(speeds) == pytest.approx(0.3, rel=1e-5)
    np.testing.assert_allclose(env.state[1], info["state"][1])


def test_pendulum_without_speed_limit():
    env = PendulumEnv(max_speed=None)
    env.reset()
    speeds = []
    for _ in range(20):
        _, _, _, info = env.step(np.array([2.0]))
        speeds.append(abs(info["state"][1]))
    assert max(speeds) > 0.5


def test_pendulum_reward_at_bottom():
    env = PendulumEnv()
    env.reset()
    _, reward, done, info = env.step(np.zeros(1))
    assert not done
    theta, theta_dot = info["state"]
    expected = -(wrap_angle(theta)**2 + 0.1 * theta_dot**2)
    assert reward == pytest.approx(expected, rel=1e-5)
    assert reward < -9.0


def test_cart_out_of_bounds():
    env = CartPendulumEnv()
    env.reset()
    done, info, reward = False, None, None
    for _ in range(env.max_steps):
        _, reward, done, info = env.step(np.array([200.0]))
        if done:
            break
    assert done
    assert info["cause"] == "cart_out_of_bounds"
    assert info["terminal"]
    assert abs(info["state"][0]) > env.x_limit
    assert reward < -100.0


def test_cart_observation_layout():
    env = CartPendulumEnv(init_noise=0.0)
    obs = env.reset()
    np.testing.assert_allclose(obs, [0.0, -1.0, 0.0, 0.0, 0.0], atol=1e-6)
    assert env.action_scale == 200.0
    assert env.dt == pytest.approx(0.02)


def test_bad_step_budget():
    with pytest.raises(ValueError):
        PendulumEnv(max_steps=0)
