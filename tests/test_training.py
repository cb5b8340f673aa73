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

"""Tests for pendulab.training."""

import subprocess
import sys

from absl.testing import absltest
import chex
import jax
import numpy as np

from pendulab.agents import DDPG
from pendulab.agents import DDPGConfig
from pendulab.envs import PendulumEnv
from pendulab.training import TrainOptions
from pendulab.training import evaluate
from pendulab.training import train


class NaNRewardEnv(PendulumEnv):

  def reward(self, state, action, failed):
    if self._steps > 5:
      return float("nan")
    return super().reward(state, action, failed)


def small_agent(env, **kwargs):
  config = DDPGConfig.create(actor_dims=(16, 16), critic_dims=(16, 16),
                             batch_size=8, buffer_capacity=100, **kwargs)
  return DDPG.create(obs_dim=env.obs_dim, action_dim=env.action_dim,
                     action_scale=env.action_scale, config=config)


class TrainTest(chex.TestCase):

  def test_short_run(self):
    env = PendulumEnv(max_steps=20)
    agent = small_agent(env)
    options = TrainOptions.create(max_episodes=3, max_steps_per_episode=20)
    result = train(env, agent, options, key=jax.random.PRNGKey(0))

    chex.assert_shape(result.episode_rewards, (3,))
    np.testing.assert_array_equal(result.episode_steps, [20, 20, 20])
    self.assertLen(result.replay, 60)
    self.assertEmpty(result.anomalies)
    self.assertFalse(result.stopped_early)
    # Updates start once the buffer holds a mini-batch.
    self.assertEqual(int(result.agent_state.steps), 60 - 8 + 1)
    np.testing.assert_allclose(result.average_rewards[-1],
                               np.mean(result.episode_rewards))

  def test_stops_at_target_average(self):
    env = PendulumEnv(max_steps=10)
    options = TrainOptions.create(max_episodes=5, max_steps_per_episode=10,
                                  stop_training_value=-1e9)
    result = train(env, small_agent(env), options)
    self.assertTrue(result.stopped_early)
    self.assertLen(result.episode_rewards, 1)

  def test_non_finite_transition_aborts_episode(self):
    env = NaNRewardEnv(max_steps=20)
    options = TrainOptions.create(max_episodes=2, max_steps_per_episode=20,
                                  noise="gaussian")
    result = train(env, small_agent(env), options)
    self.assertLen(result.anomalies, 2)
    self.assertEqual(result.anomalies[0].kind, "non_finite_transition")
    self.assertEqual(result.anomalies[0].step, 5)
    np.testing.assert_array_equal(result.episode_steps, [5, 5])
    self.assertTrue(np.all(np.isfinite(result.replay.transitions().reward)))

  def test_size_mismatch(self):
    env = PendulumEnv()
    agent = DDPG.create(obs_dim=5, action_dim=1)
    with self.assertRaises(ValueError):
      train(env, agent)

  def test_bad_options(self):
    with self.assertRaises(ValueError):
      TrainOptions.create(max_episodes=0)
    with self.assertRaises(ValueError):
      TrainOptions.create(score_averaging_window=0)

  def test_evaluate(self):
    env = PendulumEnv()
    agent = small_agent(env)
    state = agent.init(jax.random.PRNGKey(0))
    traj = evaluate(env, agent.policy(state), 10)
    chex.assert_shape(traj.rewards, (10,))
    chex.assert_shape(traj.outputs, (11, 3))
    chex.assert_shape(traj.states, (11, 2))
    self.assertEqual(traj.cause, "max_steps")
    self.assertFalse(traj.aborted)
    self.assertLessEqual(float(np.max(np.abs(traj.inputs))), 2.0)

  def test_import_leaves_summary_writers_unloaded(self):
    code = ("import sys, pendulab, pendulab.training; "
            "sys.exit('clu' in sys.modules)")
    self.assertEqual(subprocess.run([sys.executable, "-c", code]).returncode, 0)

  def test_swing_up_improves(self):
    env = PendulumEnv(max_steps=200, init_noise=np.pi)
    config = DDPGConfig.create(actor_dims=(256, 256), critic_dims=(256, 256),
                               actor_lr=1e-3, critic_lr=2e-3, tau=5e-3,
                               batch_size=64)
    agent = DDPG.create(obs_dim=env.obs_dim, action_dim=env.action_dim,
                        action_scale=env.action_scale, config=config)
    options = TrainOptions.create(max_episodes=100, max_steps_per_episode=200,
                                  score_averaging_window=20, log_every=20,
                                  noise="gaussian", noise_std=0.1)
    result = train(env, agent, options, key=jax.random.PRNGKey(0))
    self.assertLen(result.average_rewards, 100)
    self.assertGreater(result.average_rewards[99], result.average_rewards[19])


if __name__ == "__main__":
  absltest.main()
