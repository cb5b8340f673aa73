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

"""DDPG training and evaluation loops."""

import collections
import os
import time

import jax
import numpy as np
from absl import logging

from pendulab.core import Obj
from pendulab.core import Trajectory
from pendulab.core import field
from pendulab.core import save
from pendulab.utils.noise import make_noise
from pendulab.utils.random import Random
from pendulab.utils.replay import ReplayBuffer

TrainResult = collections.namedtuple("TrainResult", [
    "agent_state", "replay", "episode_rewards", "average_rewards",
    "episode_steps", "anomalies", "stopped_early"
])

Anomaly = collections.namedtuple("Anomaly", ["episode", "step", "kind"])


class TrainOptions(Obj):
  """Episode budget, stopping rule and exploration schedule.

  `noise_std` is a fraction of the action bound. Training stops once the
  average reward of the last `score_averaging_window` episodes reaches
  `stop_training_value`, if set, or after `max_episodes`.
  """
  max_episodes: int = field(200, jaxed=False)
  max_steps_per_episode: int = field(400, jaxed=False)
  score_averaging_window: int = field(20, jaxed=False)
  stop_training_value: float = field(None, jaxed=False)
  noise: str = field("ou", jaxed=False)
  noise_std: float = field(0.3, jaxed=False)
  noise_std_min: float = field(0.0, jaxed=False)
  noise_decay: float = field(1e-5, jaxed=False)
  noise_theta: float = field(0.15, jaxed=False)
  save_agent_value: float = field(None, jaxed=False)
  log_every: int = field(10, jaxed=False)
  seed: int = field(0, jaxed=False)

  def setup(self):
    if self.max_episodes < 1 or self.max_steps_per_episode < 1:
      raise ValueError("max_episodes and max_steps_per_episode must be >= 1.")
    if self.score_averaging_window < 1:
      raise ValueError("score_averaging_window must be >= 1.")


def _finite(x):
  return bool(np.all(np.isfinite(x)))


def train(env, agent, options=None, key=None, workdir=None, replay=None):
  """Trains `agent` on `env` with off-policy DDPG updates.

  Args:
    env: a `pendulab.envs.ControlEnv`.
    agent: a `pendulab.agents.DDPG` sized for `env`.
    options: `TrainOptions`.
    key: PRNG key; defaults to `PRNGKey(options.seed)`.
    workdir: if set, scalars are written there with `clu.metric_writers` and
      agents reaching `options.save_agent_value` are pickled there.
    replay: an existing `ReplayBuffer` to continue filling.

  Returns:
    A `TrainResult`.
  """
  if options is None:
    options = TrainOptions.create()
  cfg = agent.config
  if env.obs_dim != agent.obs_dim or env.action_dim != agent.action_dim:
    raise ValueError(
        f"Agent sizes ({agent.obs_dim}, {agent.action_dim}) do not match env "
        f"sizes ({env.obs_dim}, {env.action_dim}).")

  rng = Random(options.seed) if key is None else Random.from_key(key)
  agent_state = agent.init(rng.generate_key())
  if replay is None:
    replay = ReplayBuffer(cfg.buffer_capacity, env.obs_dim, env.action_dim)

  noise = make_noise(
      options.noise,
      size=env.action_dim,
      std=options.noise_std,
      std_min=options.noise_std_min,
      decay=options.noise_decay,
      **({"theta": options.noise_theta, "dt": env.dt}
         if options.noise == "ou" else {}))
  noise_state = noise.init()

  writer = None
  if workdir is not None:
    # clu loads TensorFlow for its summary writers.
    from clu import metric_writers
    writer = metric_writers.create_default_writer(
        logdir=workdir, just_logging=jax.process_index() != 0)
    writer.write_hparams({
        k: v for k, v in vars(options).items()
        if not k.startswith("_") and v is not None})

  episode_rewards, average_rewards, episode_steps = [], [], []
  anomalies = []
  stopped_early = False
  window = options.score_averaging_window
  tt = time.time()

  for episode in range(options.max_episodes):
    obs = env.reset(rng.generate_key())
    noise_state = noise.reset(noise_state)
    noise_state, eps = noise.sample(noise_state, rng.generate_key(),
                                    options.max_steps_per_episode)
    eps = np.asarray(eps) * env.action_scale
    total, steps, metrics = 0.0, 0, None

    for t in range(options.max_steps_per_episode):
      _, action = agent(agent_state, obs)
      action = np.asarray(action) + eps[t]
      if not _finite(action):
        anomalies.append(Anomaly(episode, t, "non_finite_action"))
        logging.warning("Episode %d aborted: non-finite action at step %d.",
                        episode, t)
        break

      next_obs, reward, done, info = env.step(action)
      if not (_finite(next_obs) and _finite(reward)):
        anomalies.append(Anomaly(episode, t, "non_finite_transition"))
        logging.warning("Episode %d aborted: non-finite transition at step %d "
                        "(%s).", episode, t, info["cause"])
        break

      replay.add(obs, info["action"], reward, next_obs, info["terminal"])
      if len(replay) >= cfg.batch_size:
        batch = replay.sample(rng.generate_key(), cfg.batch_size)
        agent_state, metrics = agent.update(agent_state, batch)

      total += reward
      steps += 1
      obs = next_obs
      if done:
        break

    episode_rewards.append(total)
    episode_steps.append(steps)
    average_rewards.append(float(np.mean(episode_rewards[-window:])))

    if episode % options.log_every == 0 or episode == options.max_episodes - 1:
      logging.info(
          "Episode %d - reward: %.2f - average: %.2f - steps: %d - time %.1fs",
          episode, total, average_rewards[-1], steps, time.time() - tt)
      tt = time.time()
    if writer is not None:
      scalars = {"episode_reward": total, "average_reward": average_rewards[-1],
                 "episode_steps": steps}
      if metrics is not None:
        scalars.update({k: float(v) for k, v in metrics.items()})
      writer.write_scalars(episode, scalars)
      if (options.save_agent_value is not None and
          total >= options.save_agent_value):
        save(agent_state, os.path.join(workdir, f"agent_{episode}.pkl"))

    if (options.stop_training_value is not None and
        average_rewards[-1] >= options.stop_training_value):
      logging.info("Average reward %.2f reached %.2f after %d episodes.",
                   average_rewards[-1], options.stop_training_value,
                   episode + 1)
      stopped_early = True
      break

  if writer is not None:
    writer.flush()

  return TrainResult(
      agent_state=agent_state,
      replay=replay,
      episode_rewards=np.asarray(episode_rewards),
      average_rewards=np.asarray(average_rewards),
      episode_steps=np.asarray(episode_steps),
      anomalies=anomalies,
      stopped_early=stopped_early)


def evaluate(env, policy, max_steps, key=None):
  """Rolls out `policy` without exploration noise or parameter updates.

  Args:
    env: a `pendulab.envs.ControlEnv`.
    policy: callable `obs -> action`, e.g. `DDPG.policy(agent_state)`.
    max_steps: step budget of the rollout.
    key: optional PRNG key for the initial state.

  Returns:
    A `Trajectory` whose `outputs` are observations and whose `cause` is the
    reason the rollout ended.
  """
  obs = env.reset(key)
  times = [0.0]
  states, outputs = [env.state], [obs]
  inputs, rewards = [], []
  cause = None
  for _ in range(max_steps):
    action = np.asarray(policy(obs))
    obs, reward, done, info = env.step(action)
    times.append(times[-1] + env.dt)
    states.append(info["state"])
    outputs.append(obs)
    inputs.append(info["action"])
    rewards.append(reward)
    cause = info["cause"]
    if done:
      break
  else:
    cause = cause or "max_steps"

  return Trajectory.create(
      times=np.asarray(times),
      states=np.asarray(states),
      inputs=np.asarray(inputs),
      outputs=np.asarray(outputs),
      rewards=np.asarray(rewards),
      aborted=cause not in (None, "step_budget", "max_steps"),
      cause=cause)
