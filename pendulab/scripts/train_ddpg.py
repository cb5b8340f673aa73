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

"""Trains a DDPG agent to swing up and balance a pendulum.

  python -m pendulab.scripts.train_ddpg --env PendulumEnv --episodes 200
  python -m pendulab.scripts.train_ddpg --env CartPendulumEnv --episodes 1000
"""

import argparse
import os

import jax
import matplotlib.pyplot as plt
import numpy as np
from absl import logging

from pendulab.agents import DDPG
from pendulab.agents import DDPGConfig
from pendulab.core import save
from pendulab.envs import make_env
from pendulab.training import TrainOptions
from pendulab.training import evaluate
from pendulab.training import train

# Network widths and stopping values per environment.
PRESETS = {
    "PendulumEnv": dict(actor_dims=(600, 300), critic_dims=(600, 300),
                        stop=None),
    "CartPendulumEnv": dict(actor_dims=(128, 200), critic_dims=(128, 200),
                            stop=-200.0),
}


def main(argv=None):
  parser = argparse.ArgumentParser(description="Train DDPG on a pendulum env")
  parser.add_argument("--env", type=str, default="PendulumEnv",
                      choices=sorted(PRESETS))
  parser.add_argument("--episodes", type=int, default=200)
  parser.add_argument("--steps", type=int, default=None,
                      help="Steps per episode; defaults to the env budget")
  parser.add_argument("--seed", type=int, default=0)
  parser.add_argument("--noise", type=str, default="ou",
                      choices=["ou", "gaussian"])
  parser.add_argument("--discount", type=float, default=0.99)
  parser.add_argument("--stop", type=float, default=None,
                      help="Average reward that ends training")
  parser.add_argument("--summaries", action="store_true",
                      help="Write TensorBoard scalars to --outdir")
  parser.add_argument("--outdir", type=str, default="ddpg_results")
  args = parser.parse_args(argv)

  logging.set_verbosity(logging.INFO)
  os.makedirs(args.outdir, exist_ok=True)

  env = make_env(args.env)
  preset = PRESETS[args.env]
  agent = DDPG.create(
      obs_dim=env.obs_dim,
      action_dim=env.action_dim,
      action_scale=env.action_scale,
      config=DDPGConfig.create(
          actor_dims=preset["actor_dims"],
          critic_dims=preset["critic_dims"],
          discount=args.discount))
  options = TrainOptions.create(
      max_episodes=args.episodes,
      max_steps_per_episode=args.steps or env.max_steps,
      stop_training_value=preset["stop"] if args.stop is None else args.stop,
      noise=args.noise,
      seed=args.seed)

  key = jax.random.PRNGKey(args.seed)
  train_key, eval_key = jax.random.split(key)
  result = train(env, agent, options, key=train_key,
                 workdir=args.outdir if args.summaries else None)
  save(result.agent_state, os.path.join(args.outdir, "agent.pkl"))
  save(result.replay.state_dict(), os.path.join(args.outdir, "replay.pkl"))

  traj = evaluate(env, agent.policy(result.agent_state), env.max_steps,
                  key=eval_key)
  logging.info("Evaluation: reward %.2f over %d steps (%s).",
               float(np.sum(traj.rewards)), len(traj.rewards), traj.cause)

  fig, (ax1, ax2) = plt.subplots(2, 1, figsize=(10, 8))
  episodes = np.arange(1, len(result.episode_rewards) + 1)
  ax1.plot(episodes, result.episode_rewards, label="Episode reward")
  ax1.plot(episodes, result.average_rewards, label="Average reward")
  ax1.set_xlabel("Episode")
  ax1.legend()
  ax1.grid(True)
  ax2.plot(traj.times, traj.states[:, env.angle_index])
  ax2.set_xlabel("Time (s)")
  ax2.set_ylabel("Angle (rad)")
  ax2.grid(True)
  path = os.path.join(args.outdir, "ddpg_training.png")
  fig.savefig(path)
  plt.close(fig)
  logging.info("Saved %s", path)

  return result, traj


if __name__ == "__main__":
  main()
