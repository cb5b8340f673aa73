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

"""MPC of the inverted pendulum on a cart.

Linearizes the cart-pendulum about the upright equilibrium, then runs two
closed loops on the nonlinear plant: a step in the cart position setpoint and
an impulse disturbance on the pendulum tip.

  python -m pendulab.scripts.run_mpc --setpoint 10 --outdir mpc_results
"""

import argparse
import os

import matplotlib.pyplot as plt
import numpy as np
from absl import logging

from pendulab.agents import MPC
from pendulab.agents import MPCConfig
from pendulab.experiment import Impulse
from pendulab.experiment import check_impulse_response
from pendulab.experiment import check_step_response
from pendulab.experiment import run_closed_loop
from pendulab.experiment import step_reference
from pendulab.linearize import linearize
from pendulab.plants import CartPendulum


def build_controller(plant, soft_angle=False):
  model = linearize(plant)
  kwargs = {}
  if soft_angle:
    kwargs = dict(output_min=(None, -np.pi / 2), output_max=(None, np.pi / 2),
                  ecr_weight=100.0)
  config = MPCConfig.create(dt=plant.dt, **kwargs)
  return MPC.create(model=model, config=config)


def plot_run(traj, title, path):
  fig, (ax1, ax2, ax3) = plt.subplots(3, 1, figsize=(10, 9), sharex=True)
  t = traj.times
  ax1.plot(t, traj.outputs[:, 0], label="x")
  if traj.references is not None:
    ax1.plot(t[1:], traj.references[:, 0], "--", label="reference")
  ax1.set_ylabel("Cart position")
  ax1.legend()
  ax2.plot(t, traj.outputs[:, 1])
  ax2.set_ylabel("Pendulum angle (rad)")
  ax3.step(t[1:], traj.inputs[:, 0], where="post")
  ax3.set_ylabel("Force F")
  ax3.set_xlabel("Time (s)")
  for ax in (ax1, ax2, ax3):
    ax.grid(True)
  fig.suptitle(title)
  fig.savefig(path)
  plt.close(fig)
  logging.info("Saved %s", path)


def main(argv=None):
  parser = argparse.ArgumentParser(description="Run MPC on the cart-pendulum")
  parser.add_argument("--setpoint", type=float, default=10.0,
                      help="Cart position setpoint of the step run")
  parser.add_argument("--impulse", type=float, default=2.0,
                      help="Magnitude of the tip disturbance force")
  parser.add_argument("--duration", type=float, default=10.0)
  parser.add_argument("--soft-angle", action="store_true",
                      help="Softly constrain the angle to [-pi/2, pi/2]")
  parser.add_argument("--outdir", type=str, default="mpc_results")
  args = parser.parse_args(argv)

  logging.set_verbosity(logging.INFO)
  os.makedirs(args.outdir, exist_ok=True)

  plant = CartPendulum.create(dt=0.01)
  mpc = build_controller(plant, soft_angle=args.soft_angle)

  step_run = run_closed_loop(plant, mpc, step_reference(args.setpoint),
                             args.duration)
  step_report = check_step_response(step_run, args.setpoint,
                                    max_overshoot=5.0)
  logging.info("Step to %g: %s", args.setpoint, step_report)
  plot_run(step_run, f"Setpoint step to {args.setpoint:g}",
           os.path.join(args.outdir, "mpc_step.png"))

  impulse = Impulse.create(magnitude=args.impulse, start=1.0)
  impulse_run = run_closed_loop(plant, mpc, step_reference(0.0),
                                args.duration, disturbance=impulse)
  impulse_report = check_impulse_response(impulse_run)
  logging.info("Impulse of %g: %s", args.impulse, impulse_report)
  plot_run(impulse_run, f"Impulse disturbance of {args.impulse:g}",
           os.path.join(args.outdir, "mpc_impulse.png"))

  return step_report, impulse_report


if __name__ == "__main__":
  main()
