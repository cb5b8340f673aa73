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

"""PID control of `1 / (s^2 + 10 s + 20)`.

Plots the open-loop step response, the continuous closed loop
`feedback(C P, 1)` and the sampled loop of `PID` against the discretized
plant.

  python -m pendulab.scripts.run_pid --kp 350 --ki 300 --kd 50
"""

import argparse
import os

import matplotlib.pyplot as plt
import numpy as np
from absl import logging

from pendulab import analysis
from pendulab.agents import PID
from pendulab.experiment import run_pid_loop
from pendulab.plants import TransferFunction

PLANT_NUM = (1.0,)
PLANT_DEN = (1.0, 10.0, 20.0)


def main(argv=None):
  parser = argparse.ArgumentParser(description="Run PID on a second-order plant")
  parser.add_argument("--kp", type=float, default=350.0)
  parser.add_argument("--ki", type=float, default=300.0)
  parser.add_argument("--kd", type=float, default=50.0)
  parser.add_argument("--duration", type=float, default=2.0)
  parser.add_argument("--dt", type=float, default=0.001,
                      help="Sample time of the discrete loop")
  parser.add_argument("--outdir", type=str, default="pid_results")
  args = parser.parse_args(argv)

  logging.set_verbosity(logging.INFO)
  os.makedirs(args.outdir, exist_ok=True)

  t = np.arange(0.0, args.duration + 0.005, 0.01)
  P = analysis.plant_tf(PLANT_NUM, PLANT_DEN)
  C = analysis.pid_tf(args.kp, args.ki, args.kd)
  T = analysis.feedback(analysis.series(C, P))
  logging.info("Closed-loop poles: %s", np.round(analysis.poles(T), 4))

  _, y_open = analysis.step_response(P, t)
  _, y_closed = analysis.step_response(T, t)
  info = analysis.step_info(t, y_closed, final_value=analysis.dc_gain(T))
  logging.info("Continuous closed loop: %s", info)

  plant = TransferFunction.create(num=PLANT_NUM, den=PLANT_DEN, dt=args.dt)
  pid = PID.create(K_P=args.kp, K_I=args.ki, K_D=args.kd, dt=args.dt,
                   tau=args.dt)
  traj = run_pid_loop(plant, pid, 1.0, args.duration)
  sampled = analysis.step_info(traj.times, traj.outputs, final_value=1.0)
  logging.info("Sampled closed loop: %s", sampled)

  fig, ax = plt.subplots(figsize=(10, 6))
  ax.plot(t, y_open, label="Open loop P")
  ax.plot(t, y_closed, label="feedback(C P, 1)")
  ax.plot(traj.times, traj.outputs, "--", label=f"PID, dt={args.dt:g}")
  ax.set_xlabel("Time (s)")
  ax.set_ylabel("Output")
  ax.set_title(f"Step response, Kp={args.kp:g} Ki={args.ki:g} Kd={args.kd:g}")
  ax.legend()
  ax.grid(True)
  path = os.path.join(args.outdir, "pid_step.png")
  fig.savefig(path)
  plt.close(fig)
  logging.info("Saved %s", path)

  return info, sampled


if __name__ == "__main__":
  main()
