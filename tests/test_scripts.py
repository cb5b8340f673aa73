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

"""Smoke tests for the command-line experiments."""

import os

import pytest

from pendulab.scripts import run_mpc
from pendulab.scripts import run_pid
from pendulab.scripts import train_ddpg


def test_run_pid(tmp_path):
    info, sampled = run_pid.main(["--outdir", str(tmp_path)])
    assert os.path.exists(os.path.join(tmp_path, "pid_step.png"))
    assert info.settling_time <= 2.0
    assert sampled.steady_state == pytest.approx(1.0)


def test_run_mpc(tmp_path):
    step_report, impulse_report = run_mpc.main(
        ["--setpoint", "1", "--duration", "2", "--outdir", str(tmp_path)])
    assert os.path.exists(os.path.join(tmp_path, "mpc_step.png"))
    assert os.path.exists(os.path.join(tmp_path, "mpc_impulse.png"))
    assert impulse_report.max_displacement < 1.0


def test_train_ddpg(tmp_path):
    result, traj = train_ddpg.main(
        ["--episodes", "2", "--steps", "10", "--outdir", str(tmp_path)])
    assert len(result.episode_rewards) == 2
    assert os.path.exists(os.path.join(tmp_path, "agent.pkl"))
    assert os.path.exists(os.path.join(tmp_path, "ddpg_training.png"))
    assert len(traj.rewards) == 400
