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

"""Tests for pendulab.experiment."""

from absl.testing import absltest
import chex
import numpy as np

from pendulab.agents import MPC
from pendulab.agents import MPCConfig
from pendulab.agents import MPCStatus
from pendulab.core import Trajectory
from pendulab.experiment import Impulse
from pendulab.experiment import Step
from pendulab.experiment import check_impulse_response
from pendulab.experiment import check_step_response
from pendulab.experiment import run_closed_loop
from pendulab.experiment import step_reference
from pendulab.linearize import linearize
from pendulab.plants import CartPendulum


def make_loop(init_state=(0.0, 0.0, 0.0, 0.0), **kwargs):
  plant = CartPendulum.create(dt=0.01, init_state=init_state)
  upright = CartPendulum.create(dt=0.01)
  mpc = MPC.create(model=linearize(upright),
                   config=MPCConfig.create(dt=0.01, **kwargs))
  return plant, mpc


class DisturbanceTest(chex.TestCase):

  def test_impulse(self):
    impulse = Impulse.create(magnitude=2.0, start=1.0, width=0.1)
    np.testing.assert_array_equal(impulse(0.99), [0.0, 0.0])
    np.testing.assert_array_equal(impulse(1.0), [0.0, 2.0])
    np.testing.assert_array_equal(impulse(1.05), [0.0, 2.0])
    np.testing.assert_array_equal(impulse(1.1), [0.0, 0.0])

  def test_step(self):
    step = Step.create(magnitude=-1.0, start=0.5)
    np.testing.assert_array_equal(step(0.0), [0.0, 0.0])
    np.testing.assert_array_equal(step(3.0), [0.0, -1.0])

  def test_step_reference(self):
    ref = step_reference(10.0, start=1.0)
    np.testing.assert_array_equal(ref(0.5), [0.0, 0.0])
    np.testing.assert_array_equal(ref(1.0), [10.0, 0.0])


class CheckObjectivesTest(chex.TestCase):

  def test_step_response_passes(self):
    t = np.linspace(0.0, 10.0, 1001)
    x = 10.0 * (1.0 - np.exp(-2.0 * t))
    traj = Trajectory.create(times=t, outputs=np.stack([x, 0.0 * t], axis=1))
    report = check_step_response(traj, 10.0, max_overshoot=5.0)
    self.assertTrue(report.passed)
    self.assertAlmostEqual(report.reach_time, -np.log(0.05) / 2.0, places=1)
    self.assertEqual(report.overshoot, 0.0)

  def test_step_response_fails_on_tilt(self):
    t = np.linspace(0.0, 10.0, 1001)
    x = np.full_like(t, 10.0)
    traj = Trajectory.create(times=t,
                             outputs=np.stack([x, np.full_like(t, 0.1)], axis=1))
    self.assertFalse(check_step_response(traj, 10.0).passed)

  def test_step_response_overshoot(self):
    t = np.linspace(0.0, 10.0, 1001)
    x = 10.0 * (1.0 - np.exp(-t) * np.cos(3.0 * t))
    traj = Trajectory.create(times=t, outputs=np.stack([x, 0.0 * t], axis=1))
    report = check_step_response(traj, 10.0, max_overshoot=5.0)
    self.assertGreater(report.overshoot, 5.0)
    self.assertFalse(report.passed)

  def test_impulse_response(self):
    t = np.linspace(0.0, 10.0, 1001)
    x = 0.5 * t * np.exp(-t)
    theta = 0.1 * np.sin(2.0 * t) * np.exp(-t)
    traj = Trajectory.create(times=t, outputs=np.stack([x, theta], axis=1))
    report = check_impulse_response(traj)
    self.assertTrue(report.passed)
    traj = traj.replace(outputs=np.stack([8.0 * x, theta], axis=1))
    self.assertFalse(check_impulse_response(traj).passed)


class ClosedLoopTest(chex.TestCase):

  def test_balances_from_small_tilt(self):
    plant, mpc = make_loop(init_state=(0.0, 0.0, 0.05, 0.0))
    traj = run_closed_loop(plant, mpc, step_reference(0.0), 5.0)
    self.assertFalse(traj.aborted)
    self.assertLen(traj, 501)
    chex.assert_shape(traj.inputs, (500, 2))
    chex.assert_shape(traj.statuses, (500,))
    self.assertLessEqual(float(np.max(np.abs(traj.inputs[:, 0]))), 200.0)
    self.assertLess(abs(traj.outputs[-1, 1]), 0.01)
    self.assertLess(abs(traj.outputs[-1, 0]), 0.1)

  def test_setpoint_step_of_ten(self):
    plant, mpc = make_loop()
    traj = run_closed_loop(plant, mpc, step_reference(10.0), 10.0)
    self.assertEqual(traj.faults, 0)
    self.assertLessEqual(float(np.max(np.abs(traj.inputs[:, 0]))), 200.0)
    report = check_step_response(traj, 10.0, tolerance=0.05, within=4.0,
                                 angle_tolerance=0.01)
    self.assertTrue(report.passed, msg=str(report))

  def test_rejects_tip_impulse(self):
    plant, mpc = make_loop()
    impulse = Impulse.create(magnitude=2.0, start=1.0, width=0.1)
    traj = run_closed_loop(plant, mpc, step_reference(0.0), 10.0,
                           disturbance=impulse)
    np.testing.assert_array_equal(traj.inputs[100:110, 1], 2.0)
    report = check_impulse_response(traj)
    self.assertTrue(report.passed, msg=str(report))

  def test_abort_on_fault(self):
    plant, mpc = make_loop(max_iter=1)
    traj = run_closed_loop(plant, mpc, step_reference(1.0), 1.0,
                           abort_on_fault=True)
    self.assertTrue(traj.aborted)
    self.assertEqual(traj.cause, "controller_fault")
    self.assertEqual(traj.faults, 1)
    self.assertEqual(traj.statuses[-1], MPCStatus.HELD)

  def test_sample_time_mismatch(self):
    plant = CartPendulum.create(dt=0.02)
    _, mpc = make_loop()
    with self.assertRaises(ValueError):
      run_closed_loop(plant, mpc, step_reference(0.0), 1.0)


if __name__ == "__main__":
  absltest.main()
