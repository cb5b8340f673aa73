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

"""Tests for pendulab.agents.MPC."""

from absl.testing import absltest
import chex
import numpy as np

from pendulab.agents import MPC
from pendulab.agents import MPCConfig
from pendulab.agents import MPCStatus
from pendulab.linearize import discretize
from pendulab.linearize import linearize
from pendulab.plants import CartPendulum


def make_mpc(**kwargs):
  plant = CartPendulum.create(dt=0.01)
  return MPC.create(model=linearize(plant), config=MPCConfig.create(**kwargs))


class MPCTest(chex.TestCase):

  def test_discretizes_continuous_model(self):
    mpc = make_mpc()
    self.assertTrue(mpc.model.is_discrete)
    self.assertEqual(mpc.dt, 0.01)
    self.assertEqual(mpc.mv_bounds, (-200.0, 200.0))

  def test_input_within_bounds(self):
    mpc = make_mpc()
    rng = np.random.default_rng(0)
    state = mpc.init()
    for _ in range(40):
      obs = rng.uniform([-5.0, -0.5], [5.0, 0.5])
      ref = np.array([rng.uniform(-20.0, 20.0), 0.0])
      state, u = mpc(state, obs, ref)
      self.assertTrue(np.isfinite(u))
      self.assertBetween(u, -200.0, 200.0)
      if state.saturated:
        self.assertAlmostEqual(abs(u), 200.0)

  def test_nominal_loop_is_stable(self):
    poles = make_mpc().closed_loop_poles()
    chex.assert_shape(poles, (5,))
    self.assertLess(float(np.max(np.abs(poles))), 1.0)

  def test_tracks_step_on_linear_model(self):
    mpc = make_mpc()
    A, B, C = mpc.model.A, mpc.model.B, mpc.model.C
    x, state = np.zeros(4), mpc.init()
    for _ in range(600):
      state, u = mpc(state, C @ x, np.array([1.0, 0.0]))
      x = A @ x + B[:, 0] * u
    self.assertEqual(state.faults, 0)
    np.testing.assert_allclose(C @ x, [1.0, 0.0], atol=1e-2)

  def test_at_rest_on_reference(self):
    mpc = make_mpc()
    state, u = mpc(mpc.init(), np.zeros(2), np.zeros(2))
    self.assertEqual(state.status, MPCStatus.SOLVED)
    self.assertAlmostEqual(u, 0.0, places=3)
    self.assertFalse(state.saturated)

  def test_target_under_disturbance(self):
    mpc = make_mpc()
    x_t, u_t = mpc.target(np.array([2.0, 0.0]), np.array([1.0]))
    # The force cancels the tip disturbance, which tilts the pendulum.
    self.assertAlmostEqual(u_t, -1.0, places=5)
    self.assertAlmostEqual(x_t[0], 2.0, places=5)
    self.assertAlmostEqual(x_t[2], -1.0 / 9.81, places=5)

  def test_infeasible_outputs_are_softened(self):
    mpc = make_mpc(output_min=(None, 0.1), output_max=(None, 0.2))
    state, u = mpc(mpc.init(), np.zeros(2), np.zeros(2))
    self.assertEqual(state.status, MPCStatus.SOFTENED)
    self.assertGreater(state.slack, 0.0)
    self.assertTrue(np.isfinite(u))
    self.assertBetween(u, -200.0, 200.0)
    self.assertEqual(state.faults, 0)

  def test_holds_last_input_when_solver_fails(self):
    mpc = make_mpc(max_iter=1)
    state = mpc.init(u0=12.5)
    state, u = mpc(state, np.zeros(2), np.array([1.0, 0.0]))
    self.assertEqual(state.status, MPCStatus.HELD)
    self.assertEqual(u, 12.5)
    self.assertEqual(state.faults, 1)

  def test_rate_bounds(self):
    mpc = make_mpc(mv_rate_min=-5.0, mv_rate_max=5.0)
    state, u = mpc(mpc.init(), np.zeros(2), np.array([10.0, 0.0]))
    self.assertLessEqual(abs(u), 5.0 + 1e-3)
    state, u2 = mpc(state, np.zeros(2), np.array([10.0, 0.0]))
    self.assertLessEqual(abs(u2 - u), 5.0 + 1e-3)


class MPCConfigTest(chex.TestCase):

  def test_bad_horizons(self):
    with self.assertRaises(ValueError):
      MPCConfig.create(prediction_horizon=0)
    with self.assertRaises(ValueError):
      MPCConfig.create(prediction_horizon=5, control_horizon=6)

  def test_bad_bounds(self):
    with self.assertRaises(ValueError):
      MPCConfig.create(mv_min=1.0, mv_max=-1.0)
    with self.assertRaises(ValueError):
      MPCConfig.create(mv_rate_min=1.0, mv_rate_max=1.0)
    with self.assertRaises(ValueError):
      MPCConfig.create(output_min=(None, 0.3), output_max=(None, 0.2))

  def test_bad_weights_for_model(self):
    with self.assertRaises(ValueError):
      make_mpc(output_weights=(1.0,))

  def test_disturbance_on_mv(self):
    with self.assertRaises(ValueError):
      make_mpc(disturbance_index=0)

  def test_sample_time_mismatch(self):
    model = discretize(linearize(CartPendulum.create()), 0.02)
    with self.assertRaises(ValueError):
      MPC.create(model=model, config=MPCConfig.create(dt=0.01))


if __name__ == "__main__":
  absltest.main()
