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

"""Tests for pendulab.linearize."""

from absl.testing import absltest
from absl.testing import parameterized
import chex
import numpy as np
import scipy.linalg

from pendulab.linearize import LinearizationError
from pendulab.linearize import LinearModel
from pendulab.linearize import OperatingPoint
from pendulab.linearize import discretize
from pendulab.linearize import linearize
from pendulab.plants import CartPendulum
from pendulab.plants import Pendulum

# pylint: disable=invalid-name


class LinearizeTest(chex.TestCase):

  @parameterized.parameters(("autodiff", 1e-4), ("central", 1e-3))
  def test_upright_matches_analytic(self, method, atol):
    plant = CartPendulum.create(c=0.2)
    model = linearize(plant, method=method)
    expected = plant.analytic_linearization()
    np.testing.assert_allclose(model.A, expected.A, atol=atol)
    np.testing.assert_allclose(model.B, expected.B, atol=atol)
    np.testing.assert_allclose(model.C, expected.C, atol=atol)
    np.testing.assert_allclose(model.D, np.zeros((2, 2)))
    self.assertFalse(model.is_discrete)

  def test_deterministic(self):
    plant = CartPendulum.create()
    m1 = linearize(plant, method="central", eps=1e-3)
    m2 = linearize(plant, method="central", eps=1e-3)
    np.testing.assert_array_equal(m1.A, m2.A)
    np.testing.assert_array_equal(m1.B, m2.B)

  def test_upright_has_integrator_and_unstable_pole(self):
    poles = np.sort(np.real(linearize(CartPendulum.create()).poles()))
    self.assertGreater(poles[-1], 0.0)
    self.assertEqual(int(np.sum(np.abs(poles) < 1e-6)), 1)
    np.testing.assert_allclose(poles, [-11.9115, -3.2138, 0.0, 5.1253],
                               atol=2e-3)

  def test_coulomb_friction_at_rest_raises(self):
    plant = CartPendulum.create(mu=0.5)
    with self.assertRaises(LinearizationError):
      linearize(plant)

  def test_coulomb_friction_while_moving(self):
    plant = CartPendulum.create(mu=0.5)
    op = OperatingPoint.create(state=np.array([0.0, 1.0, 0.0, 0.0]),
                               inputs=np.array([0.0, 0.0]))
    model = linearize(plant, op)
    np.testing.assert_allclose(model.op.state, op.state)
    self.assertEqual(model.A.shape, (4, 4))

  def test_operating_point_output(self):
    plant = Pendulum.create()
    op = OperatingPoint.create(state=np.array([np.pi, 0.0]),
                               inputs=np.zeros(1))
    model = linearize(plant, op)
    np.testing.assert_allclose(model.y0, [np.pi, 0.0], rtol=1e-6)
    # Hanging down is stable: theta_ddot = -g / l dtheta.
    np.testing.assert_allclose(model.A[1, 0], -plant.g / plant.l, rtol=1e-4)

  def test_bad_operating_point(self):
    op = OperatingPoint.create(state=np.zeros(3), inputs=np.zeros(2))
    with self.assertRaises(ValueError):
      linearize(CartPendulum.create(), op)

  def test_unknown_method(self):
    with self.assertRaises(ValueError):
      linearize(CartPendulum.create(), method="forward")


class DiscretizeTest(chex.TestCase):

  def test_scalar_integrator(self):
    model = LinearModel.create(A=[[0.0]], B=[[1.0]], C=[[1.0]], D=[[0.0]])
    dmodel = discretize(model, 0.1)
    np.testing.assert_allclose(dmodel.A, [[1.0]])
    np.testing.assert_allclose(dmodel.B, [[0.1]])
    self.assertEqual(dmodel.dt, 0.1)

  def test_matches_expm(self):
    plant = CartPendulum.create()
    model = plant.analytic_linearization()
    dmodel = model.discretize(0.01)
    np.testing.assert_allclose(dmodel.A, scipy.linalg.expm(0.01 * model.A),
                               atol=1e-10)
    np.testing.assert_allclose(np.sort(np.abs(dmodel.poles())),
                               np.sort(np.abs(np.exp(0.01 * model.poles()))),
                               rtol=1e-8)

  def test_already_discrete(self):
    model = LinearModel.create(A=[[0.0]], B=[[1.0]], C=[[1.0]], D=[[0.0]])
    with self.assertRaises(ValueError):
      discretize(discretize(model, 0.1), 0.1)

  def test_bad_sample_time(self):
    model = LinearModel.create(A=[[0.0]], B=[[1.0]], C=[[1.0]], D=[[0.0]])
    with self.assertRaises(ValueError):
      discretize(model, 0.0)

  def test_shape_validation(self):
    with self.assertRaises(ValueError):
      LinearModel.create(A=np.zeros((2, 3)), B=np.zeros((2, 1)),
                         C=np.zeros((1, 2)), D=np.zeros((1, 1)))
    with self.assertRaises(ValueError):
      LinearModel.create(A=np.zeros((2, 2)), B=np.zeros((2, 1)),
                         C=np.zeros((1, 2)), D=np.zeros((2, 1)))


if __name__ == "__main__":
  absltest.main()
