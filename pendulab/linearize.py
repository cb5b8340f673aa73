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

"""Linear time-invariant models of a plant about an operating point."""

import jax
import numpy as np
import scipy.linalg
from absl import logging

from pendulab.core import Obj
from pendulab.core import field

# pylint:disable=invalid-name


class LinearizationError(ValueError):
  """The plant is not differentiable at the requested operating point."""


class OperatingPoint(Obj):
  state: np.ndarray = field(jaxed=True)
  inputs: np.ndarray = field(jaxed=True)

  def setup(self):
    self.state = np.asarray(self.state, dtype=np.float64)
    self.inputs = np.asarray(self.inputs, dtype=np.float64)


class LinearModel(Obj):
  """`dx = A dx + B du`, `dy = C dx + D du` about `op`.

  Deviations are taken with respect to `op.state`, `op.inputs` and the output
  at the operating point `y0`. `dt` is `None` for a continuous-time model and
  the sample time once the model has been discretized.
  """
  A: np.ndarray = field(jaxed=True)
  B: np.ndarray = field(jaxed=True)
  C: np.ndarray = field(jaxed=True)
  D: np.ndarray = field(jaxed=True)
  op: OperatingPoint = field(jaxed=True)
  y0: np.ndarray = field(jaxed=True)
  dt: float = field(None, jaxed=False)

  def setup(self):
    for name in ("A", "B", "C", "D"):
      setattr(self, name, np.atleast_2d(np.asarray(getattr(self, name),
                                                   dtype=np.float64)))
    n = self.A.shape[0]
    if self.A.shape != (n, n):
      raise ValueError(f"A must be square, got shape {self.A.shape}.")
    if self.B.shape[0] != n or self.C.shape[1] != n:
      raise ValueError("B and C must agree with the state dimension of A.")
    if self.D.shape != (self.C.shape[0], self.B.shape[1]):
      raise ValueError(f"D must have shape {(self.C.shape[0], self.B.shape[1])}.")
    if self.op is None:
      self.op = OperatingPoint.create(
          state=np.zeros(n), inputs=np.zeros(self.B.shape[1]))
    if self.y0 is None:
      self.y0 = np.zeros(self.C.shape[0])
    self.y0 = np.asarray(self.y0, dtype=np.float64)

  @property
  def state_size(self):
    return self.A.shape[0]

  @property
  def input_size(self):
    return self.B.shape[1]

  @property
  def output_size(self):
    return self.C.shape[0]

  @property
  def is_discrete(self):
    return self.dt is not None

  def poles(self):
    return np.linalg.eigvals(self.A)

  def discretize(self, dt):
    return discretize(self, dt)


def discretize(model, dt):
  """Zero-order-hold discretization via the matrix exponential.

  Args:
    model: a continuous-time `LinearModel`.
    dt: sample time in seconds.

  Returns:
    A `LinearModel` with `model.dt == dt` sharing the operating point and the
    output equation of `model`.
  """
  if model.is_discrete:
    raise ValueError(f"Model is already discrete with dt={model.dt}.")
  if dt <= 0:
    raise ValueError(f"Sample time must be positive, got {dt}.")
  n, m = model.B.shape
  M = np.zeros((n + m, n + m))
  M[:n, :n] = model.A
  M[:n, n:] = model.B
  Md = scipy.linalg.expm(M * dt)
  return LinearModel.create(
      A=Md[:n, :n],
      B=Md[:n, n:],
      C=model.C,
      D=model.D,
      op=model.op,
      y0=model.y0,
      dt=float(dt))


def central_difference(f, x, eps):
  """Jacobian of `f` at `x` by central differences with step `eps`."""
  x = np.asarray(x, dtype=np.float64)
  f0 = np.asarray(f(x), dtype=np.float64)
  J = np.zeros((f0.size, x.size))
  for i in range(x.size):
    dx = np.zeros_like(x)
    dx[i] = eps
    fp = np.asarray(f(x + dx), dtype=np.float64).ravel()
    fm = np.asarray(f(x - dx), dtype=np.float64).ravel()
    J[:, i] = (fp - fm) / (2.0 * eps)
  return J


def _check_smooth(name, f, x, eps, tol):
  """Raises if halving the perturbation changes the derivative estimate."""
  J1 = central_difference(f, x, eps)
  J2 = central_difference(f, x, eps / 2.0)
  err = np.abs(J1 - J2)
  bound = tol * (1.0 + np.abs(J2))
  if np.any(err > bound):
    i, j = np.unravel_index(np.argmax(err - bound), err.shape)
    raise LinearizationError(
        f"d{name}[{i}]/d[{j}] changes from {J1[i, j]:.6g} to {J2[i, j]:.6g} "
        f"when the perturbation is halved from {eps:g}; the plant looks "
        "discontinuous at this operating point.")
  return J2


def linearize(plant, op=None, eps=1e-3, method="autodiff", tol=1e-2):
  """Linearizes `plant.dynamics` and `plant.output` about `op`.

  Args:
    plant: a `pendulab.core.Plant`.
    op: `OperatingPoint`; defaults to zero state and zero input.
    eps: finite-difference perturbation. Also used by the smoothness check
      that runs for every method.
    method: "autodiff" (forward-mode Jacobians through `jax.jacfwd`) or
      "central" (central finite differences with step `eps`).
    tol: relative tolerance of the smoothness check.

  Returns:
    A continuous-time `LinearModel`.

  Raises:
    LinearizationError: if the derivative estimates at `eps` and `eps / 2`
      disagree, e.g. at zero cart velocity with Coulomb friction.
  """
  if op is None:
    op = OperatingPoint.create(
        state=np.zeros(plant.state_size), inputs=np.zeros(plant.input_size))
  x0, u0 = op.state, op.inputs
  if x0.shape != (plant.state_size,) or u0.shape != (plant.input_size,):
    raise ValueError(
        f"Operating point shapes {x0.shape}, {u0.shape} do not match plant "
        f"sizes ({plant.state_size},), ({plant.input_size},).")

  fx = lambda x: plant.dynamics(x, u0)  # noqa: E731
  fu = lambda u: plant.dynamics(x0, u)  # noqa: E731

  A = _check_smooth("f", fx, x0, eps, tol)
  B = _check_smooth("f", fu, u0, eps, tol)
  C = _check_smooth("g", plant.output, x0, eps, tol)

  if method == "autodiff":
    A = np.asarray(jax.jacfwd(fx)(x0), dtype=np.float64)
    B = np.asarray(jax.jacfwd(fu)(u0), dtype=np.float64)
    C = np.asarray(jax.jacfwd(plant.output)(x0), dtype=np.float64)
  elif method == "central":
    A = central_difference(fx, x0, eps)
    B = central_difference(fu, u0, eps)
    C = central_difference(plant.output, x0, eps)
  else:
    raise ValueError(f"Unknown linearization method `{method}`.")

  y0 = np.asarray(plant.output(x0), dtype=np.float64)
  D = np.zeros((C.shape[0], B.shape[1]))
  model = LinearModel.create(A=A, B=B, C=C, D=D, op=op, y0=y0)
  logging.info("Linearized %s about x=%s u=%s; poles %s",
               type(plant).__name__, x0, u0, np.round(model.poles(), 4))
  return model
