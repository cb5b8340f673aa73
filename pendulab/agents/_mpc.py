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

"""Linear model-predictive control with a disturbance observer.

Every tick the controller

  1. corrects its state and disturbance estimate with the new measurement,
  2. computes the steady state that reaches the reference under the
     estimated disturbance,
  3. solves a condensed QP over the manipulated-variable (MV) moves in the
     control horizon,
  4. re-solves with softened output constraints if (3) fails, and holds the
     previous input if that fails too,
  5. applies the first move and propagates the estimate.

The QP is solved with OSQP. Hessian and constraint matrices depend only on
the model and the configuration, so both problems are set up once and only
the linear term and bounds are updated per tick.
"""

import enum

import numpy as np
import osqp
import scipy.linalg
from absl import logging
from scipy import sparse

from pendulab.core import Agent
from pendulab.core import Obj
from pendulab.core import field
from pendulab.linearize import LinearModel
from pendulab.linearize import discretize

# pylint:disable=invalid-name

_SOLVED = ("solved", "solved inaccurate")


def _converged(res):
  return (res.info.status in _SOLVED and res.x is not None and
          np.all(np.isfinite(res.x)))


class MPCStatus(enum.IntEnum):
  SOLVED = 0
  SOFTENED = 1
  HELD = 2


class MPCConfig(Obj):
  """Horizons, constraints and weights of an `MPC` controller.

  MV quantities (`mv_*`) are in physical units. Weights follow the scaled
  convention: the MV and MV-rate weights multiply `u / mv_scale`, the output
  weights multiply the output error directly. `output_min`/`output_max` hold
  one bound per output, `None` for an unconstrained entry.
  """
  dt: float = field(0.01, jaxed=False)
  prediction_horizon: int = field(50, jaxed=False)
  control_horizon: int = field(5, jaxed=False)
  mv_index: int = field(0, jaxed=False)
  mv_min: float = field(-200.0, jaxed=False)
  mv_max: float = field(200.0, jaxed=False)
  mv_rate_min: float = field(None, jaxed=False)
  mv_rate_max: float = field(None, jaxed=False)
  mv_scale: float = field(100.0, jaxed=False)
  output_min: tuple = field(None, jaxed=False)
  output_max: tuple = field(None, jaxed=False)
  output_weights: tuple = field((1.2, 1.0), jaxed=False)
  mv_weight: float = field(0.0, jaxed=False)
  mv_rate_weight: float = field(1.0, jaxed=False)
  ecr_weight: float = field(1e5, jaxed=False)
  # Input channel of the unmeasured disturbance; None disables the observer's
  # disturbance model.
  disturbance_index: int = field(1, jaxed=False)
  disturbance_gain: float = field(10.0, jaxed=False)
  process_noise: float = field(1.0, jaxed=False)
  measurement_noise: float = field(1.0, jaxed=False)
  max_iter: int = field(4000, jaxed=False)
  eps_abs: float = field(1e-6, jaxed=False)
  eps_rel: float = field(1e-6, jaxed=False)

  def setup(self):
    if self.dt <= 0:
      raise ValueError(f"dt must be positive, got {self.dt}.")
    if self.prediction_horizon < 1:
      raise ValueError("prediction_horizon must be >= 1.")
    if not 1 <= self.control_horizon <= self.prediction_horizon:
      raise ValueError(
          f"control_horizon must be in [1, {self.prediction_horizon}], got "
          f"{self.control_horizon}.")
    if self.mv_min >= self.mv_max:
      raise ValueError(f"mv_min={self.mv_min} must be below mv_max={self.mv_max}.")
    if (self.mv_rate_min is not None and self.mv_rate_max is not None and
        self.mv_rate_min >= self.mv_rate_max):
      raise ValueError("mv_rate_min must be below mv_rate_max.")
    if self.output_min is not None and self.output_max is not None:
      for lo, hi in zip(self.output_min, self.output_max):
        if lo is not None and hi is not None and lo >= hi:
          raise ValueError(f"Output bounds [{lo}, {hi}] are empty.")
    if self.mv_scale <= 0:
      raise ValueError("mv_scale must be positive.")
    if self.ecr_weight <= 0:
      raise ValueError("ecr_weight must be positive.")
    self.output_weights = tuple(float(w) for w in self.output_weights)


class MPCState(Obj):
  """Observer estimate and bookkeeping carried between ticks.

  `x_hat` is the a-priori estimate of the augmented deviation state
  `[dx, d]` for the coming tick. `u` is the last applied MV in physical units.
  """
  x_hat: np.ndarray = field(jaxed=True)
  u: float = field(0.0, jaxed=True)
  status: int = field(int(MPCStatus.SOLVED), jaxed=True)
  saturated: bool = field(False, jaxed=True)
  slack: float = field(0.0, jaxed=True)
  faults: int = field(0, jaxed=True)
  steps: int = field(0, jaxed=True)


class MPC(Agent):
  """Receding-horizon controller for one MV of a `LinearModel`.

  Attributes:
    model: continuous or discrete `LinearModel`. A continuous model is
      discretized with `config.dt`.
    config: `MPCConfig`.
  """
  model: LinearModel = field(jaxed=False)
  config: MPCConfig = field(jaxed=False)

  # Derived in setup.
  Aa: np.ndarray = field(jaxed=False)
  Ba: np.ndarray = field(jaxed=False)
  Ca: np.ndarray = field(jaxed=False)
  L: np.ndarray = field(jaxed=False)
  qp: dict = field(jaxed=False)

  def setup(self):
    if self.config is None:
      self.config = MPCConfig.create()
    cfg = self.config
    if self.model is None:
      raise ValueError("MPC requires a LinearModel.")
    if not self.model.is_discrete:
      self.model = discretize(self.model, cfg.dt)
    elif not np.isclose(self.model.dt, cfg.dt):
      raise ValueError(
          f"Model sample time {self.model.dt} differs from dt={cfg.dt}.")

    model = self.model
    ny, nu = model.output_size, model.input_size
    if not 0 <= cfg.mv_index < nu:
      raise ValueError(f"mv_index {cfg.mv_index} out of range for {nu} inputs.")
    if cfg.disturbance_index is not None and (
        not 0 <= cfg.disturbance_index < nu or
        cfg.disturbance_index == cfg.mv_index):
      raise ValueError(
          f"disturbance_index {cfg.disturbance_index} must name an input other "
          "than the MV.")
    if np.any(model.D[:, cfg.mv_index] != 0):
      raise ValueError("Direct feedthrough from the MV is not supported.")
    if len(cfg.output_weights) != ny:
      raise ValueError(
          f"Expected {ny} output weights, got {len(cfg.output_weights)}.")
    for name in ("output_min", "output_max"):
      bounds = getattr(cfg, name)
      if bounds is not None and len(bounds) != ny:
        raise ValueError(f"{name} must have one entry per output ({ny}).")

    self._setup_observer()
    self._setup_qp()
    radius = float(np.max(np.abs(self.closed_loop_poles())))
    logging.info(
        "MPC with p=%d, m=%d, dt=%g; observer poles %s; nominal loop spectral "
        "radius %.4f", cfg.prediction_horizon, cfg.control_horizon, cfg.dt,
        np.round(np.abs(np.linalg.eigvals(
            self.Aa - self.Aa @ self.L @ self.Ca)), 4), radius)
    if radius >= 1.0:
      logging.warning(
          "Unconstrained MPC does not stabilize the linear model (spectral "
          "radius %.4f); lengthen the horizons or retune the weights.", radius)

  @property
  def dt(self):
    return self.config.dt

  @property
  def mv_bounds(self):
    return self.config.mv_min, self.config.mv_max

  @property
  def _Bmv(self):
    return self.model.B[:, [self.config.mv_index]]

  @property
  def _Bd(self):
    if self.config.disturbance_index is None:
      return np.zeros((self.model.state_size, 0))
    return self.model.B[:, [self.config.disturbance_index]]

  def _setup_observer(self):
    """Steady-state Kalman filter for the disturbance-augmented model."""
    cfg, model = self.config, self.model
    n, ny = model.state_size, model.output_size
    Bd = self._Bd
    nd = Bd.shape[1]

    self.Aa = np.block([[model.A, Bd], [np.zeros((nd, n)), np.eye(nd)]])
    self.Ba = np.vstack([self._Bmv, np.zeros((nd, 1))])
    self.Ca = np.hstack([model.C, np.zeros((ny, nd))])

    Qn = scipy.linalg.block_diag(
        cfg.process_noise * np.eye(n),
        cfg.disturbance_gain**2 * np.eye(nd))
    Rn = cfg.measurement_noise * np.eye(ny)
    P = scipy.linalg.solve_discrete_are(self.Aa.T, self.Ca.T, Qn, Rn)
    self.L = P @ self.Ca.T @ np.linalg.inv(self.Ca @ P @ self.Ca.T + Rn)

  def _setup_qp(self):
    """Builds the condensed prediction matrices and both OSQP problems."""
    cfg, model = self.config, self.model
    A, C = model.A, model.C
    n, ny = model.state_size, model.output_size
    Np, Nc, s = cfg.prediction_horizon, cfg.control_horizon, cfg.mv_scale
    Bmv, Bd = self._Bmv, self._Bd

    # x_{i+1} = A x_i + Bmv u_i + Bd d for i = 0..Np-1, stacked as X = [x_1..x_Np].
    powers = [np.eye(n)]
    for _ in range(Np):
      powers.append(A @ powers[-1])
    Phi = np.vstack(powers[1:])
    Gam = np.zeros((Np * n, Np))
    Psi = np.zeros((Np * n, Bd.shape[1]))
    for i in range(Np):
      for j in range(i + 1):
        Gam[i * n:(i + 1) * n, j] = (powers[i - j] @ Bmv).ravel()
      Psi[i * n:(i + 1) * n] = sum(powers[k] for k in range(i + 1)) @ Bd

    # Moves are blocked: u_i = u_prev + sum_{j <= min(i, Nc - 1)} du_j.
    T = np.tril(np.ones((Np, Nc)))
    G = Gam @ T

    # Outputs are weighted at every predicted sample, the last one included.
    W = np.diag(np.asarray(cfg.output_weights)**2)
    Q = C.T @ W @ C
    Qbar = scipy.linalg.block_diag(*([Q] * Np))

    H = (s**2 * G.T @ Qbar @ G + cfg.mv_weight**2 * T.T @ T +
         cfg.mv_rate_weight**2 * np.eye(Nc))
    H = 0.5 * (H + H.T)

    # Input rows: u_op + u_prev + s * tril(1) z within [mv_min, mv_max].
    rows = [s * np.tril(np.ones((Nc, Nc)))]
    if cfg.mv_rate_min is not None or cfg.mv_rate_max is not None:
      rows.append(s * np.eye(Nc))
    A_in = np.vstack(rows)

    Cbar = scipy.linalg.block_diag(*([C] * Np))
    constrained = self._constrained_outputs()
    sel = np.concatenate(
        [i * ny + np.asarray(constrained, dtype=int) for i in range(Np)])
    A_out = s * (Cbar @ G)[sel] if constrained else np.zeros((0, Nc))

    hard = osqp.OSQP()
    hard.setup(
        P=sparse.triu(sparse.csc_matrix(H), format="csc"),
        q=np.zeros(Nc),
        A=sparse.csc_matrix(np.vstack([A_in, A_out])),
        l=-np.inf * np.ones(A_in.shape[0] + A_out.shape[0]),
        u=np.inf * np.ones(A_in.shape[0] + A_out.shape[0]),
        **self._osqp_settings())

    # Soft problem over [z; eps]: outputs may leave their bounds by eps >= 0.
    k = A_out.shape[0]
    H_soft = scipy.linalg.block_diag(H, [[cfg.ecr_weight]])
    A_soft = np.vstack([
        np.hstack([A_in, np.zeros((A_in.shape[0], 1))]),
        np.hstack([A_out, -np.ones((k, 1))]),
        np.hstack([A_out, np.ones((k, 1))]),
        np.hstack([np.zeros((1, Nc)), np.ones((1, 1))]),
    ])
    soft = osqp.OSQP()
    soft.setup(
        P=sparse.triu(sparse.csc_matrix(H_soft), format="csc"),
        q=np.zeros(Nc + 1),
        A=sparse.csc_matrix(A_soft),
        l=-np.inf * np.ones(A_soft.shape[0]),
        u=np.inf * np.ones(A_soft.shape[0]),
        **self._osqp_settings())

    self.qp = dict(
        Phi=Phi, Gam1=Gam.sum(axis=1), Psi=Psi, G=G, T=T, Qbar=Qbar, H=H,
        Cbar_sel=Cbar[sel] if constrained else np.zeros((0, Np * n)),
        n_in=A_in.shape[0], n_out=k, hard=hard, soft=soft)

  def _osqp_settings(self):
    return dict(
        verbose=False,
        eps_abs=self.config.eps_abs,
        eps_rel=self.config.eps_rel,
        max_iter=self.config.max_iter,
        polish=True,
        warm_start=True)

  def _constrained_outputs(self):
    cfg = self.config
    lo = cfg.output_min or (None,) * self.model.output_size
    hi = cfg.output_max or (None,) * self.model.output_size
    return [i for i in range(self.model.output_size)
            if lo[i] is not None or hi[i] is not None]

  def closed_loop_poles(self):
    """Poles of the unconstrained loop under exact state feedback.

    The loop state is `[dx, u_prev]` with zero reference and disturbance. The
    tuning stabilizes the linear model when all poles lie inside the unit
    circle.
    """
    cfg, qp = self.config, self.qp
    s, Np = cfg.mv_scale, cfg.prediction_horizon
    G, Qbar, T = qp["G"], qp["Qbar"], qp["T"]
    # The QP's linear term is q = Jx dx + Ju u_prev and the first move is
    # s * z[0] with z = -H^-1 q.
    Jx = s * G.T @ Qbar @ qp["Phi"]
    Ju = (s * G.T @ Qbar @ qp["Gam1"] +
          cfg.mv_weight**2 / s * T.T @ np.ones(Np))
    row = np.linalg.solve(qp["H"], np.eye(cfg.control_horizon)[0])
    Kx = -s * row @ Jx
    Ku = 1.0 - s * row @ Ju

    A, B = self.model.A, self._Bmv.ravel()
    loop = np.vstack([
        np.hstack([A + np.outer(B, Kx), (B * Ku)[:, None]]),
        np.append(Kx, Ku)[None, :],
    ])
    return np.linalg.eigvals(loop)

  def init(self, u0=None):
    """Initial state with a zero deviation estimate and `u0` as last input."""
    nd = self._Bd.shape[1]
    if u0 is None:
      u0 = self.model.op.inputs[self.config.mv_index]
    return MPCState(
        x_hat=np.zeros(self.model.state_size + nd), u=float(u0))

  def target(self, ref_dev, d):
    """Steady state `(x_t, u_t)` tracking `ref_dev` under disturbance `d`.

    The state equations hold exactly; outputs match the reference in the
    weighted least-squares sense when the reference is not reachable.
    """
    model = self.model
    n = model.state_size
    E = np.hstack([model.A - np.eye(n), self._Bmv])
    rhs = -(self._Bd @ d) if d.size else np.zeros(n)
    z_p = np.linalg.lstsq(E, rhs, rcond=None)[0]
    N = scipy.linalg.null_space(E)
    if N.size:
      w = np.sqrt(np.diag(np.asarray(self.config.output_weights)**2))
      Cz = np.hstack([model.C, np.zeros((model.output_size, 1))])
      alpha = np.linalg.lstsq(w @ Cz @ N, w @ (ref_dev - Cz @ z_p),
                              rcond=None)[0]
      z_p = z_p + N @ alpha
    return z_p[:n], float(z_p[n])

  def _bounds(self, u_prev, F):
    """QP bounds for the hard problem in deviation coordinates."""
    cfg, qp = self.config, self.qp
    Nc = cfg.control_horizon
    u_op = self.model.op.inputs[cfg.mv_index]
    lo = [np.full(Nc, cfg.mv_min - u_op - u_prev)]
    hi = [np.full(Nc, cfg.mv_max - u_op - u_prev)]
    if cfg.mv_rate_min is not None or cfg.mv_rate_max is not None:
      lo.append(np.full(Nc, -np.inf if cfg.mv_rate_min is None
                        else cfg.mv_rate_min))
      hi.append(np.full(Nc, np.inf if cfg.mv_rate_max is None
                        else cfg.mv_rate_max))

    out_lo, out_hi = np.zeros(0), np.zeros(0)
    if qp["n_out"]:
      ny = self.model.output_size
      constrained = self._constrained_outputs()
      mins = cfg.output_min or (None,) * ny
      maxs = cfg.output_max or (None,) * ny
      y_min = np.array([-np.inf if mins[i] is None else mins[i]
                        for i in constrained])
      y_max = np.array([np.inf if maxs[i] is None else maxs[i]
                        for i in constrained])
      y_free = qp["Cbar_sel"] @ F
      y_op = self.model.y0[constrained]
      Np = cfg.prediction_horizon
      out_lo = np.tile(y_min - y_op, Np) - y_free
      out_hi = np.tile(y_max - y_op, Np) - y_free
    return np.concatenate(lo), np.concatenate(hi), out_lo, out_hi

  def _solve(self, q, in_lo, in_hi, out_lo, out_hi):
    """Solves the hard problem, then the soft one. Returns (z, eps, status)."""
    qp = self.qp
    Nc = self.config.control_horizon

    hard = qp["hard"]
    hard.update(q=q, l=np.concatenate([in_lo, out_lo]),
                u=np.concatenate([in_hi, out_hi]))
    res = hard.solve()
    if _converged(res):
      return res.x, 0.0, MPCStatus.SOLVED

    k = qp["n_out"]
    soft = qp["soft"]
    soft.update(
        q=np.concatenate([q, [0.0]]),
        l=np.concatenate([in_lo, np.full(k, -np.inf), out_lo, [0.0]]),
        u=np.concatenate([in_hi, out_hi, np.full(k, np.inf), [np.inf]]))
    res_soft = soft.solve()
    if _converged(res_soft):
      logging.warning("MPC hard QP returned `%s`; softened output constraints "
                      "(slack %.4g).", res.info.status, res_soft.x[Nc])
      return res_soft.x[:Nc], float(res_soft.x[Nc]), MPCStatus.SOFTENED

    logging.error("MPC QP failed (`%s`, softened `%s`); holding last input.",
                  res.info.status, res_soft.info.status)
    return None, 0.0, MPCStatus.HELD

  def __call__(self, state, obs, reference=None):
    """One control tick.

    Args:
      state: `MPCState`.
      obs: measured outputs in physical units.
      reference: output setpoints; defaults to the operating-point outputs.

    Returns:
      `(state, u)` with `u` the MV to apply, always within
      `[mv_min, mv_max]`.
    """
    cfg, model, qp = self.config, self.model, self.qp
    n = model.state_size
    s = cfg.mv_scale
    u_op = model.op.inputs[cfg.mv_index]

    y = np.asarray(obs, dtype=np.float64).ravel()
    ref = model.y0 if reference is None else np.asarray(
        reference, dtype=np.float64).ravel()

    # Measurement update.
    xa = state.x_hat + self.L @ (y - model.y0 - self.Ca @ state.x_hat)
    x0, d = xa[:n], xa[n:]

    x_t, u_t = self.target(ref - model.y0, d)
    u_prev = state.u - u_op

    F = qp["Phi"] @ x0 + qp["Gam1"] * u_prev + qp["Psi"] @ d
    X_t = np.tile(x_t, cfg.prediction_horizon)
    q = (s * qp["G"].T @ qp["Qbar"] @ (F - X_t) +
         cfg.mv_weight**2 / s * qp["T"].T @ np.ones(cfg.prediction_horizon) *
         (u_prev - u_t))

    z, slack, status = self._solve(q, *self._bounds(u_prev, F))

    if status == MPCStatus.HELD:
      u_raw = state.u
    else:
      u_raw = u_op + u_prev + s * z[0]
    u = float(np.clip(u_raw, cfg.mv_min, cfg.mv_max))
    span = cfg.mv_max - cfg.mv_min
    saturated = bool(u_raw <= cfg.mv_min + 1e-6 * span or
                     u_raw >= cfg.mv_max - 1e-6 * span)

    # Time update with the input actually applied.
    x_hat = self.Aa @ xa + self.Ba.ravel() * (u - u_op)

    return state.replace(
        x_hat=x_hat,
        u=u,
        status=int(status),
        saturated=saturated,
        slack=slack,
        faults=state.faults + int(status == MPCStatus.HELD),
        steps=state.steps + 1), u
