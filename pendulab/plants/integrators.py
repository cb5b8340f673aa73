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

"""Fixed-step integrators for `x_dot = f(x, u)` with `u` held over the step."""

import jax.numpy as jnp


def euler(f, x, u, dt):
  return x + dt * f(x, u)


def semi_implicit_euler(f, x, u, dt):
  """Symplectic Euler for states laid out as `[positions, velocities]`.

  Velocities are advanced first and the new velocities are used to advance
  the positions.
  """
  n = x.shape[0] // 2
  v = x[n:] + dt * f(x, u)[n:]
  q = x[:n] + dt * v
  return jnp.concatenate([q, v])


def rk4(f, x, u, dt):
  k1 = f(x, u)
  k2 = f(x + 0.5 * dt * k1, u)
  k3 = f(x + 0.5 * dt * k2, u)
  k4 = f(x + dt * k3, u)
  return x + dt / 6.0 * (k1 + 2.0 * k2 + 2.0 * k3 + k4)


INTEGRATORS = {
    "euler": euler,
    "semi_implicit_euler": semi_implicit_euler,
    "rk4": rk4,
}


def get_integrator(name):
  if name not in INTEGRATORS:
    raise ValueError(
        f"Unknown integrator `{name}`; expected one of {sorted(INTEGRATORS)}.")
  return INTEGRATORS[name]


def integrate(f, x, u, dt, substeps=1, method="rk4"):
  """Advances `x` by `dt` using `substeps` equal steps of `method`."""
  step = get_integrator(method)
  h = dt / substeps
  for _ in range(substeps):
    x = step(f, x, u, h)
  return x
