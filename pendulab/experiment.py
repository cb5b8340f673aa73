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

"""Closed-loop simulation of a plant and a controller, and pass/fail checks."""

import collections
import functools

import jax
import jax.numpy as jnp
import numpy as np
from absl import logging

from pendulab.agents import MPCStatus
from pendulab.core import Disturbance
from pendulab.core import Trajectory
from pendulab.core import field

StepReport = collections.namedtuple("StepReport", [
    "passed", "reach_time", "overshoot", "final_error", "final_angle"
])

ImpulseReport = collections.namedtuple("ImpulseReport", [
    "passed", "max_displacement", "peak_angle", "final_position",
    "final_angle"
])


class NoDisturbance(Disturbance):
  size: int = field(2, jaxed=False)

  def __call__(self, t):
    return np.zeros(self.size)


class Impulse(Disturbance):
  """Rectangular pulse of `magnitude` on input `channel`.

  The pulse starts at `start` and lasts `width` seconds; one sample interval
  approximates an impulse of area `magnitude * width`.
  """
  size: int = field(2, jaxed=False)
  channel: int = field(1, jaxed=False)
  magnitude: float = field(2.0, jaxed=False)
  start: float = field(1.0, jaxed=False)
  width: float = field(0.1, jaxed=False)

  def __call__(self, t):
    u = np.zeros(self.size)
    if self.start <= t < self.start + self.width:
      u[self.channel] = self.magnitude
    return u


class Step(Disturbance):
  size: int = field(2, jaxed=False)
  channel: int = field(1, jaxed=False)
  magnitude: float = field(1.0, jaxed=False)
  start: float = field(0.0, jaxed=False)

  def __call__(self, t):
    u = np.zeros(self.size)
    if t >= self.start:
      u[self.channel] = self.magnitude
    return u


def step_reference(value, index=0, size=2, start=0.0, initial=None):
  """Reference that steps output `index` to `value` at `start`."""
  before = np.zeros(size) if initial is None else np.asarray(initial, float)
  after = before.copy()
  after[index] = value

  def reference(t):
    return after if t >= start else before

  return reference


def run_closed_loop(plant, controller, reference, duration, disturbance=None,
                    abort_on_fault=False):
  """Simulates `plant` under an output-feedback controller such as `MPC`.

  Each tick the controller reads the measured output and the reference,
  returns the MV, and the plant is advanced by one sample with the MV on
  `controller.config.mv_index` and the disturbance on the remaining inputs.

  Args:
    plant: a `pendulab.core.Plant` sampled at the controller's `dt`.
    controller: agent with `init()`, `__call__(state, y, r) -> (state, u)`.
    reference: callable `t -> output setpoints`.
    duration: simulated seconds.
    disturbance: callable `t -> plant input vector`; zero when None.
    abort_on_fault: stop at the first tick the controller holds its input.

  Returns:
    A `Trajectory`.
  """
  if not np.isclose(plant.dt, controller.dt):
    raise ValueError(
        f"Plant samples at {plant.dt}s but the controller at {controller.dt}s.")
  if disturbance is None:
    disturbance = NoDisturbance.create(size=plant.input_size)

  num_steps = int(round(duration / plant.dt))
  advance = jax.jit(plant.__call__)
  mv_index = controller.config.mv_index

  plant_state, y = plant.init()
  ctrl_state = controller.init()
  times, states, outputs = [0.0], [np.asarray(plant_state.arr)], [np.asarray(y)]
  inputs, refs, statuses, saturated = [], [], [], []
  aborted, cause = False, None

  for k in range(num_steps):
    t = k * plant.dt
    r = np.asarray(reference(t), dtype=np.float64)
    ctrl_state, u = controller(ctrl_state, np.asarray(y), r)

    plant_inputs = np.array(disturbance(t), dtype=np.float64)
    plant_inputs[mv_index] = u
    plant_state, y = advance(plant_state, plant_inputs)

    times.append(t + plant.dt)
    states.append(np.asarray(plant_state.arr))
    outputs.append(np.asarray(y))
    inputs.append(plant_inputs)
    refs.append(r)
    statuses.append(ctrl_state.status)
    saturated.append(ctrl_state.saturated)

    if not np.all(np.isfinite(states[-1])):
      aborted, cause = True, "non_finite_state"
      logging.error("Plant state became non-finite at t=%.3f.", t)
      break
    if abort_on_fault and ctrl_state.status == MPCStatus.HELD:
      aborted, cause = True, "controller_fault"
      logging.error("Controller fault at t=%.3f; aborting run.", t)
      break

  faults = int(np.sum(np.asarray(statuses) == MPCStatus.HELD))
  softened = int(np.sum(np.asarray(statuses) == MPCStatus.SOFTENED))
  logging.info("Closed loop ran %d ticks: %d softened, %d held, %d saturated.",
               len(statuses), softened, faults, int(np.sum(saturated)))
  return Trajectory.create(
      times=np.asarray(times),
      states=np.stack(states),
      inputs=np.stack(inputs) if inputs else np.zeros((0, plant.input_size)),
      outputs=np.stack(outputs),
      references=np.stack(refs) if refs else None,
      statuses=np.asarray(statuses, dtype=int),
      saturated=np.asarray(saturated, dtype=bool),
      faults=faults,
      aborted=aborted,
      cause=cause)


@functools.partial(jax.jit, static_argnums=(3,))
def _pid_rollout(plant, pid, setpoint, num_steps):

  def step(carry, _):
    plant_state, y, pid_state = carry
    err = setpoint - y[0]
    pid_state, u = pid(pid_state, err)
    plant_state, y = plant(plant_state, jnp.reshape(u, (1,)))
    return (plant_state, y, pid_state), (y[0], u)

  plant_state, y = plant.init()
  _, (ys, us) = jax.lax.scan(step, (plant_state, y, pid.init()), None,
                             length=num_steps)
  return ys, us


def run_pid_loop(plant, pid, setpoint, duration):
  """Unity-feedback loop of a SISO plant and a `PID` on the error.

  Returns:
    A `Trajectory` whose `outputs` start with the initial plant output.
  """
  if not np.isclose(plant.dt, pid.dt):
    raise ValueError(f"Plant samples at {plant.dt}s but the PID at {pid.dt}s.")
  num_steps = int(round(duration / plant.dt))
  ys, us = _pid_rollout(plant, pid, float(setpoint), num_steps)
  y0 = np.asarray(plant.init()[1]).ravel()[:1]
  outputs = np.concatenate([y0, np.asarray(ys)])
  return Trajectory.create(
      times=np.arange(num_steps + 1) * plant.dt,
      outputs=outputs,
      inputs=np.asarray(us),
      references=np.full(num_steps, float(setpoint)))


def check_step_response(trajectory, target, position_index=0, angle_index=1,
                        tolerance=0.05, within=4.0, angle_tolerance=0.01,
                        max_overshoot=None):
  """Checks a setpoint-change run against its tracking objectives.

  The position must enter and stay within `tolerance * |target|` of `target`
  no later than `within` seconds, and the final angle must be within
  `angle_tolerance` of upright. `max_overshoot`, a percentage, is checked
  only when given.
  """
  t = trajectory.times
  x = trajectory.outputs[:, position_index]
  theta = trajectory.outputs[:, angle_index]
  band = tolerance * abs(target)

  outside = np.flatnonzero(np.abs(x - target) > band)
  if not outside.size:
    reach_time = float(t[0])
  elif outside[-1] == len(x) - 1:
    reach_time = np.inf
  else:
    reach_time = float(t[outside[-1] + 1])

  x0 = x[0]
  span = target - x0
  overshoot = (max(0.0, 100.0 * float(np.max((x - target) * np.sign(span))) /
                   abs(span)) if span else 0.0)
  final_error = float(abs(x[-1] - target))
  final_angle = float(abs(theta[-1]))

  passed = reach_time <= within and final_angle <= angle_tolerance
  if max_overshoot is not None:
    passed = passed and overshoot <= max_overshoot
  return StepReport(
      passed=bool(passed),
      reach_time=reach_time,
      overshoot=overshoot,
      final_error=final_error,
      final_angle=final_angle)


def check_impulse_response(trajectory, position_index=0, angle_index=1,
                           max_displacement=1.0, max_angle=0.26,
                           settle_tolerance=0.05):
  """Checks disturbance rejection: bounded excursion and return to rest."""
  x = trajectory.outputs[:, position_index]
  theta = trajectory.outputs[:, angle_index]
  x_ref = x[0]
  max_disp = float(np.max(np.abs(x - x_ref)))
  peak_angle = float(np.max(np.abs(theta)))
  final_position = float(x[-1])
  final_angle = float(theta[-1])
  passed = (max_disp <= max_displacement and peak_angle <= max_angle and
            abs(final_position - x_ref) <= settle_tolerance and
            abs(final_angle) <= settle_tolerance)
  return ImpulseReport(
      passed=bool(passed),
      max_displacement=max_disp,
      peak_angle=peak_angle,
      final_position=final_position,
      final_angle=final_angle)
