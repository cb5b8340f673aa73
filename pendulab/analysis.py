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

"""Continuous-time SISO transfer-function algebra and step metrics."""

import collections

import numpy as np
from scipy import signal

StepInfo = collections.namedtuple("StepInfo", [
    "rise_time", "settling_time", "overshoot", "peak", "peak_time",
    "steady_state"
])


def plant_tf(num, den):
  return signal.TransferFunction(num, den)


def pid_tf(kp, ki=0.0, kd=0.0, tf=0.0):
  """`kp + ki / s + kd s / (tf s + 1)`; `tf = 0` gives an ideal derivative."""
  num = np.polyadd(np.polyadd(kp * np.array([tf, 1.0, 0.0]),
                              ki * np.array([tf, 1.0])),
                   kd * np.array([1.0, 0.0, 0.0]))
  den = np.array([tf, 1.0, 0.0])
  return signal.TransferFunction(np.trim_zeros(num, "f") if tf == 0 else num,
                                 np.trim_zeros(den, "f"))


def series(g1, g2):
  return signal.TransferFunction(
      np.polymul(g1.num, g2.num), np.polymul(g1.den, g2.den))


def feedback(g, h=None):
  """Negative feedback `g / (1 + g h)`; unity feedback when `h` is None."""
  if h is None:
    h = signal.TransferFunction([1.0], [1.0])
  num = np.polymul(g.num, h.den)
  den = np.polyadd(np.polymul(g.den, h.den), np.polymul(g.num, h.num))
  return signal.TransferFunction(num, den)


def poles(sys):
  return np.roots(sys.den)


def is_stable(sys):
  return bool(np.all(np.real(poles(sys)) < 0))


def dc_gain(sys):
  return float(np.polyval(sys.num, 0.0) / np.polyval(sys.den, 0.0))


def step_response(sys, t):
  t, y = signal.step(sys, T=np.asarray(t, dtype=np.float64))
  return t, y


def step_info(t, y, final_value=None, settling_threshold=0.02,
              rise_limits=(0.1, 0.9)):
  """Rise time, settling time and overshoot of a step response.

  Args:
    t: sample times.
    y: response samples.
    final_value: steady-state value; defaults to the last sample.
    settling_threshold: settling band as a fraction of `final_value`.
    rise_limits: fractions of `final_value` that bound the rise.

  Returns:
    `StepInfo`. `settling_time` is the first time after which `y` stays in
    the band, `nan` if it never does; `overshoot` is a percentage.
  """
  t = np.asarray(t, dtype=np.float64)
  y = np.asarray(y, dtype=np.float64)
  yss = float(y[-1]) if final_value is None else float(final_value)
  y0 = float(y[0])
  span = yss - y0

  lo = np.flatnonzero((y - y0) * np.sign(span) >= rise_limits[0] * abs(span))
  hi = np.flatnonzero((y - y0) * np.sign(span) >= rise_limits[1] * abs(span))
  rise_time = float(t[hi[0]] - t[lo[0]]) if lo.size and hi.size else np.nan

  outside = np.flatnonzero(np.abs(y - yss) > settling_threshold * abs(yss))
  if not outside.size:
    settling_time = float(t[0])
  elif outside[-1] == len(y) - 1:
    settling_time = np.nan
  else:
    settling_time = float(t[outside[-1] + 1])

  if span >= 0:
    i = int(np.argmax(y))
  else:
    i = int(np.argmin(y))
  peak = float(y[i])
  overshoot = max(0.0, 100.0 * (peak - yss) / span) if span else 0.0

  return StepInfo(
      rise_time=rise_time,
      settling_time=settling_time,
      overshoot=overshoot,
      peak=peak,
      peak_time=float(t[i]),
      steady_state=yss)
