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

"""Explicit PRNG key threading."""

import jax


class Random:
  """Owns a PRNG key and hands out fresh subkeys.

  Every consumer of randomness receives a key from an instance of this class
  (or a raw key); nothing reads a global generator.
  """

  def __init__(self, seed=0):
    self.set_key(seed)

  def set_key(self, seed=0):
    self.key = jax.random.PRNGKey(seed)

  def get_key(self):
    return self.key

  def generate_key(self):
    """Generates random subkey"""
    self.key, subkey = jax.random.split(self.key)
    return subkey

  def generate_keys(self, num):
    self.key, *subkeys = jax.random.split(self.key, num + 1)
    return subkeys

  @classmethod
  def from_key(cls, key):
    rng = cls.__new__(cls)
    rng.key = key
    return rng
