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

"""Deep deterministic policy gradient (DDPG)."""

import functools
from typing import Any, Sequence

import flax.linen as nn
import jax
import jax.numpy as jnp
import optax

from pendulab.core import Agent
from pendulab.core import Obj
from pendulab.core import field

# pylint:disable=invalid-name


class Actor(nn.Module):
  """obs -> [Dense, relu] * len(hidden_dims) -> Dense -> tanh -> scale."""
  action_dim: int = 1
  action_scale: float = 1.0
  hidden_dims: Sequence[int] = (600, 300)

  @nn.compact
  def __call__(self, obs):
    x = obs
    for i, width in enumerate(self.hidden_dims):
      x = nn.relu(nn.Dense(width, name=f"fc{i}")(x))
    x = nn.Dense(
        self.action_dim,
        kernel_init=nn.initializers.variance_scaling(
            1e-4, "fan_avg", "uniform"),
        name="action")(x)
    return self.action_scale * jnp.tanh(x)


class Critic(nn.Module):
  """Q(obs, action) with separate state and action paths.

  The state path is `[Dense, relu] * (len(state_dims) - 1) -> Dense`, the
  action path a single bias-free `Dense` of the same width. Both are added,
  passed through relu and reduced to a scalar.
  """
  state_dims: Sequence[int] = (600, 300)

  @nn.compact
  def __call__(self, obs, action):
    s = obs
    for i, width in enumerate(self.state_dims[:-1]):
      s = nn.relu(nn.Dense(width, name=f"state_fc{i}")(s))
    s = nn.Dense(self.state_dims[-1], name=f"state_fc{len(self.state_dims) - 1}")(s)
    a = nn.Dense(self.state_dims[-1], use_bias=False, name="action_fc")(action)
    x = nn.relu(s + a)
    return nn.Dense(1, name="value")(x).squeeze(-1)


class DDPGConfig(Obj):
  """Network sizes and optimization hyperparameters."""
  actor_dims: tuple = field((600, 300), jaxed=False)
  critic_dims: tuple = field((600, 300), jaxed=False)
  actor_lr: float = field(1e-3, jaxed=False)
  critic_lr: float = field(1e-3, jaxed=False)
  gradient_threshold: float = field(None, jaxed=False)
  tau: float = field(1e-3, jaxed=False)
  discount: float = field(0.99, jaxed=False)
  batch_size: int = field(64, jaxed=False)
  buffer_capacity: int = field(10000, jaxed=False)
  max_nonfinite_updates: int = field(1000, jaxed=False)

  def setup(self):
    if not 0.0 < self.tau <= 1.0:
      raise ValueError(f"tau must be in (0, 1], got {self.tau}.")
    if not 0.0 <= self.discount <= 1.0:
      raise ValueError(f"discount must be in [0, 1], got {self.discount}.")
    if self.batch_size < 1 or self.buffer_capacity < self.batch_size:
      raise ValueError("buffer_capacity must hold at least one mini-batch.")
    if self.gradient_threshold is not None and self.gradient_threshold <= 0.0:
      raise ValueError(
          f"gradient_threshold must be positive, got {self.gradient_threshold}.")
    self.actor_dims = tuple(int(d) for d in self.actor_dims)
    self.critic_dims = tuple(int(d) for d in self.critic_dims)


class DDPGState(Obj):
  actor_params: Any = field(jaxed=True)
  critic_params: Any = field(jaxed=True)
  target_actor_params: Any = field(jaxed=True)
  target_critic_params: Any = field(jaxed=True)
  actor_opt_state: Any = field(jaxed=True)
  critic_opt_state: Any = field(jaxed=True)
  steps: int = field(0, jaxed=True)


def make_optimizer(learning_rate, gradient_threshold, max_nonfinite_updates):
  """Adam, on gradients clipped to `gradient_threshold` when it is set.

  Updates with non-finite values are skipped.
  """
  transforms = []
  if gradient_threshold is not None:
    transforms.append(optax.clip_by_global_norm(gradient_threshold))
  transforms.append(optax.adam(learning_rate))
  return optax.apply_if_finite(
      optax.chain(*transforms), max_consecutive_errors=max_nonfinite_updates)


def ddpg_update(actor, critic, actor_optim, critic_optim, discount, tau,
                action_scale, state, batch):
  """One critic step, one actor step and a soft target update."""
  obs, action, reward, next_obs, terminal = batch

  next_action = actor.apply(state.target_actor_params, next_obs)
  next_q = critic.apply(state.target_critic_params, next_obs,
                        next_action / action_scale)
  y = jax.lax.stop_gradient(reward + discount * (1.0 - terminal) * next_q)

  def critic_loss(params):
    q = critic.apply(params, obs, action / action_scale)
    return jnp.mean(jnp.square(q - y)), q

  (c_loss, q), grads = jax.value_and_grad(critic_loss, has_aux=True)(
      state.critic_params)
  updates, critic_opt_state = critic_optim.update(grads, state.critic_opt_state,
                                                  state.critic_params)
  critic_params = optax.apply_updates(state.critic_params, updates)

  def actor_loss(params):
    a = actor.apply(params, obs)
    return -jnp.mean(critic.apply(critic_params, obs, a / action_scale))

  a_loss, grads = jax.value_and_grad(actor_loss)(state.actor_params)
  updates, actor_opt_state = actor_optim.update(grads, state.actor_opt_state,
                                                state.actor_params)
  actor_params = optax.apply_updates(state.actor_params, updates)

  state = state.replace(
      actor_params=actor_params,
      critic_params=critic_params,
      target_actor_params=optax.incremental_update(
          actor_params, state.target_actor_params, tau),
      target_critic_params=optax.incremental_update(
          critic_params, state.target_critic_params, tau),
      actor_opt_state=actor_opt_state,
      critic_opt_state=critic_opt_state,
      steps=state.steps + 1)
  metrics = {
      "critic_loss": c_loss,
      "actor_loss": a_loss,
      "q_mean": jnp.mean(q),
  }
  return state, metrics


class DDPG(Agent):
  """Actor-critic agent for a continuous action in `[-action_scale, action_scale]`.

  `__call__` is the deterministic policy; exploration noise is added by the
  training loop. `update` consumes a mini-batch of transitions.
  """
  obs_dim: int = field(3, jaxed=False)
  action_dim: int = field(1, jaxed=False)
  action_scale: float = field(1.0, jaxed=False)
  config: DDPGConfig = field(jaxed=False)

  actor: Actor = field(jaxed=False)
  critic: Critic = field(jaxed=False)
  actor_optim: optax.GradientTransformation = field(jaxed=False)
  critic_optim: optax.GradientTransformation = field(jaxed=False)
  policy_fn: Any = field(jaxed=False)
  update_fn: Any = field(jaxed=False)

  def setup(self):
    if self.config is None:
      self.config = DDPGConfig.create()
    cfg = self.config
    self.actor = Actor(
        action_dim=self.action_dim,
        action_scale=self.action_scale,
        hidden_dims=cfg.actor_dims)
    self.critic = Critic(state_dims=cfg.critic_dims)
    self.actor_optim = make_optimizer(cfg.actor_lr, cfg.gradient_threshold,
                                      cfg.max_nonfinite_updates)
    self.critic_optim = make_optimizer(cfg.critic_lr, cfg.gradient_threshold,
                                       cfg.max_nonfinite_updates)
    self.policy_fn = jax.jit(self.actor.apply)
    self.update_fn = jax.jit(
        functools.partial(ddpg_update, self.actor, self.critic,
                          self.actor_optim, self.critic_optim, cfg.discount,
                          cfg.tau, self.action_scale))

  def init(self, key):
    key_actor, key_critic = jax.random.split(key)
    obs = jnp.zeros((1, self.obs_dim))
    action = jnp.zeros((1, self.action_dim))
    actor_params = self.actor.init(key_actor, obs)
    critic_params = self.critic.init(key_critic, obs, action)
    return DDPGState(
        actor_params=actor_params,
        critic_params=critic_params,
        target_actor_params=actor_params,
        target_critic_params=critic_params,
        actor_opt_state=self.actor_optim.init(actor_params),
        critic_opt_state=self.critic_optim.init(critic_params))

  def __call__(self, state, obs):
    action = self.policy_fn(state.actor_params, jnp.asarray(obs, jnp.float32))
    return state, action

  def policy(self, state):
    """Deterministic policy `obs -> action` with frozen parameters."""
    return lambda obs: self(state, obs)[1]

  def update(self, state, batch):
    batch = tuple(jnp.asarray(x, jnp.float32) for x in batch)
    return self.update_fn(state, batch)
