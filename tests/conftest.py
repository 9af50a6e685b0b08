import jax.numpy as jnp
import pytest

from jaxauglag import IntegrationScheme, Objective, Problem, double_integrator


@pytest.fixture
def model():
    return double_integrator()


@pytest.fixture
def make_problem(model):
    """Factory for double integrator problems driven from rest towards a goal."""

    def _make(
        N=21,
        dt=0.1,
        x0=(0.0, 0.0),
        xf=(0.5, 0.0),
        integration=IntegrationScheme.ZOH,
        infeasible=False,
        **objective_kwargs,
    ):
        objective_kwargs.setdefault("Q", 1e-2 * jnp.eye(2))
        objective_kwargs.setdefault("R", 1e-1 * jnp.eye(1))
        objective_kwargs.setdefault("Qf", 10.0 * jnp.eye(2))
        objective = Objective(xf=jnp.array(xf), **objective_kwargs)
        return Problem(
            model=model,
            objective=objective,
            x0=jnp.array(x0),
            N=N,
            dt=dt,
            integration=integration,
            infeasible=infeasible,
        )

    return _make


@pytest.fixture
def bounded_problem(make_problem):
    """Control limited double integrator with a goal constraint."""
    return make_problem(u_min=-1.0, u_max=1.0)


@pytest.fixture
def unconstrained_problem(make_problem):
    return make_problem(use_terminal_constraint=False)
