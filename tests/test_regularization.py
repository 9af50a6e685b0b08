import pytest

from jaxauglag import RegularizationDirection, regularization_update

INCREASE = RegularizationDirection.INCREASE
DECREASE = RegularizationDirection.DECREASE


def test_increase_from_zero():
    rho, drho = regularization_update(0.0, 0.0, INCREASE, 1.6, 1e-8)
    assert drho == 1.6
    assert rho == 1e-8


def test_increase_accelerates():
    rho, drho = regularization_update(1.0, 2.0, INCREASE, 1.6, 1e-8)
    assert drho == pytest.approx(3.2)
    assert rho == pytest.approx(3.2)


def test_decrease():
    rho, drho = regularization_update(1.0, 1.0, DECREASE, 2.0, 1e-8)
    assert drho == 0.5
    assert rho == 0.5

    rho, drho = regularization_update(rho, drho, DECREASE, 2.0, 1e-8)
    assert drho == 0.25
    assert rho == 0.125


def test_decrease_snaps_to_zero_below_floor():
    rho, drho = regularization_update(1e-8, 1.0, DECREASE, 2.0, 1e-8)
    assert rho == 0.0
    assert drho == 0.5


def test_decrease_from_zero_stays_zero():
    rho, _ = regularization_update(0.0, 0.0, DECREASE, 1.6, 1e-8)
    assert rho == 0.0
