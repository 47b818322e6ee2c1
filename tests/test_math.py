import os
import sys

import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from normalize import math as m

MI = 1024 * 1024


def test_cpu_rounds_up_to_10m():
    assert m.round_cpu_millicores(81) == 90
    assert m.round_cpu_millicores(80) == 80
    assert m.round_cpu_millicores(0.08 * 1000) == 80


def test_cpu_floor():
    assert m.round_cpu_millicores(0) == 10
    assert m.round_cpu_millicores(3) == 10
    assert m.round_cpu_millicores(float('nan')) == 10


def test_memory_rounds_up_to_16mi():
    assert m.round_memory_bytes(1000 * MI) == 1008 * MI
    assert m.round_memory_bytes(1008 * MI) == 1008 * MI
    assert m.round_memory_bytes(1) == 16 * MI
    assert m.round_memory_bytes(0) == 16 * MI


@pytest.mark.parametrize("value", [10, 80, 320, 1230, 4000])
def test_cpu_rounding_idempotent(value):
    assert m.round_cpu_millicores(m.round_cpu_millicores(value)) == m.round_cpu_millicores(value)
    assert m.round_cpu_millicores(value) == value


@pytest.mark.parametrize("mib", [16, 64, 1008, 2048])
def test_memory_rounding_idempotent(mib):
    assert m.round_memory_bytes(mib * MI) == mib * MI


def test_floor_percentile():
    samples = [5, 1, 4, 2, 3, 6, 7, 8, 9, 10]
    # index floor(0.9 * 10) = 9 -> largest
    assert m.floor_percentile(samples, 0.9) == 10
    assert m.floor_percentile(samples, 0.5) == 6
    assert m.floor_percentile(samples, 1.0) == 10
    assert m.floor_percentile([], 0.9) == 0.0


def test_floor_percentile_rejects_bad_fraction():
    with pytest.raises(ValueError):
        m.floor_percentile([1, 2], 90)


def test_parse_cpu_quantity():
    assert m.parse_cpu_quantity('250m') == 250
    assert m.parse_cpu_quantity('1.5') == 1500
    assert m.parse_cpu_quantity(500) == 500
    assert m.parse_cpu_quantity(None) == 0
    with pytest.raises(ValueError):
        m.parse_cpu_quantity('lots')


def test_parse_memory_quantity():
    assert m.parse_memory_quantity('512Mi') == 512 * MI
    assert m.parse_memory_quantity('1Gi') == 1024 * MI
    assert m.parse_memory_quantity('1G') == 1000 ** 3
    assert m.parse_memory_quantity('64Ki') == 64 * 1024
    assert m.parse_memory_quantity('1048576') == MI
    assert m.parse_memory_quantity('') == 0


@pytest.mark.parametrize("value", [float('inf'), float('nan'), 'inf', 'nanm', '1e400Mi'])
def test_quantities_must_be_finite(value):
    with pytest.raises(ValueError):
        m.parse_cpu_quantity(value)
    with pytest.raises(ValueError):
        m.parse_memory_quantity(value)


def test_percent_change():
    assert m.percent_change(900, 1000) == pytest.approx(-10.0)
    assert m.percent_change(1500, 1000) == pytest.approx(50.0)
    with pytest.raises(ValueError):
        m.percent_change(1, 0)
