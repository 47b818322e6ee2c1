"""
Tests for cost projection and efficiency scoring
"""
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from analysis.cost import RateTable, monthly_cost, potential_savings
from analysis.efficiency import efficiency_score, utilization
from models import GIBIBYTE, ResourceAmount


class TestMonthlyCost:

    def test_one_core_one_gib(self, rates):
        # (0.031611 + 0.004237) * 720 = 25.81
        assert monthly_cost(ResourceAmount(1000, GIBIBYTE), 1, rates) == 25.81

    def test_scales_with_replicas(self, rates):
        assert monthly_cost(ResourceAmount(1000, GIBIBYTE), 3, rates) == pytest.approx(77.43)

    def test_zero_replicas(self, rates):
        assert monthly_cost(ResourceAmount(1000, GIBIBYTE), 0, rates) == 0.0

    def test_currency_decimals(self):
        rates = RateTable(cpu_per_vcpu_hour=0.031611, memory_per_gib_hour=0.004237, currency_decimals=0)
        assert monthly_cost(ResourceAmount(1000, GIBIBYTE), 1, rates) == 26


class TestPotentialSavings:

    def test_positive_when_shrinking(self, rates):
        saved = potential_savings(ResourceAmount(1000, GIBIBYTE), ResourceAmount(500, GIBIBYTE), rates)
        assert saved == pytest.approx(11.38)

    @pytest.mark.parametrize("current,recommended", [
        (ResourceAmount(100, GIBIBYTE), ResourceAmount(2000, 4 * GIBIBYTE)),
        (ResourceAmount(), ResourceAmount(10, 16 * 1024 * 1024)),
        (ResourceAmount(500, GIBIBYTE), ResourceAmount(500, GIBIBYTE)),
    ])
    def test_never_negative(self, rates, current, recommended):
        assert potential_savings(current, recommended, rates) >= 0


class TestRateTable:

    def test_defaults_from_config(self):
        rates = RateTable.from_config()
        assert rates.cpu_per_vcpu_hour > 0
        assert rates.hours_per_month == 720

    def test_yaml_overrides(self, tmp_path):
        path = tmp_path / "rates.yaml"
        path.write_text("cpu_per_vcpu_hour: 0.05\ncurrency_decimals: 3\n")
        rates = RateTable.from_config(str(path))
        assert rates.cpu_per_vcpu_hour == 0.05
        assert rates.currency_decimals == 3
        assert rates.memory_per_gib_hour == pytest.approx(0.004237)


class TestEfficiency:

    def test_average_of_cpu_and_memory(self):
        score = efficiency_score(ResourceAmount(500, GIBIBYTE // 4), ResourceAmount(1000, GIBIBYTE))
        assert score == 38

    def test_capped_at_100(self):
        assert efficiency_score(ResourceAmount(5000, 8 * GIBIBYTE), ResourceAmount(1000, GIBIBYTE)) == 100

    def test_no_request_counts_as_efficient(self):
        assert efficiency_score(ResourceAmount(100, GIBIBYTE), ResourceAmount()) == 100

    @pytest.mark.parametrize("usage,req", [
        (ResourceAmount(), ResourceAmount(1000, GIBIBYTE)),
        (ResourceAmount(10 ** 6, 10 ** 12), ResourceAmount(10, 1)),
        (ResourceAmount(), ResourceAmount()),
    ])
    def test_always_in_range(self, usage, req):
        assert 0 <= efficiency_score(usage, req) <= 100

    def test_utilization(self):
        assert utilization(250, 1000) == 0.25
        assert utilization(250, 0) is None
