"""
税费服务测试
含税反算、不含税加税、税率表解析与回退
"""
import pytest
from decimal import Decimal

from app.models.ontology import TaxRate
from app.services.errors import InvalidTaxConfiguration
from app.services.tax_service import (
    DEFAULT_TAX_RATES, TaxConfigService, TaxRateConfig,
    breakdown, exclusive_tax, parse_tax_rates, resolve_tax_rates,
)


class TestBreakdown:

    def test_default_rates_nightly_room(self):
        """680 含税：净额 531.25，VAT 95.63，Service 53.13"""
        result = breakdown(Decimal("680"))
        assert result.net_revenue == Decimal("531.25")
        assert result.per_tax == {"VAT": Decimal("95.63"), "Service": Decimal("53.13")}
        assert result.total_tax == Decimal("148.75")
        assert result.net_revenue + result.total_tax == Decimal("680.00")

    def test_zero_gross(self):
        result = breakdown(0)
        assert result.net_revenue == Decimal("0.00")
        assert result.total_tax == Decimal("0.00")
        assert all(v == 0 for v in result.per_tax.values())

    def test_zero_total_rate(self):
        result = breakdown(Decimal("100"), [{"name": "VAT", "rate": 0}])
        assert result.net_revenue == Decimal("100.00")
        assert result.total_tax == Decimal("0.00")

    def test_custom_rates(self):
        result = breakdown(Decimal("118"), [TaxRateConfig("VAT", Decimal("18"))])
        assert result.net_revenue == Decimal("100.00")
        assert result.per_tax["VAT"] == Decimal("18.00")

    def test_invalid_config_falls_back_to_defaults(self):
        result = breakdown(Decimal("680"), [{"name": "VAT", "rate": "abc"}])
        assert [r.name for r in result.rates] == ["VAT", "Service"]
        assert result.net_revenue == Decimal("531.25")

    def test_float_input(self):
        result = breakdown(128.0)
        assert result.net_revenue == Decimal("100.00")

    def test_garbage_gross_is_zero(self):
        result = breakdown("not a number")
        assert result.gross_revenue == Decimal("0.00")

    def test_tax_details_shape(self):
        details = breakdown(Decimal("680")).to_tax_details()
        assert details[0] == {"tax_type": "VAT", "rate": "18", "amount": "95.63", "base": "531.25"}
        assert details[1]["tax_type"] == "Service"


class TestExclusiveTax:

    def test_adds_tax_on_top(self):
        tax, gross = exclusive_tax(Decimal("62.5"), Decimal("18"))
        assert tax == Decimal("11.25")
        assert gross == Decimal("73.75")

    def test_rounding_half_up(self):
        tax, gross = exclusive_tax(Decimal("0.25"), Decimal("10"))
        assert tax == Decimal("0.03")
        assert gross == Decimal("0.28")


class TestParseTaxRates:

    def test_accepts_dicts_with_value_alias(self):
        rates = parse_tax_rates([{"key": "City", "value": "2.5"}])
        assert rates == [TaxRateConfig("City", Decimal("2.5"))]

    @pytest.mark.parametrize("raw", [
        "VAT",
        {"name": "VAT", "rate": 18},
        [{"name": "", "rate": 18}],
        [{"name": "VAT", "rate": -1}],
        [{"name": "VAT", "rate": 18}, {"name": "VAT", "rate": 10}],
        [{"name": "VAT"}],
        [42],
    ])
    def test_invalid(self, raw):
        with pytest.raises(InvalidTaxConfiguration):
            parse_tax_rates(raw)

    def test_resolve_none_and_empty(self):
        assert resolve_tax_rates(None) == list(DEFAULT_TAX_RATES)
        assert resolve_tax_rates([]) == list(DEFAULT_TAX_RATES)


class TestTaxConfigService:

    def test_defaults_when_table_empty(self, db_session):
        assert TaxConfigService(db_session).get_rates() == list(DEFAULT_TAX_RATES)

    def test_set_rates_replaces_table(self, db_session):
        service = TaxConfigService(db_session)
        service.set_rates([{"name": "VAT", "rate": 20}])
        assert service.get_rates() == [TaxRateConfig("VAT", Decimal("20.00"))]
        assert db_session.query(TaxRate).count() == 1

    def test_set_invalid_keeps_old_table(self, db_session):
        service = TaxConfigService(db_session)
        service.set_rates([{"name": "VAT", "rate": 20}])
        with pytest.raises(InvalidTaxConfiguration):
            service.set_rates([{"name": "VAT", "rate": "x"}])
        assert [r.name for r in service.get_rates()] == ["VAT"]

    def test_inactive_rows_ignored(self, db_session):
        db_session.add(TaxRate(name="VAT", rate=Decimal("18"), is_active=True, sort_order=0))
        db_session.add(TaxRate(name="City", rate=Decimal("2"), is_active=False, sort_order=1))
        db_session.commit()
        assert [r.name for r in TaxConfigService(db_session).get_rates()] == ["VAT"]
