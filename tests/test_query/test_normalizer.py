"""Tests for response normalisation."""

import pytest

from zabbix_datasource.errors import ConfigurationError
from zabbix_datasource.models import ServiceRef, SLAProperty
from zabbix_datasource.query.normalizer import (
    normalize_history,
    normalize_sla,
    normalize_text,
    normalize_trends,
    series_label,
)
from zabbix_datasource.zabbix.models import Item, expand_item_name


def make_item(itemid: str, name: str, value_type: int = 0, host: str = "web-01", key: str = "") -> Item:
    return Item.model_validate(
        {
            "itemid": itemid,
            "name": name,
            "key_": key,
            "value_type": value_type,
            "hosts": [{"hostid": "10", "name": host}],
        }
    )


class TestExpandItemName:
    """Tests for item name expansion."""

    def test_expands_key_params(self) -> None:
        """Test $N is replaced by the Nth key parameter."""
        assert expand_item_name("CPU $2 time", "system.cpu.util[,system,avg1]") == "CPU system time"

    def test_highest_index_first(self) -> None:
        """Test $10 is not clobbered by $1."""
        key = "k[a,b,c,d,e,f,g,h,i,j]"
        assert expand_item_name("$1 $10", key) == "a j"

    def test_no_params(self) -> None:
        """Test names of keys without parameters are unchanged."""
        assert expand_item_name("Agent $1", "agent.ping") == "Agent $1"

    def test_item_model_expands(self) -> None:
        """Test parsed items carry the expanded name."""
        item = make_item("1", "Free disk space on $1", key="vfs.fs.size[/,free]")
        assert item.name == "Free disk space on /"


class TestNormalizeHistory:
    """Tests for normalize_history."""

    def test_groups_sorts_and_converts(self) -> None:
        """Test points are grouped per item, sorted and in milliseconds."""
        items = [make_item("1", "CPU load"), make_item("2", "Memory")]
        raw = [
            {"itemid": "1", "clock": "1700000060", "value": "0.5"},
            {"itemid": "2", "clock": "1700000000", "value": "1024"},
            {"itemid": "1", "clock": "1700000000", "value": "0.25"},
        ]

        series = normalize_history(raw, items)

        assert [s.label for s in series] == ["CPU load", "Memory"]
        assert series[0].datapoints == [(0.25, 1700000000000), (0.5, 1700000060000)]
        assert series[1].datapoints == [(1024.0, 1700000000000)]

    def test_text_items_keep_strings(self) -> None:
        """Test text values are not coerced."""
        items = [make_item("1", "Agent version", value_type=1)]
        series = normalize_history([{"itemid": "1", "clock": "1", "value": "5.0.1"}], items)
        assert series[0].datapoints == [("5.0.1", 1000)]

    def test_items_without_points_are_omitted(self) -> None:
        """Test items with no history produce no series."""
        series = normalize_history([], [make_item("1", "CPU load")])
        assert series == []

    def test_host_name_prefix(self) -> None:
        """Test labels carry the host name when asked to."""
        items = [make_item("1", "CPU load", host="web-02")]
        series = normalize_history([{"itemid": "1", "clock": "1", "value": "1"}], items, add_host_name=True)
        assert series[0].label == "web-02: CPU load"

    def test_duplicate_timestamps_kept(self) -> None:
        """Test duplicate clocks are not merged."""
        items = [make_item("1", "CPU load")]
        raw = [
            {"itemid": "1", "clock": "5", "value": "1"},
            {"itemid": "1", "clock": "5", "value": "2"},
        ]
        assert len(normalize_history(raw, items)[0].datapoints) == 2


class TestNormalizeTrends:
    """Tests for normalize_trends."""

    RAW = [
        {"itemid": "1", "clock": "3600", "value_min": "1", "value_avg": "2", "value_max": "3", "num": "60"},
    ]

    @pytest.mark.parametrize(
        ("value_type", "expected"),
        [("avg", 2.0), ("min", 1.0), ("max", 3.0), ("count", 60.0)],
    )
    def test_selects_field(self, value_type: str, expected: float) -> None:
        """Test the selected aggregate becomes the value."""
        series = normalize_trends(self.RAW, [make_item("1", "CPU load")], value_type)
        assert series[0].datapoints == [(expected, 3_600_000)]

    def test_default_is_avg(self) -> None:
        """Test avg is used by default."""
        series = normalize_trends(self.RAW, [make_item("1", "CPU load")])
        assert series[0].datapoints[0][0] == 2.0


class TestNormalizeText:
    """Tests for normalize_text."""

    ITEMS = [make_item("1", "Log", value_type=2)]
    RAW = [
        {"itemid": "1", "clock": "1", "value": "status=OK code=200"},
        {"itemid": "1", "clock": "2", "value": "no status here"},
    ]

    def test_without_filter(self) -> None:
        """Test text is returned unchanged."""
        series = normalize_text(self.RAW, self.ITEMS)
        assert series[0].datapoints[0] == ("status=OK code=200", 1000)

    def test_extracts_match(self) -> None:
        """Test the whole match is returned; non-matching points become None."""
        series = normalize_text(self.RAW, self.ITEMS, text_filter=r"code=\d+")
        assert series[0].datapoints == [("code=200", 1000), (None, 2000)]

    def test_capture_group(self) -> None:
        """Test the first capture group is returned when asked."""
        series = normalize_text(self.RAW, self.ITEMS, text_filter=r"status=(\w+)", use_capture_groups=True)
        assert series[0].datapoints[0] == ("OK", 1000)

    def test_slash_notation(self) -> None:
        """Test ``/re/flags`` filters are accepted."""
        series = normalize_text(self.RAW, self.ITEMS, text_filter="/STATUS=(\\w+)/i", use_capture_groups=True)
        assert series[0].datapoints[0] == ("OK", 1000)

    def test_invalid_filter(self) -> None:
        """Test a malformed text filter raises ConfigurationError."""
        with pytest.raises(ConfigurationError):
            normalize_text(self.RAW, self.ITEMS, text_filter="status=(")


class TestNormalizeSla:
    """Tests for normalize_sla."""

    def test_single_point_at_range_end(self) -> None:
        """Test the SLA figure becomes one point at the end of the range."""
        service = ServiceRef(serviceid="5", name="Web shop")
        prop = SLAProperty(name="SLA", property="sla")
        result = {"5": {"status": "0", "sla": [{"from": 0, "to": 3600, "sla": 99.5, "okTime": 3582}]}}

        series = normalize_sla(service, prop, result, 3_600_000)

        assert len(series) == 1
        assert series[0].label == "Web shop SLA"
        assert series[0].datapoints == [(99.5, 3_600_000)]

    def test_missing_service(self) -> None:
        """Test an empty result gives no series."""
        service = ServiceRef(serviceid="5", name="Web shop")
        prop = SLAProperty(name="SLA", property="sla")
        assert normalize_sla(service, prop, {}, 0) == []


class TestSeriesLabel:
    """Tests for series_label."""

    def test_plain(self) -> None:
        """Test label is the item name."""
        assert series_label(make_item("1", "CPU load"), add_host_name=False) == "CPU load"
