"""Tests for Zabbix entity models."""

from zabbix_datasource.zabbix.models import (
    Acknowledge,
    Event,
    Host,
    Item,
    ItemKind,
    parse_list,
)


class TestItemKind:
    """Tests for ItemKind."""

    def test_value_types(self) -> None:
        """Test each kind maps to its value_type codes."""
        assert ItemKind.NUMERIC.value_types == [0, 3]
        assert ItemKind.TEXT.value_types == [1, 2, 4]
        assert ItemKind.ALL.value_types is None


class TestItem:
    """Tests for Item."""

    def test_parses_api_reply(self) -> None:
        """Test string codes are coerced and key_ is aliased."""
        item = Item.model_validate(
            {
                "itemid": "1000",
                "name": "CPU load",
                "key_": "system.cpu.load",
                "value_type": "3",
                "hosts": [{"hostid": "10", "name": "web-01"}],
                "lastvalue": "0.1",
            }
        )
        assert item.key == "system.cpu.load"
        assert item.value_type == 3
        assert item.is_numeric
        assert item.host_name == "web-01"

    def test_text_item(self) -> None:
        """Test character items are not numeric."""
        assert not Item(itemid="1", name="Agent version", value_type=1).is_numeric

    def test_host_name_missing(self) -> None:
        """Test host name is empty when hosts were not selected."""
        assert Item(itemid="1", name="x").host_name == ""


class TestEvent:
    """Tests for Event."""

    def test_acknowledges(self) -> None:
        """Test nested acknowledges are parsed."""
        event = Event.model_validate(
            {
                "eventid": "1",
                "objectid": "7",
                "clock": "1700000000",
                "value": "0",
                "acknowledges": [{"clock": "1700000100", "message": "on it", "alias": "admin"}],
            }
        )
        assert not event.is_problem
        assert event.acknowledges == [Acknowledge(clock=1700000100, message="on it", alias="admin")]


class TestParseList:
    """Tests for parse_list."""

    def test_list_result(self) -> None:
        """Test list results are parsed in order."""
        hosts = parse_list(Host, [{"hostid": "10", "name": "web-01"}, {"hostid": "11", "name": "web-02"}])
        assert [h.hostid for h in hosts] == ["10", "11"]

    def test_preservekeys_result(self) -> None:
        """Test dicts keyed by id are flattened."""
        hosts = parse_list(Host, {"10": {"hostid": "10", "name": "web-01"}})
        assert hosts == [Host(hostid="10", name="web-01")]

    def test_empty(self) -> None:
        """Test None and empty results give no entities."""
        assert parse_list(Host, None) == []
        assert parse_list(Host, []) == []
