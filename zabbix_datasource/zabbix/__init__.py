"""Zabbix JSON-RPC API access.

This module provides:
- ZabbixTransport: single JSON-RPC call over HTTP
- ZabbixSession: authentication with bounded re-login
- ZabbixAPI: history, trends, SLA, trigger and event methods
- Entity models: Group, Host, Application, Item, Trigger, Event
"""

from zabbix_datasource.zabbix.client import ZabbixAPI
from zabbix_datasource.zabbix.models import (
    Application,
    Event,
    Group,
    Host,
    Item,
    ItemKind,
    Service,
    Trigger,
)
from zabbix_datasource.zabbix.session import (
    ConnectionStatus,
    ConnectionTestResult,
    ZabbixSession,
)
from zabbix_datasource.zabbix.transport import ZabbixTransport

__all__ = [
    "Application",
    "ConnectionStatus",
    "ConnectionTestResult",
    "Event",
    "Group",
    "Host",
    "Item",
    "ItemKind",
    "Service",
    "Trigger",
    "ZabbixAPI",
    "ZabbixSession",
    "ZabbixTransport",
]
