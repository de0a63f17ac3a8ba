"""配置模型：核心进程 JSON 结构与全局策略快照。"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from .constants import (
    DEFAULT_DOMAIN_MATCHER,
    DEFAULT_DOMAIN_STRATEGY,
    DEFAULT_LISTEN_ADDRESS,
    DEFAULT_PORTS,
    ROUTE_MATRIX_OPTION_KEY,
)


def _string_list(value: Any) -> list[str]:
    # `or []` 用于容错 null。
    return [str(item) for item in value or []]


@dataclass
class RoutingRule:
    """单条路由规则；所有已填写的匹配项同时满足才命中。"""

    outbound_tag: str
    domains: list[str] = field(default_factory=list)
    ips: list[str] = field(default_factory=list)
    port: int | str | None = None
    protocols: list[str] = field(default_factory=list)
    inbound_tags: list[str] = field(default_factory=list)
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict) -> RoutingRule:
        known = {"type", "outboundTag", "domain", "ip", "port", "protocol", "inboundTag"}
        return cls(
            outbound_tag=str(data.get("outboundTag", "")),
            domains=_string_list(data.get("domain")),
            ips=_string_list(data.get("ip")),
            port=data.get("port"),
            protocols=_string_list(data.get("protocol")),
            inbound_tags=_string_list(data.get("inboundTag")),
            extra={k: v for k, v in data.items() if k not in known},
        )

    def to_dict(self) -> dict:
        # 只写出已填写的匹配项，空列表在核心里会被当成“匹配不到任何流量”。
        result: dict[str, Any] = {"type": "field"}
        if self.domains:
            result["domain"] = list(self.domains)
        if self.ips:
            result["ip"] = list(self.ips)
        if self.port is not None and self.port != "":
            result["port"] = self.port
        if self.protocols:
            result["protocol"] = list(self.protocols)
        if self.inbound_tags:
            result["inboundTag"] = list(self.inbound_tags)
        result.update(self.extra)
        result["outboundTag"] = self.outbound_tag
        return result


@dataclass
class InboundListener:
    tag: str
    protocol: str
    listen: str
    port: int = 0
    settings: dict[str, Any] = field(default_factory=dict)
    stream_settings: dict[str, Any] = field(default_factory=dict)
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict) -> InboundListener:
        known = {"tag", "protocol", "listen", "port", "settings", "streamSettings"}
        return cls(
            tag=str(data.get("tag", "")),
            protocol=str(data.get("protocol", "")),
            listen=str(data.get("listen", "")),
            port=data.get("port", 0),
            settings=dict(data.get("settings") or {}),
            stream_settings=dict(data.get("streamSettings") or {}),
            extra={k: v for k, v in data.items() if k not in known},
        )

    def to_dict(self) -> dict:
        result: dict[str, Any] = {
            "tag": self.tag,
            "protocol": self.protocol,
            "listen": self.listen,
            "port": self.port,
            "settings": self.settings,
        }
        if self.stream_settings:
            result["streamSettings"] = self.stream_settings
        result.update(self.extra)
        return result


@dataclass
class OutboundListener:
    tag: str
    protocol: str
    settings: dict[str, Any] = field(default_factory=dict)
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict) -> OutboundListener:
        known = {"tag", "protocol", "settings"}
        return cls(
            tag=str(data.get("tag", "")),
            protocol=str(data.get("protocol", "")),
            settings=dict(data.get("settings") or {}),
            extra={k: v for k, v in data.items() if k not in known},
        )

    def to_dict(self) -> dict:
        result: dict[str, Any] = {"tag": self.tag, "protocol": self.protocol, "settings": self.settings}
        result.update(self.extra)
        return result


@dataclass
class RoutingTable:
    rules: list[RoutingRule] = field(default_factory=list)
    extra_options: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict) -> RoutingTable:
        return cls(
            rules=[RoutingRule.from_dict(item) for item in data.get("rules") or []],
            extra_options={k: v for k, v in data.items() if k != "rules"},
        )

    def to_dict(self) -> dict:
        result = {k: v for k, v in self.extra_options.items() if k != ROUTE_MATRIX_OPTION_KEY}
        result["rules"] = [rule.to_dict() for rule in self.rules]
        return result


@dataclass
class ProfileContent:
    """一份完整的核心配置。

    `extra` 保存 log/dns/policy 等本模块不处理的顶层字段，原样透传给核心进程。
    """

    inbounds: list[InboundListener] = field(default_factory=list)
    outbounds: list[OutboundListener] = field(default_factory=list)
    routing: RoutingTable = field(default_factory=RoutingTable)
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict) -> ProfileContent:
        known = {"inbounds", "outbounds", "routing"}
        return cls(
            inbounds=[InboundListener.from_dict(item) for item in data.get("inbounds") or []],
            outbounds=[OutboundListener.from_dict(item) for item in data.get("outbounds") or []],
            routing=RoutingTable.from_dict(data.get("routing") or {}),
            extra={k: v for k, v in data.items() if k not in known},
        )

    def to_dict(self) -> dict:
        result: dict[str, Any] = dict(self.extra)
        result["inbounds"] = [item.to_dict() for item in self.inbounds]
        result["outbounds"] = [item.to_dict() for item in self.outbounds]
        result["routing"] = self.routing.to_dict()
        return result


@dataclass(frozen=True)
class CategoryLists:
    """block/proxy/direct 三类匹配列表；空元组表示该类不生成规则。"""

    block: tuple[str, ...] = ()
    proxy: tuple[str, ...] = ()
    direct: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: dict | None) -> CategoryLists:
        data = data or {}
        return cls(
            block=tuple(_string_list(data.get("block"))),
            proxy=tuple(_string_list(data.get("proxy"))),
            direct=tuple(_string_list(data.get("direct"))),
        )


@dataclass(frozen=True)
class RoutingPolicy:
    """路由策略快照：连接开关 + 路由矩阵。"""

    force_direct_connection: bool = False
    bypass_cn: bool = False
    bypass_lan: bool = True
    bypass_bittorrent: bool = False
    dns_interception: bool = False
    use_direct_outbound_as_primary: bool = False
    ips: CategoryLists = field(default_factory=CategoryLists)
    domains: CategoryLists = field(default_factory=CategoryLists)
    domain_strategy: str = DEFAULT_DOMAIN_STRATEGY
    domain_matcher: str = DEFAULT_DOMAIN_MATCHER

    @classmethod
    def from_dict(cls, connection: dict | None, route_matrix: dict | None) -> RoutingPolicy:
        connection = connection or {}
        route_matrix = route_matrix or {}
        return cls(
            force_direct_connection=bool(connection.get("forceDirectConnection", False)),
            bypass_cn=bool(connection.get("bypassCN", False)),
            bypass_lan=bool(connection.get("bypassLAN", True)),
            bypass_bittorrent=bool(connection.get("bypassBittorrent", False)),
            dns_interception=bool(connection.get("dnsInterception", False)),
            use_direct_outbound_as_primary=bool(connection.get("useDirectOutboundAsPrimary", False)),
            ips=CategoryLists.from_dict(route_matrix.get("ips")),
            domains=CategoryLists.from_dict(route_matrix.get("domains")),
            domain_strategy=str(route_matrix.get("domainStrategy") or DEFAULT_DOMAIN_STRATEGY),
            domain_matcher=str(route_matrix.get("domainMatcher") or DEFAULT_DOMAIN_MATCHER),
        )


@dataclass(frozen=True)
class InboundProtocolConfig:
    enabled: bool = False
    port: int = 0
    username: str = ""
    password: str = ""
    enable_udp: bool = False
    udp_local_ip: str = ""
    working_mode: str = "tproxy"

    @classmethod
    def from_dict(cls, data: dict | None, default_port: int, default_enabled: bool) -> InboundProtocolConfig:
        data = data or {}
        return cls(
            enabled=bool(data.get("enabled", default_enabled)),
            port=int(data.get("port", default_port)),
            username=str(data.get("username") or ""),
            password=str(data.get("password") or ""),
            enable_udp=bool(data.get("enableUdp", True)),
            udp_local_ip=str(data.get("udpLocalIp") or ""),
            working_mode=str(data.get("workingMode") or "tproxy"),
        )


@dataclass(frozen=True)
class InboundConfig:
    """全局入站配置：最多两个监听地址（通常为 IPv4/IPv6）与三类入站开关。"""

    listen_address1: str = DEFAULT_LISTEN_ADDRESS
    listen_address2: str = ""
    http: InboundProtocolConfig = field(
        default_factory=lambda: InboundProtocolConfig(enabled=True, port=DEFAULT_PORTS["http"])
    )
    socks: InboundProtocolConfig = field(
        default_factory=lambda: InboundProtocolConfig(enabled=True, port=DEFAULT_PORTS["socks"], enable_udp=True)
    )
    tproxy: InboundProtocolConfig = field(
        default_factory=lambda: InboundProtocolConfig(enabled=False, port=DEFAULT_PORTS["tproxy"])
    )

    @classmethod
    def from_dict(cls, data: dict | None) -> InboundConfig:
        data = data or {}
        return cls(
            listen_address1=str(data.get("listenAddress1", DEFAULT_LISTEN_ADDRESS) or ""),
            listen_address2=str(data.get("listenAddress2") or ""),
            http=InboundProtocolConfig.from_dict(data.get("http"), DEFAULT_PORTS["http"], True),
            socks=InboundProtocolConfig.from_dict(data.get("socks"), DEFAULT_PORTS["socks"], True),
            tproxy=InboundProtocolConfig.from_dict(data.get("tproxy"), DEFAULT_PORTS["tproxy"], False),
        )

    def protocol_config(self, key: str) -> InboundProtocolConfig:
        return getattr(self, key)


@dataclass
class SubscriptionResult:
    """订阅解码结果。

    `error` 非空表示解码失败（`links` 可能为空或只含部分条目）；
    空 `links` 且 `error is None` 才是“成功但没有节点”。
    """

    links: list[str] = field(default_factory=list)
    error: str | None = None
    warnings: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.error is None
