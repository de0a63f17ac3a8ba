"""Profile 编译：为“简单连接”补齐入站、路由规则与系统出站。"""

from __future__ import annotations

import copy
import logging
from typing import Any, Callable

from .constants import (
    BITTORRENT_PROTOCOL,
    BLACKHOLE_OUTBOUND_TAG,
    BLACKHOLE_PROTOCOL,
    DIRECT_OUTBOUND_TAG,
    DNS_INTERCEPTION_OUTBOUND_TAG,
    DNS_PORT,
    DNS_PROTOCOL,
    FREEDOM_PROTOCOL,
    INBOUND_TABLE,
    TPROXY_MODES,
)
from .models import (
    InboundConfig,
    InboundListener,
    InboundProtocolConfig,
    OutboundListener,
    ProfileContent,
    RoutingPolicy,
    RoutingRule,
    RoutingTable,
)
from .routes import synthesize_rules

logger = logging.getLogger(__name__)


def needs_generation(profile: ProfileContent) -> bool:
    """只有“无入站、无规则、恰好一个出站”的简单连接才需要生成。"""

    return not profile.inbounds and not profile.routing.rules and len(profile.outbounds) == 1


def _accounts(config: InboundProtocolConfig) -> list[dict[str, str]]:
    if not config.username:
        return []
    return [{"user": config.username, "pass": config.password}]


def _http_settings(config: InboundProtocolConfig) -> tuple[dict, dict]:
    settings: dict[str, Any] = {}
    accounts = _accounts(config)
    if accounts:
        settings["accounts"] = accounts
    return settings, {}


def _socks_settings(config: InboundProtocolConfig) -> tuple[dict, dict]:
    accounts = _accounts(config)
    settings: dict[str, Any] = {"auth": "password" if accounts else "noauth", "udp": config.enable_udp}
    if config.enable_udp and config.udp_local_ip:
        settings["ip"] = config.udp_local_ip
    if accounts:
        settings["accounts"] = accounts
    return settings, {}


def _tproxy_settings(config: InboundProtocolConfig) -> tuple[dict, dict]:
    # 未识别的工作模式按 redirect 处理。
    mode = config.working_mode if config.working_mode in TPROXY_MODES else "redirect"
    settings = {"network": "tcp,udp", "followRedirect": True}
    return settings, {"sockopt": {"tproxy": mode}}


SETTINGS_BUILDERS: dict[str, Callable[[InboundProtocolConfig], tuple[dict, dict]]] = {
    "http": _http_settings,
    "socks": _socks_settings,
    "tproxy": _tproxy_settings,
}


def build_inbounds(inbound_config: InboundConfig) -> list[InboundListener]:
    """按命名表生成入站：每个启用的协议 × 每个已配置的监听地址各一个。"""

    inbounds: list[InboundListener] = []
    for key, protocol, tag1, tag2, _udp in INBOUND_TABLE:
        config = inbound_config.protocol_config(key)
        if not config.enabled:
            continue
        for tag, address in ((tag1, inbound_config.listen_address1), (tag2, inbound_config.listen_address2)):
            if not address:
                continue
            settings, stream_settings = SETTINGS_BUILDERS[key](config)
            inbounds.append(
                InboundListener(
                    tag=tag,
                    protocol=protocol,
                    listen=address,
                    port=config.port,
                    settings=settings,
                    stream_settings=stream_settings,
                )
            )
    logger.debug("生成入站：%s", [item.tag for item in inbounds])
    return inbounds


def udp_inbound_tags(inbounds: list[InboundListener]) -> list[str]:
    """收集可承载 UDP 的入站标签，透明代理在前、SOCKS 在后。"""

    udp_protocols = [protocol for _key, protocol, _t1, _t2, udp in INBOUND_TABLE if udp]
    tags: list[str] = []
    for protocol in reversed(udp_protocols):
        tags.extend(item.tag for item in inbounds if item.protocol == protocol)
    return tags


def compile_profile(
    profile: ProfileContent,
    inbound_config: InboundConfig,
    policy: RoutingPolicy,
) -> ProfileContent:
    """编译 profile。

    非简单形态（手写的复杂配置或已编译过的产物）原样返回，保证重复编译无副作用。
    简单形态返回新的 `ProfileContent`，不修改入参。
    """

    if not needs_generation(profile):
        logger.debug(
            "profile 非简单形态（入站 %d / 规则 %d / 出站 %d），跳过生成",
            len(profile.inbounds),
            len(profile.routing.rules),
            len(profile.outbounds),
        )
        return profile

    inbounds = build_inbounds(inbound_config)
    outbounds = copy.deepcopy(profile.outbounds)
    primary_tag = outbounds[0].tag

    extra_options = copy.deepcopy(profile.routing.extra_options)
    extra_options["domainStrategy"] = policy.domain_strategy
    extra_options["domainMatcher"] = policy.domain_matcher

    # 规则按优先级从高到低拼接：DNS 劫持 > BT 直连 > 策略规则 > 原有规则。
    head: list[RoutingRule] = []
    if policy.dns_interception:
        dns_tags = udp_inbound_tags(inbounds)
        if dns_tags:
            head.append(
                RoutingRule(outbound_tag=DNS_INTERCEPTION_OUTBOUND_TAG, port=DNS_PORT, inbound_tags=dns_tags)
            )
            outbounds.append(OutboundListener(tag=DNS_INTERCEPTION_OUTBOUND_TAG, protocol=DNS_PROTOCOL))
        else:
            # 没有 UDP 入站时 DNS 出站不会被任何规则引用。
            logger.debug("未启用 UDP 入站，跳过 DNS 劫持")
    if policy.bypass_bittorrent:
        head.append(RoutingRule(outbound_tag=DIRECT_OUTBOUND_TAG, protocols=[BITTORRENT_PROTOCOL]))

    rules = head + synthesize_rules(policy, primary_tag) + copy.deepcopy(profile.routing.rules)

    outbounds.append(OutboundListener(tag=BLACKHOLE_OUTBOUND_TAG, protocol=BLACKHOLE_PROTOCOL))
    freedom = OutboundListener(tag=DIRECT_OUTBOUND_TAG, protocol=FREEDOM_PROTOCOL)
    if policy.use_direct_outbound_as_primary:
        outbounds.insert(0, freedom)
    else:
        outbounds.append(freedom)

    logger.debug("profile 编译完成：主出站 `%s`，规则 %d 条", primary_tag, len(rules))
    return ProfileContent(
        inbounds=inbounds,
        outbounds=outbounds,
        routing=RoutingTable(rules=rules, extra_options=extra_options),
        extra=copy.deepcopy(profile.extra),
    )
