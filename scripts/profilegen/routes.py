"""路由规则合成：把路由策略展开为有序规则列表。"""

from __future__ import annotations

from typing import Iterable

from .constants import (
    BLACKHOLE_OUTBOUND_TAG,
    DIRECT_OUTBOUND_TAG,
    GEOIP_CN,
    GEOIP_PRIVATE,
    GEOSITE_CN,
    MATCH_ALL_DOMAIN,
    MATCH_ALL_IPV4,
    MATCH_ALL_IPV6,
)
from .models import RoutingPolicy, RoutingRule


def ip_rule(ips: Iterable[str], outbound_tag: str) -> RoutingRule:
    return RoutingRule(outbound_tag=outbound_tag, ips=list(ips))


def domain_rule(domains: Iterable[str], outbound_tag: str) -> RoutingRule:
    return RoutingRule(outbound_tag=outbound_tag, domains=list(domains))


def synthesize_rules(policy: RoutingPolicy, primary_outbound_tag: str) -> list[RoutingRule]:
    """按策略生成规则列表。

    核心按“先匹配先生效”执行，所以这里的追加顺序就是优先级：
    LAN 直连 > 强制直连 / (拦截 > 代理 > 直连 > 国内直连)。
    返回新列表，调用方负责与已有规则拼接。
    """

    rules: list[RoutingRule] = []
    if policy.bypass_lan:
        rules.append(ip_rule([GEOIP_PRIVATE], DIRECT_OUTBOUND_TAG))

    if policy.force_direct_connection:
        # 强制直连是覆盖而非追加：其余分类与国内直连都不再生成。
        rules.append(domain_rule([MATCH_ALL_DOMAIN], DIRECT_OUTBOUND_TAG))
        rules.append(ip_rule([MATCH_ALL_IPV4], DIRECT_OUTBOUND_TAG))
        rules.append(ip_rule([MATCH_ALL_IPV6], DIRECT_OUTBOUND_TAG))
        return rules

    categories = (
        (policy.ips.block, policy.domains.block, BLACKHOLE_OUTBOUND_TAG),
        (policy.ips.proxy, policy.domains.proxy, primary_outbound_tag),
        (policy.ips.direct, policy.domains.direct, DIRECT_OUTBOUND_TAG),
    )
    for ips, domains, outbound_tag in categories:
        # 空列表不生成规则，避免出现匹配不到任何流量的空规则。
        if ips:
            rules.append(ip_rule(ips, outbound_tag))
        if domains:
            rules.append(domain_rule(domains, outbound_tag))

    if policy.bypass_cn:
        rules.append(ip_rule([GEOIP_CN], DIRECT_OUTBOUND_TAG))
        rules.append(domain_rule([GEOSITE_CN], DIRECT_OUTBOUND_TAG))

    return rules
