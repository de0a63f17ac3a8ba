"""输入文件加载与结构校验。"""

from __future__ import annotations

import json
from pathlib import Path

from .constants import DEFAULT_LISTEN_ADDRESS, DEFAULT_PORTS, ROUTE_MATRIX_OPTION_KEY, TPROXY_MODES
from .models import InboundConfig, ProfileContent, RoutingPolicy

CONNECTION_FLAGS = (
    "forceDirectConnection",
    "bypassCN",
    "bypassLAN",
    "bypassBittorrent",
    "dnsInterception",
    "useDirectOutboundAsPrimary",
)


def load_json_object(path: Path) -> dict:
    """加载 JSON 对象文件。

    根节点不是对象时直接抛错，防止后续静默生成不完整配置。
    """

    with path.open("r", encoding="utf-8") as fp:
        data = json.load(fp)
    if not isinstance(data, dict):
        raise ValueError(f"{path.name} 不是 JSON 对象")
    return data


def _validate_category_lists(name: str, value: object, errors: list[str]) -> None:
    if value is None:
        return
    if not isinstance(value, dict):
        errors.append(f"`{name}` 必须是对象或 null。")
        return
    for key in ("block", "proxy", "direct"):
        item = value.get(key)
        if item is not None and not isinstance(item, list):
            errors.append(f"`{name}.{key}` 必须是数组或 null。")


def validate_route_matrix(route_matrix: object, prefix: str = "routeMatrix") -> list[str]:
    errors: list[str] = []
    if route_matrix is None:
        return errors
    if not isinstance(route_matrix, dict):
        return [f"`{prefix}` 必须是对象。"]
    _validate_category_lists(f"{prefix}.ips", route_matrix.get("ips"), errors)
    _validate_category_lists(f"{prefix}.domains", route_matrix.get("domains"), errors)
    return errors


def validate_settings(settings: dict) -> tuple[list[str], list[str]]:
    """校验全局设置结构。

    仅做结构校验，不改写输入；语义冲突（例如两个入站同端口）交给核心进程报错。
    """

    errors: list[str] = []
    warnings: list[str] = []

    inbound = settings.get("inboundConfig", {})
    if not isinstance(inbound, dict):
        errors.append("`inboundConfig` 必须是对象。")
        inbound = {}
    for key in DEFAULT_PORTS:
        proto = inbound.get(key)
        if proto is None:
            continue
        if not isinstance(proto, dict):
            errors.append(f"`inboundConfig.{key}` 必须是对象。")
            continue
        port = proto.get("port", DEFAULT_PORTS[key])
        if isinstance(port, bool) or not isinstance(port, int) or not 0 < port < 65536:
            errors.append(f"`inboundConfig.{key}.port` 必须是 1-65535 的整数。")
        if "enabled" in proto and not isinstance(proto["enabled"], bool):
            warnings.append(f"`inboundConfig.{key}.enabled` 非布尔值，将按 Python bool 规则处理。")
    tproxy = inbound.get("tproxy")
    if isinstance(tproxy, dict) and tproxy.get("workingMode", "tproxy") not in TPROXY_MODES:
        warnings.append(
            f"未识别的 tproxy 工作模式 `{tproxy.get('workingMode')}`，将按 redirect 处理。"
        )
    if not inbound.get("listenAddress1", DEFAULT_LISTEN_ADDRESS) and not inbound.get("listenAddress2"):
        warnings.append("未配置任何监听地址，不会生成入站。")

    connection = settings.get("connectionConfig", {})
    if not isinstance(connection, dict):
        errors.append("`connectionConfig` 必须是对象。")
        connection = {}
    for flag in CONNECTION_FLAGS:
        if flag in connection and not isinstance(connection[flag], bool):
            warnings.append(f"`connectionConfig.{flag}` 非布尔值，将按 Python bool 规则处理。")
    if connection.get("forceDirectConnection") and connection.get("bypassCN"):
        warnings.append("已启用强制直连，bypassCN 与分类规则不会生效。")

    errors.extend(validate_route_matrix(settings.get("routeMatrix")))
    return errors, warnings


def _validate_object_list(name: str, value: object, nested: tuple[str, ...], errors: list[str]) -> None:
    if value is None:
        return
    if not isinstance(value, list):
        errors.append(f"`{name}` 必须是数组或 null。")
        return
    for idx, item in enumerate(value, 1):
        if not isinstance(item, dict):
            errors.append(f"`{name}` #{idx:02d} 不是对象，实际类型为 `{type(item).__name__}`。")
            continue
        for key in nested:
            if item.get(key) is not None and not isinstance(item[key], dict):
                errors.append(f"`{name}` #{idx:02d} 的 `{key}` 必须是对象或 null。")


def validate_profile(profile: dict) -> list[str]:
    """校验 profile 结构，只检查类型，不改写输入。"""

    errors: list[str] = []
    _validate_object_list("inbounds", profile.get("inbounds"), ("settings", "streamSettings"), errors)
    _validate_object_list("outbounds", profile.get("outbounds"), ("settings",), errors)

    routing = profile.get("routing")
    if routing is None:
        return errors
    if not isinstance(routing, dict):
        errors.append("`routing` 必须是对象或 null。")
        return errors
    _validate_object_list("routing.rules", routing.get("rules"), (), errors)
    if ROUTE_MATRIX_OPTION_KEY in routing:
        errors.extend(
            validate_route_matrix(
                routing[ROUTE_MATRIX_OPTION_KEY],
                prefix=f"routing.{ROUTE_MATRIX_OPTION_KEY}",
            )
        )
    return errors


def resolve_route_matrix(settings: dict, profile: ProfileContent) -> dict:
    """profile 自带的路由矩阵优先于全局设置。"""

    override = profile.routing.extra_options.get(ROUTE_MATRIX_OPTION_KEY)
    if isinstance(override, dict):
        return override
    return settings.get("routeMatrix") or {}


def load_compile_inputs(
    profile_path: Path, settings_path: Path
) -> tuple[ProfileContent, InboundConfig, RoutingPolicy, list[str], list[str]]:
    """加载 profile 与设置，返回编译参数以及校验出的 errors/warnings。

    存在 error 时不构造模型，返回默认值占位，由调用方报错退出。
    """

    profile_data = load_json_object(profile_path)
    settings = load_json_object(settings_path)
    errors = [f"[profile] {item}" for item in validate_profile(profile_data)]
    settings_errors, warnings = validate_settings(settings)
    errors.extend(f"[settings] {item}" for item in settings_errors)
    if errors:
        return ProfileContent(), InboundConfig(), RoutingPolicy(), errors, warnings

    profile = ProfileContent.from_dict(profile_data)
    inbound_config = InboundConfig.from_dict(settings.get("inboundConfig"))
    policy = RoutingPolicy.from_dict(
        settings.get("connectionConfig"), resolve_route_matrix(settings, profile)
    )
    return profile, inbound_config, policy, errors, warnings
