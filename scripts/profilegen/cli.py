"""命令行参数解析。"""

from __future__ import annotations

import argparse

from .subscription import DECODERS


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """解析命令行参数。

    三个子命令分别对应 profile 编译、本地订阅解码、远程订阅拉取。
    """

    parser = argparse.ArgumentParser(description="生成 v2ray 核心配置与订阅节点列表")
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="输出调试日志",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    compile_parser = subparsers.add_parser("compile", help="编译 profile 为完整核心配置")
    compile_parser.add_argument("--profile", required=True, help="profile JSON 文件路径")
    compile_parser.add_argument("--settings", required=True, help="全局设置 JSON 文件路径")
    compile_parser.add_argument(
        "--output",
        default="",
        help="输出文件路径；为空时打印到标准输出",
    )
    compile_parser.add_argument(
        "--strict",
        action="store_true",
        help="严格模式：设置校验出现任何 warning 即返回非 0",
    )

    decode_parser = subparsers.add_parser("decode", help="解码已下载的订阅内容")
    decode_parser.add_argument(
        "--format",
        choices=sorted(DECODERS),
        default="simple_base64",
        help="订阅格式（默认：simple_base64）",
    )
    decode_parser.add_argument("--input", required=True, help="订阅内容文件路径")
    decode_parser.add_argument("--output", default="", help="输出文件路径；为空时打印到标准输出")

    fetch_parser = subparsers.add_parser("fetch", help="拉取并解码 OOC 远程订阅")
    fetch_parser.add_argument("--base-url", required=True, help="OOC 服务地址")
    fetch_parser.add_argument("--secret", required=True, help="访问密钥")
    fetch_parser.add_argument("--version", type=int, default=1, help="OOC 协议版本（默认：1）")
    fetch_parser.add_argument("--user-id", required=True, help="用户 ID")
    fetch_parser.add_argument(
        "--pinned-fingerprint",
        default="",
        help="服务端证书 SHA-256 指纹；为空时只做常规 TLS 校验",
    )
    fetch_parser.add_argument("--output", default="", help="输出文件路径；为空时打印到标准输出")

    return parser.parse_args(argv)
