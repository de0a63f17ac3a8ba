"""配置生成器主流程。"""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path

from .cli import parse_args
from .compiler import compile_profile
from .models import SubscriptionResult
from .source import load_compile_inputs
from .subscription import OOCProvider, decode_subscription


def _emit(text: str, output: str) -> None:
    if output:
        path = Path(output).resolve()
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
    else:
        sys.stdout.write(text)


def _print_items(prefix: str, title: str, items: list[str]) -> None:
    # 告警与错误输出到 stderr，便于在 CI 中与产物分流。
    print(f"{prefix} {title}", file=sys.stderr)
    for item in items:
        print(f"  - {item}", file=sys.stderr)


def run_compile(args) -> int:
    profile_path = Path(args.profile).resolve()
    settings_path = Path(args.settings).resolve()
    for path in (profile_path, settings_path):
        if not path.exists():
            print(f"[ERROR] 找不到输入文件: {path}", file=sys.stderr)
            return 1

    try:
        profile, inbound_config, policy, errors, warnings = load_compile_inputs(profile_path, settings_path)
    except (OSError, ValueError) as exc:
        print(f"[ERROR] 读取输入失败: {exc}", file=sys.stderr)
        return 1

    if errors:
        _print_items("[ERROR]", "输入校验失败：", errors)
        return 1
    if args.strict and warnings:
        _print_items("[ERROR]", "strict 模式命中 warning，已终止生成：", warnings)
        return 2

    result = compile_profile(profile, inbound_config, policy)
    _emit(json.dumps(result.to_dict(), ensure_ascii=False, indent=2) + "\n", args.output)

    if args.output:
        print(
            f"[OK] 已生成 {len(result.inbounds)} 个入站、{len(result.outbounds)} 个出站、"
            f"{len(result.routing.rules)} 条规则到: {args.output}"
        )
    if warnings:
        _print_items("[WARN]", "需要人工关注的设置项：", warnings)
    return 0


def _finish_subscription(result: SubscriptionResult, output: str) -> int:
    if result.warnings:
        _print_items("[WARN]", "订阅解码提示：", result.warnings)
    if not result.ok:
        print(f"[ERROR] 订阅解码失败: {result.error}", file=sys.stderr)
        return 1
    _emit("".join(f"{link}\n" for link in result.links), output)
    if output:
        print(f"[OK] 已解码 {len(result.links)} 个节点到: {output}")
    return 0


def run_decode(args) -> int:
    input_path = Path(args.input).resolve()
    if not input_path.exists():
        print(f"[ERROR] 找不到输入文件: {input_path}", file=sys.stderr)
        return 1
    result = decode_subscription(args.format, input_path.read_bytes())
    return _finish_subscription(result, args.output)


def run_fetch(args) -> int:
    options = {
        "baseUrl": args.base_url,
        "secret": args.secret,
        "version": args.version,
        "userId": args.user_id,
        "pinnedFingerprint": args.pinned_fingerprint,
    }
    result = OOCProvider().fetch_decode(options)
    return _finish_subscription(result, args.output)


COMMANDS = {
    "compile": run_compile,
    "decode": run_decode,
    "fetch": run_fetch,
}


def main(argv: list[str] | None = None) -> int:
    """脚本主流程：解析参数 -> 分派子命令。"""

    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stderr,
    )
    return COMMANDS[args.command](args)
