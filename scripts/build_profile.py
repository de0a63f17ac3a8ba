#!/usr/bin/env python3
"""编译 v2ray profile / 解码订阅的命令行入口。"""

from __future__ import annotations

from profilegen.app import main

if __name__ == "__main__":
    raise SystemExit(main())
