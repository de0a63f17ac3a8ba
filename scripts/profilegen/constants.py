"""配置生成器使用的静态常量。"""

from __future__ import annotations

# 出站保留标签：规则直接按标签引用，必须与核心进程约定一致。
DIRECT_OUTBOUND_TAG = "direct"
BLACKHOLE_OUTBOUND_TAG = "blackhole"
DNS_INTERCEPTION_OUTBOUND_TAG = "dns-out"

FREEDOM_PROTOCOL = "freedom"
BLACKHOLE_PROTOCOL = "blackhole"
DNS_PROTOCOL = "dns"

HTTP_PROTOCOL = "http"
SOCKS_PROTOCOL = "socks"
TPROXY_PROTOCOL = "dokodemo-door"

# 入站命名表：(配置键, 核心协议名, 地址1 标签, 地址2 标签, 是否承载 UDP)。
# 顺序即生成顺序。
INBOUND_TABLE = (
    ("http", HTTP_PROTOCOL, "http-in-1", "http-in-2", False),
    ("socks", SOCKS_PROTOCOL, "socks-in-1", "socks-in-2", True),
    ("tproxy", TPROXY_PROTOCOL, "tproxy-in-1", "tproxy-in-2", True),
)

TPROXY_MODES = ("tproxy", "redirect")

GEOIP_PRIVATE = "geoip:private"
GEOIP_CN = "geoip:cn"
GEOSITE_CN = "geosite:cn"

MATCH_ALL_DOMAIN = "regexp:.*"
MATCH_ALL_IPV4 = "0.0.0.0/0"
MATCH_ALL_IPV6 = "::/0"

BITTORRENT_PROTOCOL = "bittorrent"
DNS_PORT = 53

# 路由矩阵也可以随单个 profile 存放在 routing 的额外选项里，只作输入，不写入产物。
ROUTE_MATRIX_OPTION_KEY = "RouteMatrixConfig"

DEFAULT_DOMAIN_STRATEGY = "AsIs"
DEFAULT_DOMAIN_MATCHER = "mph"

DEFAULT_LISTEN_ADDRESS = "127.0.0.1"
DEFAULT_PORTS = {
    "http": 8889,
    "socks": 1089,
    "tproxy": 12345,
}
