"""订阅解码：把订阅内容转换为规范化的节点链接列表。"""

from __future__ import annotations

import base64
import binascii
import json
import logging
import re
from abc import ABC, abstractmethod
from typing import Any, Mapping
from urllib.parse import quote

import requests
from requests.adapters import HTTPAdapter

from .models import SubscriptionResult

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = (10, 30)


class UnknownDecoderError(KeyError):
    """请求了未注册的订阅格式。"""


def split_lines(text: str) -> list[str]:
    """按 CR/LF 切分并丢弃空行，保持原始顺序。"""

    return [line.strip() for line in re.split(r"[\r\n]", text) if line.strip()]


def safe_b64encode(text: str) -> str:
    """URL 安全 base64 编码，去掉末尾填充。"""

    return base64.urlsafe_b64encode(text.encode("utf-8")).decode("ascii").rstrip("=")


def safe_b64decode(text: str) -> str:
    """URL 安全 base64 解码，填充可省略。

    非法内容抛出 `binascii.Error` / `UnicodeDecodeError`，由调用方转换为解码失败。
    """

    # 很多订阅会按 76 列折行，先去掉所有空白。
    compact = "".join(text.split()).replace("-", "+").replace("_", "/")
    compact += "=" * (-len(compact) % 4)
    return base64.b64decode(compact, validate=True).decode("utf-8")


def build_ss_link(
    server: str,
    port: int,
    method: str,
    password: str,
    plugin: str = "",
    plugin_opts: str = "",
    remarks: str = "",
) -> str:
    """按 SIP002 拼接 `ss://` 链接。"""

    userinfo = safe_b64encode(f"{method}:{password}")
    host = f"[{server}]" if ":" in server else server
    link = f"ss://{userinfo}@{host}:{port}"
    if plugin:
        plugin_value = f"{plugin};{plugin_opts}" if plugin_opts else plugin
        link += f"?plugin={quote(plugin_value, safe='')}"
    if remarks:
        link += f"#{quote(remarks, safe='')}"
    return link


class SubscriptionDecoder(ABC):
    """本地订阅解码器：输入已下载的原始字节。"""

    format_id = ""

    @abstractmethod
    def decode(self, payload: bytes) -> SubscriptionResult:
        raise NotImplementedError


class SubscriptionProvider(ABC):
    """远程订阅提供方：自行发起请求并解码。"""

    format_id = ""

    @abstractmethod
    def fetch_decode(self, options: Mapping[str, Any]) -> SubscriptionResult:
        raise NotImplementedError


class SimpleBase64Decoder(SubscriptionDecoder):
    """逐行链接订阅，整体可以是明文或 URL 安全 base64。"""

    format_id = "simple_base64"

    def decode(self, payload: bytes) -> SubscriptionResult:
        try:
            source = payload.decode("utf-8").strip()
        except UnicodeDecodeError as exc:
            return SubscriptionResult(error=f"订阅内容不是 UTF-8 文本：{exc}")

        if "://" not in source:
            try:
                source = safe_b64decode(source)
            except (binascii.Error, UnicodeDecodeError) as exc:
                return SubscriptionResult(error=f"订阅内容既不是链接列表也不是合法 base64：{exc}")

        return SubscriptionResult(links=split_lines(source))


class SIP008Decoder(SubscriptionDecoder):
    """SIP008 JSON 清单：`{"servers": [...]}`。"""

    format_id = "sip008"

    def decode(self, payload: bytes) -> SubscriptionResult:
        try:
            root = json.loads(payload)
        except ValueError as exc:
            return SubscriptionResult(error=f"SIP008 内容不是合法 JSON：{exc}")
        if not isinstance(root, dict):
            return SubscriptionResult(error="SIP008 根节点不是 JSON 对象")
        servers = root.get("servers")
        if not isinstance(servers, list):
            return SubscriptionResult(error="SIP008 缺少 `servers` 数组")

        result = SubscriptionResult()
        skipped = 0
        for idx, entry in enumerate(servers, 1):
            link = self._entry_to_link(idx, entry, result.warnings)
            if link is None:
                skipped += 1
                continue
            result.links.append(link)

        if skipped:
            # 部分成功也要显式标记失败，避免调用方把残缺结果当作完整订阅。
            result.error = f"{skipped} 个服务器条目无法解析"
        return result

    @staticmethod
    def _entry_to_link(idx: int, entry: Any, warnings: list[str]) -> str | None:
        if not isinstance(entry, dict):
            warnings.append(f"#{idx:02d} 服务器条目不是对象。")
            return None
        server = str(entry.get("server") or "").strip()
        if not server:
            warnings.append(f"#{idx:02d} 缺少 `server`。")
            return None
        try:
            port = int(entry.get("server_port"))
        except (TypeError, ValueError):
            warnings.append(f"#{idx:02d} `{server}` 的 `server_port` 无效。")
            return None
        logger.debug("SIP008 #%02d -> %s:%d", idx, server, port)
        return build_ss_link(
            server=server,
            port=port,
            method=str(entry.get("method") or ""),
            password=str(entry.get("password") or ""),
            plugin=str(entry.get("plugin") or ""),
            plugin_opts=str(entry.get("plugin_opts") or ""),
            remarks=str(entry.get("remarks") or ""),
        )


class FingerprintAdapter(HTTPAdapter):
    """校验服务端证书 SHA-256 指纹的适配器。"""

    def __init__(self, fingerprint: str, **kwargs: Any) -> None:
        # HTTPAdapter.__init__ 内部会调用 init_poolmanager，必须先赋值。
        self.fingerprint = fingerprint
        super().__init__(**kwargs)

    def init_poolmanager(self, connections, maxsize, block=False, **pool_kwargs):
        pool_kwargs["assert_fingerprint"] = self.fingerprint
        super().init_poolmanager(connections, maxsize, block=block, **pool_kwargs)

    def proxy_manager_for(self, proxy, **proxy_kwargs):
        # 经 HTTPS_PROXY 等代理转发时走独立的 ProxyManager，同样要校验指纹。
        proxy_kwargs["assert_fingerprint"] = self.fingerprint
        return super().proxy_manager_for(proxy, **proxy_kwargs)


def create_session(pinned_fingerprint: str = "") -> requests.Session:
    """创建请求会话；不挂载重试，重试策略由调用方决定。"""

    session = requests.Session()
    if pinned_fingerprint:
        session.mount("https://", FingerprintAdapter(pinned_fingerprint.replace(":", "").lower()))
    return session


class OOCProvider(SubscriptionProvider):
    """Open Online Config v1 远程订阅。"""

    format_id = "ooc"

    def __init__(self, session: requests.Session | None = None, timeout=DEFAULT_TIMEOUT) -> None:
        self.session = session
        self.timeout = timeout

    @staticmethod
    def build_url(options: Mapping[str, Any]) -> str:
        base_url = str(options.get("baseUrl") or "").rstrip("/")
        secret = str(options.get("secret") or "")
        version = int(options.get("version") or 1)
        user_id = str(options.get("userId") or "")
        return f"{base_url}/{secret}/ooc/v{version}/{user_id}"

    def fetch_decode(self, options: Mapping[str, Any]) -> SubscriptionResult:
        if not options.get("baseUrl"):
            return SubscriptionResult(error="缺少 baseUrl")
        try:
            url = self.build_url(options)
        except (TypeError, ValueError) as exc:
            return SubscriptionResult(error=f"OOC 参数无效：{exc}")

        fingerprint = str(options.get("pinnedFingerprint") or "")
        if self.session is None:
            with create_session(fingerprint) as session:
                return self._fetch(session, url)

        # 注入的会话由调用方负责证书校验配置。
        if fingerprint:
            logger.warning("已注入请求会话，pinnedFingerprint 被忽略")
        return self._fetch(self.session, url)

    def _fetch(self, session: requests.Session, url: str) -> SubscriptionResult:
        try:
            response = session.get(url, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as exc:
            logger.warning("OOC 请求失败：%s", exc)
            return SubscriptionResult(error=f"transport: {exc}")

        # 响应格式随提供方演进，这里不猜测其结构。
        # TODO: 提供方公开 OOC v1 响应 schema 后在此解析节点列表。
        size = len(response.content)
        logger.debug("OOC 响应 %d 字节，未解析", size)
        return SubscriptionResult(warnings=[f"OOC 响应未解析（{size} 字节）。"])


DECODERS: dict[str, SubscriptionDecoder] = {
    decoder.format_id: decoder for decoder in (SimpleBase64Decoder(), SIP008Decoder())
}

PROVIDERS: dict[str, type[SubscriptionProvider]] = {
    OOCProvider.format_id: OOCProvider,
}


def get_decoder(format_id: str) -> SubscriptionDecoder:
    try:
        return DECODERS[format_id]
    except KeyError:
        raise UnknownDecoderError(format_id) from None


def decode_subscription(format_id: str, payload: bytes) -> SubscriptionResult:
    """按格式标识选择解码器并解码。"""

    decoder = get_decoder(format_id)
    logger.debug("使用解码器 `%s` 解码 %d 字节", format_id, len(payload))
    return decoder.decode(payload)


def fetch_subscription(
    format_id: str,
    options: Mapping[str, Any],
    session: requests.Session | None = None,
) -> SubscriptionResult:
    try:
        provider_cls = PROVIDERS[format_id]
    except KeyError:
        raise UnknownDecoderError(format_id) from None
    return provider_cls(session=session).fetch_decode(options)
