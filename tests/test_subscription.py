"""订阅解码器测试。"""

from __future__ import annotations

import base64
import json
import sys
import unittest
from pathlib import Path
from unittest import mock
from urllib.parse import parse_qs, urlsplit

import requests

ROOT = Path(__file__).resolve().parents[1]
SCRIPTS_DIR = ROOT / "scripts"
if str(SCRIPTS_DIR) not in sys.path:
    sys.path.insert(0, str(SCRIPTS_DIR))

from profilegen.subscription import (  # noqa: E402
    FingerprintAdapter,
    OOCProvider,
    UnknownDecoderError,
    create_session,
    decode_subscription,
    fetch_subscription,
    get_decoder,
    safe_b64decode,
    split_lines,
)

PLAIN = "ss://abc#node1\nss://def#node2"


class SimpleBase64DecoderTests(unittest.TestCase):
    def test_plain_links(self) -> None:
        result = decode_subscription("simple_base64", PLAIN.encode("utf-8"))
        self.assertTrue(result.ok)
        self.assertEqual(result.links, ["ss://abc#node1", "ss://def#node2"])

    def test_urlsafe_base64_links(self) -> None:
        encoded = base64.b64encode(PLAIN.encode("utf-8")).decode("ascii")
        encoded = encoded.replace("+", "-").replace("/", "_")
        result = decode_subscription("simple_base64", encoded.encode("ascii"))
        self.assertTrue(result.ok)
        self.assertEqual(result.links, ["ss://abc#node1", "ss://def#node2"])

    def test_padding_is_optional_and_lines_are_split_on_crlf(self) -> None:
        text = "vmess://one\r\n\r\ntrojan://two\r\n"
        encoded = base64.urlsafe_b64encode(text.encode("utf-8")).decode("ascii").rstrip("=")
        result = decode_subscription("simple_base64", f"  {encoded}\n".encode("ascii"))
        self.assertEqual(result.links, ["vmess://one", "trojan://two"])

    def test_garbage_is_a_decode_failure(self) -> None:
        result = decode_subscription("simple_base64", b"not base64 at all!")
        self.assertFalse(result.ok)
        self.assertEqual(result.links, [])

    def test_empty_payload_is_empty_success(self) -> None:
        result = decode_subscription("simple_base64", b"")
        self.assertTrue(result.ok)
        self.assertEqual(result.links, [])

    def test_helpers(self) -> None:
        self.assertEqual(split_lines("a\n\nb\r c \r"), ["a", "b", "c"])
        self.assertEqual(safe_b64decode("YT8_"), "a??")
        self.assertEqual(safe_b64decode("aGk"), "hi")


class SIP008DecoderTests(unittest.TestCase):
    def server(self, **extra) -> dict:
        entry = {
            "server": "1.2.3.4",
            "server_port": 8388,
            "method": "aes-256-gcm",
            "password": "p@ss",
            "remarks": "node1",
        }
        entry.update(extra)
        return entry

    def decode(self, servers: list) -> object:
        payload = json.dumps({"version": 1, "servers": servers}).encode("utf-8")
        return get_decoder("sip008").decode(payload)

    def test_server_without_plugin(self) -> None:
        result = self.decode([self.server()])
        self.assertTrue(result.ok)
        self.assertEqual(len(result.links), 1)

        parts = urlsplit(result.links[0])
        self.assertEqual(parts.scheme, "ss")
        self.assertEqual(parts.hostname, "1.2.3.4")
        self.assertEqual(parts.port, 8388)
        self.assertEqual(parts.fragment, "node1")
        expected_userinfo = base64.urlsafe_b64encode(b"aes-256-gcm:p@ss").decode("ascii").rstrip("=")
        self.assertEqual(parts.username, expected_userinfo)
        self.assertNotIn("plugin", parse_qs(parts.query))

    def test_server_with_plugin(self) -> None:
        result = self.decode([self.server(plugin="v2ray-plugin", plugin_opts="mode=websocket")])
        self.assertIn("?plugin=v2ray-plugin%3Bmode%3Dwebsocket#", result.links[0])

    def test_plugin_without_opts_has_no_separator(self) -> None:
        result = self.decode([self.server(plugin="obfs-local")])
        self.assertIn("?plugin=obfs-local#node1", result.links[0])
        self.assertNotIn("%3B", result.links[0])

    def test_invalid_json(self) -> None:
        result = get_decoder("sip008").decode(b"{not json")
        self.assertFalse(result.ok)
        self.assertEqual(result.links, [])

    def test_missing_servers_array(self) -> None:
        result = get_decoder("sip008").decode(b'{"version": 1}')
        self.assertFalse(result.ok)

    def test_partial_result_keeps_order_and_reports_failure(self) -> None:
        result = self.decode(
            [
                self.server(remarks="a"),
                {"server_port": 1},
                self.server(server="5.6.7.8", remarks="b"),
                "oops",
            ]
        )
        self.assertFalse(result.ok)
        self.assertEqual([urlsplit(link).fragment for link in result.links], ["a", "b"])
        self.assertEqual(len(result.warnings), 2)

    def test_ipv6_server_is_bracketed(self) -> None:
        result = self.decode([self.server(server="2001:db8::1")])
        self.assertEqual(urlsplit(result.links[0]).hostname, "2001:db8::1")

    def test_unknown_format(self) -> None:
        with self.assertRaises(UnknownDecoderError):
            decode_subscription("clash", b"")


class OOCProviderTests(unittest.TestCase):
    options = {"baseUrl": "https://ooc.example.com/", "secret": "s3", "version": 1, "userId": "u1"}

    def test_build_url(self) -> None:
        self.assertEqual(OOCProvider.build_url(self.options), "https://ooc.example.com/s3/ooc/v1/u1")

    def test_success_returns_empty_result(self) -> None:
        session = mock.Mock(spec=requests.Session)
        session.get.return_value.content = b'{"version": 1}'
        result = OOCProvider(session=session).fetch_decode(self.options)

        session.get.assert_called_once()
        self.assertEqual(session.get.call_args.args[0], "https://ooc.example.com/s3/ooc/v1/u1")
        self.assertTrue(result.ok)
        self.assertEqual(result.links, [])

    def test_transport_failure_is_an_error(self) -> None:
        session = mock.Mock(spec=requests.Session)
        session.get.side_effect = requests.exceptions.SSLError("fingerprint mismatch")
        result = fetch_subscription("ooc", self.options, session=session)
        self.assertFalse(result.ok)
        self.assertTrue(result.error.startswith("transport:"))

    def test_http_error_status_is_an_error(self) -> None:
        session = mock.Mock(spec=requests.Session)
        session.get.return_value.raise_for_status.side_effect = requests.HTTPError("404")
        result = OOCProvider(session=session).fetch_decode(self.options)
        self.assertFalse(result.ok)

    def test_missing_base_url(self) -> None:
        result = OOCProvider(session=mock.Mock()).fetch_decode({"secret": "s"})
        self.assertFalse(result.ok)

    def test_pinned_session_mounts_fingerprint_adapter(self) -> None:
        session = create_session("AB:CD")
        adapter = session.get_adapter("https://ooc.example.com")
        self.assertIsInstance(adapter, FingerprintAdapter)
        self.assertEqual(adapter.fingerprint, "abcd")
        self.assertNotIsInstance(create_session().get_adapter("https://x"), FingerprintAdapter)

    def test_pinned_fingerprint_applies_to_proxy_manager(self) -> None:
        fingerprint = "ab" * 32
        adapter = create_session(fingerprint).get_adapter("https://ooc.example.com")
        manager = adapter.proxy_manager_for("http://127.0.0.1:8080")
        self.assertEqual(manager.connection_pool_kw["assert_fingerprint"], fingerprint)
        self.assertEqual(adapter.poolmanager.connection_pool_kw["assert_fingerprint"], fingerprint)

    def test_self_created_session_is_closed(self) -> None:
        created = mock.MagicMock()
        created.__enter__.return_value = created
        created.__exit__.return_value = False
        created.get.return_value.content = b""
        with mock.patch("profilegen.subscription.create_session", return_value=created) as factory:
            result = OOCProvider().fetch_decode(dict(self.options, pinnedFingerprint="ab" * 32))

        self.assertTrue(result.ok)
        factory.assert_called_once_with("ab" * 32)
        created.__exit__.assert_called_once()

    def test_injected_session_ignores_fingerprint_with_warning(self) -> None:
        session = mock.Mock(spec=requests.Session)
        session.get.return_value.content = b""
        with self.assertLogs("profilegen.subscription", level="WARNING") as logs:
            result = OOCProvider(session=session).fetch_decode(dict(self.options, pinnedFingerprint="ab"))
        self.assertTrue(result.ok)
        self.assertTrue(any("pinnedFingerprint" in line for line in logs.output))


if __name__ == "__main__":
    unittest.main()
