"""Tests for live scanning with bounded concurrency and fallbacks."""
import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from src.knownhosts.exceptions import KeyFormatError, ScanError
from src.knownhosts.scanner import KeyscanTransport, LiveScanner, ScanTarget, parse_fallbacks
from src.knownhosts.types import KeyType, ScanStatus


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class FakeTransport:
    """Answers from a host -> response map; responses may be exceptions."""

    def __init__(self, responses: dict, delays: dict | None = None) -> None:
        self.responses = responses
        self.delays = delays or {}
        self.calls: list[tuple[str, int, float]] = []
        self.active = 0
        self.max_active = 0

    async def fetch(self, host: str, port: int, timeout: float) -> str:
        self.calls.append((host, port, timeout))
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(self.delays.get(host, 0))
            response = self.responses[host]
            if isinstance(response, Exception):
                raise response
            return response
        finally:
            self.active -= 1


def _mock_process(stdout: bytes = b"", stderr: bytes = b"", returncode: int = 0) -> MagicMock:
    """Create a mock async subprocess with communicate()."""
    proc = MagicMock()
    proc.returncode = returncode
    proc.communicate = AsyncMock(return_value=(stdout, stderr))
    proc.wait = AsyncMock(return_value=-9)
    return proc


# ---------------------------------------------------------------------------
# Unit tests: ScanTarget
# ---------------------------------------------------------------------------


class TestScanTarget:
    @pytest.mark.parametrize(
        "text, host, port",
        [
            ("Example.com", "example.com", 22),
            ("example.com:2222", "example.com", 2222),
            ("[example.com]:2222", "example.com", 2222),
            ("[::1]:2200", "::1", 2200),
            ("::1", "::1", 22),
            ("[fe80::1]", "fe80::1", 22),
        ],
    )
    def test_parse(self, text: str, host: str, port: int) -> None:
        target = ScanTarget.parse(text)
        assert (target.host, target.port) == (host, port)

    @pytest.mark.parametrize("text", ["", "host:abc", "host:70000", "[host", "[host]x", ":22"])
    def test_parse_rejects(self, text: str) -> None:
        with pytest.raises(ValueError):
            ScanTarget.parse(text)

    def test_pattern(self) -> None:
        assert ScanTarget("h").pattern == "h"
        assert ScanTarget("h", 2222).pattern == "[h]:2222"


# ---------------------------------------------------------------------------
# Unit tests: parse_fallbacks
# ---------------------------------------------------------------------------


class TestParseFallbacks:
    def test_keyed_by_pattern(self, ed25519_key: str, ecdsa_key: str) -> None:
        parsed = parse_fallbacks({"Host2": ed25519_key, "host3:2222": [ed25519_key, ecdsa_key]})
        assert set(parsed) == {"host2", "[host3]:2222"}
        assert parsed["host2"][0].hostname_pattern == "host2"
        assert len(parsed["[host3]:2222"]) == 2

    def test_spellings_of_one_host_are_combined(self, ed25519_key: str, ecdsa_key: str) -> None:
        parsed = parse_fallbacks({"Host2": [ed25519_key], "host2": [ecdsa_key], "host2:22": ed25519_key})
        assert list(parsed) == ["host2"]
        assert [e.key_type for e in parsed["host2"]] == [
            KeyType.ED25519, KeyType.ECDSA_P256, KeyType.ED25519,
        ]

    def test_bad_key_raises(self) -> None:
        with pytest.raises(KeyFormatError, match="host2"):
            parse_fallbacks({"host2": "ssh-ed25519 !!!"})

    def test_bad_host_raises(self, ed25519_key: str) -> None:
        with pytest.raises(KeyFormatError, match="Invalid fallback host"):
            parse_fallbacks({"host:0": ed25519_key})


# ---------------------------------------------------------------------------
# Unit tests: LiveScanner
# ---------------------------------------------------------------------------


class TestLiveScanner:
    def test_rejects_bad_settings(self) -> None:
        transport = FakeTransport({})
        with pytest.raises(ValueError):
            LiveScanner(transport, timeout=0)
        with pytest.raises(ValueError):
            LiveScanner(transport, concurrency=0)
        with pytest.raises(ValueError):
            LiveScanner(transport, run_timeout=-1)

    @pytest.mark.asyncio
    async def test_success(self, ed25519_key: str, ecdsa_key: str) -> None:
        output = f"# host1:22 SSH-2.0-OpenSSH_9.6\nhost1 {ed25519_key}\nhost1 {ecdsa_key}\n"
        scanner = LiveScanner(FakeTransport({"host1": output}))
        [result] = await scanner.scan(["host1"])
        assert result.status is ScanStatus.SUCCESS
        assert [e.key_type for e in result.entries] == [KeyType.ED25519, KeyType.ECDSA_P256]
        assert not result.used_fallback

    @pytest.mark.asyncio
    async def test_entries_use_target_pattern(self, ed25519_key: str) -> None:
        transport = FakeTransport({"host1": f"[HOST1]:2222 {ed25519_key} comment\n"})
        [result] = await LiveScanner(transport).scan(["host1:2222"])
        assert result.hostname == "[host1]:2222"
        assert result.entries[0].hostname_pattern == "[host1]:2222"
        assert result.entries[0].comment is None
        assert transport.calls == [("host1", 2222, 5.0)]

    @pytest.mark.asyncio
    async def test_results_sorted_regardless_of_completion(self, ed25519_key: str) -> None:
        hosts = ["a", "b", "c"]
        transport = FakeTransport(
            {h: f"{h} {ed25519_key}\n" for h in hosts},
            delays={"a": 0.03, "b": 0.02, "c": 0.0},
        )
        results = await LiveScanner(transport).scan(["c", "a", "b"])
        assert [r.hostname for r in results] == hosts

    @pytest.mark.asyncio
    async def test_duplicate_targets_scanned_once(self, ed25519_key: str) -> None:
        transport = FakeTransport({"host1": f"host1 {ed25519_key}\n"})
        results = await LiveScanner(transport).scan(["host1", "HOST1", "host1:22"])
        assert len(results) == 1
        assert len(transport.calls) == 1

    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self, ed25519_key: str) -> None:
        hosts = [f"h{i}" for i in range(6)]
        transport = FakeTransport(
            {h: f"{h} {ed25519_key}\n" for h in hosts},
            delays={h: 0.01 for h in hosts},
        )
        results = await LiveScanner(transport, concurrency=2).scan(hosts)
        assert all(r.ok for r in results)
        assert transport.max_active == 2

    @pytest.mark.asyncio
    async def test_timeout(self, ed25519_key: str) -> None:
        transport = FakeTransport({"slow": f"slow {ed25519_key}\n"}, delays={"slow": 1.0})
        [result] = await LiveScanner(transport, timeout=0.05).scan(["slow"])
        assert result.status is ScanStatus.TIMEOUT
        assert result.entries == ()
        assert not result.used_fallback

    @pytest.mark.asyncio
    async def test_timeout_with_fallback(self, ed25519_key: str, other_ed25519_key: str) -> None:
        """host2 times out; its fallback key is used instead."""
        transport = FakeTransport(
            {"host1": f"host1 {ed25519_key}\n", "host2": f"host2 {ed25519_key}\n"},
            delays={"host2": 1.0},
        )
        scanner = LiveScanner(
            transport,
            timeout=0.05,
            fallbacks=parse_fallbacks({"host2": other_ed25519_key}),
        )
        results = await scanner.scan(["host1", "host2"])
        assert results[0].ok
        host2 = results[1]
        assert host2.status is ScanStatus.TIMEOUT
        assert host2.used_fallback
        assert host2.entries[0].hostname_pattern == "host2"
        assert host2.entries[0].key_material == parse_fallbacks(
            {"host2": other_ed25519_key}
        )["host2"][0].key_material

    @pytest.mark.asyncio
    async def test_unreachable(self) -> None:
        transport = FakeTransport({"down": ScanError("connection refused")})
        [result] = await LiveScanner(transport).scan(["down"])
        assert result.status is ScanStatus.UNREACHABLE
        assert result.error == "connection refused"

    @pytest.mark.asyncio
    async def test_unexpected_transport_error_is_contained(self, ed25519_key: str) -> None:
        """A transport raising anything else fails only its own host."""
        transport = FakeTransport(
            {"good": f"good {ed25519_key}\n", "bad": RuntimeError("transport blew up")}
        )
        bad, good = await LiveScanner(transport).scan(["good", "bad"])
        assert good.ok
        assert bad.status is ScanStatus.UNREACHABLE
        assert bad.error == "transport blew up"

    @pytest.mark.asyncio
    async def test_os_error_is_unreachable(self) -> None:
        transport = FakeTransport({"down": OSError("no route")})
        [result] = await LiveScanner(transport).scan(["down"])
        assert result.status is ScanStatus.UNREACHABLE

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "output",
        ["garbage line\n", "# only comments\n", ""],
    )
    async def test_protocol_error(self, output: str) -> None:
        [result] = await LiveScanner(FakeTransport({"h": output})).scan(["h"])
        assert result.status is ScanStatus.PROTOCOL_ERROR
        assert "malformed response" in result.error

    @pytest.mark.asyncio
    async def test_marker_is_protocol_error(self, ed25519_key: str) -> None:
        transport = FakeTransport({"h": f"@revoked h {ed25519_key}\n"})
        [result] = await LiveScanner(transport).scan(["h"])
        assert result.status is ScanStatus.PROTOCOL_ERROR

    @pytest.mark.asyncio
    async def test_run_timeout_cancels_pending(self, ed25519_key: str) -> None:
        transport = FakeTransport(
            {"fast": f"fast {ed25519_key}\n", "slow": f"slow {ed25519_key}\n"},
            delays={"slow": 1.0},
        )
        scanner = LiveScanner(transport, timeout=5.0, run_timeout=0.1)
        fast, slow = await scanner.scan(["fast", "slow"])
        assert fast.ok
        assert slow.status is ScanStatus.TIMEOUT
        assert "run timeout" in slow.error

    @pytest.mark.asyncio
    async def test_no_hosts(self) -> None:
        assert await LiveScanner(FakeTransport({})).scan([]) == []


# ---------------------------------------------------------------------------
# Unit tests: KeyscanTransport
# ---------------------------------------------------------------------------


class TestKeyscanTransport:
    def test_command(self) -> None:
        transport = KeyscanTransport(("ed25519", "rsa"))
        assert transport.command("host1", 2222, 2.5) == [
            "ssh-keyscan", "-T", "4", "-p", "2222", "-t", "ed25519,rsa", "host1",
        ]

    @pytest.mark.asyncio
    async def test_fetch_returns_output(self, ed25519_key: str) -> None:
        proc = _mock_process(stdout=f"host1 {ed25519_key}\n".encode())
        with patch(
            "src.knownhosts.scanner.asyncio.create_subprocess_exec",
            side_effect=[proc],
        ) as mock_exec:
            output = await KeyscanTransport().fetch("host1", 22, 5.0)

        assert output.startswith("host1 ssh-ed25519 ")
        assert mock_exec.call_args[0][0] == "ssh-keyscan"
        assert mock_exec.call_args[0][-1] == "host1"

    @pytest.mark.asyncio
    async def test_fetch_without_keys_raises(self) -> None:
        proc = _mock_process(stdout=b"# host1:22 SSH-2.0\n", stderr=b"Connection refused", returncode=1)
        with patch(
            "src.knownhosts.scanner.asyncio.create_subprocess_exec",
            side_effect=[proc],
        ):
            with pytest.raises(ScanError, match="Connection refused"):
                await KeyscanTransport().fetch("host1", 22, 5.0)

    @pytest.mark.asyncio
    async def test_fetch_empty_stderr_mentions_exit(self) -> None:
        proc = _mock_process(returncode=1)
        with patch(
            "src.knownhosts.scanner.asyncio.create_subprocess_exec",
            side_effect=[proc],
        ):
            with pytest.raises(ScanError, match="exit 1"):
                await KeyscanTransport().fetch("host1", 22, 5.0)

    @pytest.mark.asyncio
    async def test_missing_executable(self) -> None:
        with patch(
            "src.knownhosts.scanner.asyncio.create_subprocess_exec",
            side_effect=FileNotFoundError("ssh-keyscan"),
        ):
            with pytest.raises(ScanError, match="Cannot run ssh-keyscan"):
                await KeyscanTransport().fetch("host1", 22, 5.0)

    @pytest.mark.asyncio
    async def test_kills_process_on_cancel(self) -> None:
        proc = _mock_process()
        proc.returncode = None
        proc.communicate = AsyncMock(side_effect=asyncio.CancelledError())
        with patch(
            "src.knownhosts.scanner.asyncio.create_subprocess_exec",
            side_effect=[proc],
        ):
            with pytest.raises(asyncio.CancelledError):
                await KeyscanTransport().fetch("host1", 22, 5.0)
        proc.kill.assert_called_once()
        proc.wait.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_timed_out_process_is_reaped(self) -> None:
        """A scan timeout kills ssh-keyscan and waits for it so its pipes close."""
        proc = _mock_process()
        proc.returncode = None

        async def hang():
            await asyncio.sleep(10)

        proc.communicate = AsyncMock(side_effect=hang)
        with patch(
            "src.knownhosts.scanner.asyncio.create_subprocess_exec",
            side_effect=[proc],
        ):
            [result] = await LiveScanner(KeyscanTransport(), timeout=0.05).scan(["host1"])

        assert result.status is ScanStatus.TIMEOUT
        proc.kill.assert_called_once()
        proc.wait.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_finished_process_is_not_killed(self, ed25519_key: str) -> None:
        proc = _mock_process(stdout=f"host1 {ed25519_key}\n".encode())
        with patch(
            "src.knownhosts.scanner.asyncio.create_subprocess_exec",
            side_effect=[proc],
        ):
            await KeyscanTransport().fetch("host1", 22, 5.0)
        proc.kill.assert_not_called()
        proc.wait.assert_not_awaited()
