import os
import socket
import subprocess
import sys
import textwrap
import threading
import time
from pathlib import Path

import pytest

from peer.fetch_client import (
    FetchOrchestrator,
    FragmentCountError,
    IncompleteDownloadError,
    NoSourcesError,
)
from peer.peer_server import FragmentServer
from peer.state import Endpoint, FetchSession, SlotState, assign_source, parse_endpoints


def wait_until(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


def free_port():
    with socket.socket() as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


def start_source(settings, item, path, registry_server):
    server = FragmentServer(settings, item, path)
    server.start()
    endpoint = f"127.0.0.1:{server.address[1]}"
    assert wait_until(lambda: endpoint in registry_server.peer_db.query(item))
    return server


@pytest.fixture
def payload(tmp_path):
    data = os.urandom(4 * 1024 - 100)
    path = tmp_path / "seed" / "video.bin"
    path.parent.mkdir()
    path.write_bytes(data)
    return path, data


def test_round_robin_assignment_is_deterministic():
    sources = [Endpoint("10.0.0.1", 1), Endpoint("10.0.0.2", 2), Endpoint("10.0.0.3", 3)]

    assigned = [assign_source(sources, i) for i in range(7)]

    assert assigned == [sources[i % 3] for i in range(7)]
    assert [assign_source(sources, i) for i in range(7)] == assigned


def test_two_sources_split_four_fragments():
    sources = [Endpoint("10.0.0.1", 6000), Endpoint("10.0.0.2", 6000)]
    session = FetchSession(item="x", sources=sources, total=4)

    assert [session.assign_source(i) for i in range(4)] == [sources[0], sources[1], sources[0], sources[1]]


def test_session_tracks_slot_states():
    session = FetchSession(item="x", sources=[Endpoint("h", 1)], total=3)
    assert not session.is_complete

    session.mark_done(0, b"a")
    session.mark_failed(1, "boom")
    session.mark_done(2, b"c")

    assert session.is_complete
    assert not session.succeeded
    assert session.missing() == [1]
    assert session.indices(SlotState.DONE) == [0, 2]
    with pytest.raises(ValueError):
        session.assemble()


def test_parse_endpoints_drops_garbage():
    assert parse_endpoints(["10.0.0.1:6000", "nonsense", "h:0", "10.0.0.2:x"]) == [Endpoint("10.0.0.1", 6000)]


def test_download_from_two_sources(peer_settings, registry_server, payload, tmp_path):
    path, data = payload
    first = start_source(peer_settings, "video.bin", path, registry_server)
    second = start_source(peer_settings, "video.bin", path, registry_server)
    events = []
    try:
        orchestrator = FetchOrchestrator(peer_settings, on_progress=lambda p, m: events.append((p, m)))
        out = orchestrator.download("video.bin", tmp_path / "out.bin")
    finally:
        first.stop()
        second.stop()

    assert out.read_bytes() == data
    assert events[-1][0] == 100.0
    assert all(0.0 <= p <= 100.0 for p, _ in events)


def test_download_overwrites_existing_destination(peer_settings, registry_server, payload, tmp_path):
    path, data = payload
    dest = tmp_path / "out.bin"
    dest.write_bytes(b"stale contents that are longer than nothing")
    source = start_source(peer_settings, "video.bin", path, registry_server)
    try:
        FetchOrchestrator(peer_settings).download("video.bin", dest)
    finally:
        source.stop()

    assert dest.read_bytes() == data


def test_no_sources_aborts_without_writing(peer_settings, registry_server, tmp_path):
    dest = tmp_path / "out.bin"

    with pytest.raises(NoSourcesError):
        FetchOrchestrator(peer_settings).download("nobody-has-this", dest)
    assert not dest.exists()


def test_unreachable_registry_counts_as_no_sources(peer_settings, tmp_path):
    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
        sock.bind(("127.0.0.1", 0))
        peer_settings.registry_port = sock.getsockname()[1]
    peer_settings.registry_timeout = 0.3

    with pytest.raises(NoSourcesError):
        FetchOrchestrator(peer_settings).download("x", tmp_path / "out.bin")


def test_dead_first_source_aborts_on_count(peer_settings, registry_server, tmp_path):
    registry_server.peer_db.register("x", "127.0.0.1", free_port())
    dest = tmp_path / "out.bin"

    with pytest.raises(FragmentCountError):
        FetchOrchestrator(peer_settings).download("x", dest)
    assert not dest.exists()


def test_empty_source_file_is_a_count_failure(peer_settings, registry_server, tmp_path):
    empty = tmp_path / "empty.bin"
    empty.write_bytes(b"")
    source = start_source(peer_settings, "empty.bin", empty, registry_server)
    try:
        with pytest.raises(FragmentCountError):
            FetchOrchestrator(peer_settings).download("empty.bin", tmp_path / "out.bin")
    finally:
        source.stop()


def test_unreachable_second_source_means_no_file(peer_settings, registry_server, payload, tmp_path):
    path, _ = payload
    source = start_source(peer_settings, "video.bin", path, registry_server)
    registry_server.peer_db.register("video.bin", "127.0.0.1", free_port())
    dest = tmp_path / "out.bin"
    try:
        with pytest.raises(IncompleteDownloadError) as excinfo:
            FetchOrchestrator(peer_settings).download("video.bin", dest)
    finally:
        source.stop()

    assert excinfo.value.missing == [1, 3]
    assert not dest.exists()


@pytest.fixture
def stalled_listener():
    """Aceita conexões no backlog do kernel mas nunca chama ``accept``."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    sock.listen(8)
    yield sock.getsockname()[1]
    sock.close()


def test_stalled_source_is_cut_off_by_fetch_timeout(
    peer_settings, registry_server, payload, tmp_path, stalled_listener
):
    path, _ = payload
    source = start_source(peer_settings, "video.bin", path, registry_server)
    registry_server.peer_db.register("video.bin", "127.0.0.1", stalled_listener)
    peer_settings.transfer_timeout = None
    peer_settings.fetch_timeout = 1.0
    dest = tmp_path / "out.bin"

    started = time.monotonic()
    try:
        with pytest.raises(IncompleteDownloadError) as excinfo:
            FetchOrchestrator(peer_settings).download("video.bin", dest)
    finally:
        source.stop()
    elapsed = time.monotonic() - started

    assert excinfo.value.missing == [1, 3]
    assert not dest.exists()
    assert elapsed < 5.0

    stuck = [t for t in threading.enumerate() if t.name.startswith("fetch-")]
    assert stuck
    assert all(t.daemon for t in stuck)


SRC_DIR = Path(__file__).resolve().parents[1] / "src"

STALLED_DOWNLOAD_SCRIPT = textwrap.dedent(
    """
    import os, socket, sys, tempfile, time
    from pathlib import Path

    from peer.config import PeerSettings
    from peer.fetch_client import FetchOrchestrator, IncompleteDownloadError
    from peer.peer_server import FragmentServer
    from registry.config import RegistrySettings
    from registry.server import RegistryServer

    registry = RegistryServer(RegistrySettings(listen_host="127.0.0.1", listen_port=0))
    registry.start()
    settings = PeerSettings(
        registry_host="127.0.0.1", registry_port=registry.address[1],
        listen_host="127.0.0.1", listen_port=0, advertise_host="127.0.0.1",
        fragment_size=1024, fetch_timeout=1.0, transfer_timeout=None,
    )

    workdir = Path(tempfile.mkdtemp())
    seed = workdir / "video.bin"
    seed.write_bytes(os.urandom(4 * 1024 - 100))
    source = FragmentServer(settings, "video.bin", seed)
    source.start()
    while not registry.peer_db.query("video.bin"):
        time.sleep(0.01)

    stalled = socket.socket()
    stalled.bind(("127.0.0.1", 0))
    stalled.listen(8)
    registry.peer_db.register("video.bin", "127.0.0.1", stalled.getsockname()[1])

    try:
        FetchOrchestrator(settings).download("video.bin", workdir / "out.bin")
    except IncompleteDownloadError as exc:
        print(exc.missing)
        sys.exit(1)
    sys.exit(0)
    """
)


def test_process_exits_after_stalled_download():
    env = dict(os.environ, PYTHONPATH=str(SRC_DIR))
    result = subprocess.run(
        [sys.executable, "-c", STALLED_DOWNLOAD_SCRIPT],
        env=env,
        capture_output=True,
        text=True,
        timeout=15,
    )

    assert result.returncode == 1, result.stderr
    assert result.stdout.strip() == "[1, 3]"


def test_run_turns_downloader_into_source(peer_settings, registry_server, payload, tmp_path):
    path, data = payload
    source = start_source(peer_settings, "video.bin", path, registry_server)
    dest = tmp_path / "copy.bin"
    try:
        server = FetchOrchestrator(peer_settings).run("video.bin", dest)
    finally:
        source.stop()

    try:
        endpoint = f"127.0.0.1:{server.address[1]}"
        assert wait_until(lambda: endpoint in registry_server.peer_db.query("video.bin"))
        assert server.fragments.assemble() == data
    finally:
        server.stop()


def test_failing_progress_observer_is_ignored(peer_settings, registry_server, payload, tmp_path):
    path, data = payload
    source = start_source(peer_settings, "video.bin", path, registry_server)

    def broken(percent, message):
        raise RuntimeError("observer bug")

    try:
        out = FetchOrchestrator(peer_settings, on_progress=broken).download("video.bin", tmp_path / "o.bin")
    finally:
        source.stop()

    assert out.read_bytes() == data
