"""
Shared fixtures: in-memory record store, partner configs and a fake remote channel.
"""

from pathlib import Path

import pytest

from galedi.config.settings import (
    AgentConfig,
    EndpointConfig,
    IntervalConfig,
    PartnerConfig,
    ScheduleConfig,
    StoreConfig,
)
from galedi.connections.remote import RemoteChannel, UploadReceipt
from galedi.core.store import RecordStore
from galedi.exceptions import RemoteChannelError, RemoteFileNotFoundError
from galedi.utils.cancellation import CancelToken, check_cancelled

SAMPLE_LINES = [
    "4711,Halle 1,Halle 1,01,03.02.24,07:15:00",
    "4712,Halle 2,Halle 3,02,03.02.24,07:16:30",
    "4713,Lager,Lager,10,04.02.24,11:00:05",
]


class FakeRemoteChannel(RemoteChannel):
    """In-memory remote site. ``failures`` maps an operation name to the exception it raises."""

    def __init__(self, partner_id: str = "MFR-H", endpoint: EndpointConfig | None = None):
        super().__init__(partner_id, endpoint or EndpointConfig(url="ftp://fake.example/drop", username="u"))
        self.files: dict[str, bytes] = {}
        self.failures: dict[str, Exception] = {}
        self.calls: list[tuple[str, str]] = []
        self.uploaded: dict[str, bytes] = {}
        self.on_upload = None

    def _find(self, file_name: str) -> str | None:
        for name in self.files:
            if name.casefold() == file_name.casefold():
                return name
        return None

    def _maybe_fail(self, op: str) -> None:
        if op in self.failures:
            raise self.failures[op]

    def exists(self, file_name: str, cancel: CancelToken | None = None) -> bool:
        self.calls.append(("exists", file_name))
        self._maybe_fail("exists")
        check_cancelled(cancel, f"listing for {file_name}")
        return self._find(file_name) is not None

    def download(self, file_name: str, local_path: Path, cancel: CancelToken | None = None) -> Path:
        self.calls.append(("download", file_name))
        self._maybe_fail("download")
        check_cancelled(cancel, f"download of {file_name}")
        name = self._find(file_name)
        if name is None:
            raise RemoteFileNotFoundError(f"{file_name} not found", partner_id=self.partner_id, file_name=file_name)
        local_path = Path(local_path)
        local_path.parent.mkdir(parents=True, exist_ok=True)
        local_path.write_bytes(self.files[name])
        return local_path

    def upload(self, file_name: str, local_path: Path, cancel: CancelToken | None = None) -> UploadReceipt:
        self.calls.append(("upload", file_name))
        self._maybe_fail("upload")
        check_cancelled(cancel, f"upload of {file_name}")
        data = Path(local_path).read_bytes()
        if self.on_upload is not None:
            self.on_upload(file_name, local_path)
        self.files[file_name] = data
        self.uploaded[file_name] = data
        return UploadReceipt(file_name=file_name, remote_path=file_name, size=len(data), confirmation="226 ok")

    def delete(self, file_name: str, cancel: CancelToken | None = None) -> bool:
        self.calls.append(("delete", file_name))
        self._maybe_fail("delete")
        check_cancelled(cancel, f"delete of {file_name}")
        name = self._find(file_name)
        if name is None:
            return False
        del self.files[name]
        return True


def make_partner(partner_id: str = "MFR-H", *, enabled: bool = True, url: str = "ftp://fake.example/drop") -> PartnerConfig:
    slug = partner_id.replace("-", "").lower()
    endpoint = EndpointConfig(url=url, username="galedi", password="secret")
    return PartnerConfig(
        partner_id=partner_id,
        endpoint=endpoint,
        source=endpoint,
        feedback_file=f"{slug}_lvs.txt",
        source_file=f"{slug}_int.txt",
        enabled=enabled,
    )


@pytest.fixture
def store():
    """Record store on a private in-memory DuckDB."""
    record_store = RecordStore(StoreConfig(type="duckdb", path=":memory:"))
    record_store.initialize()
    yield record_store
    record_store.close()


@pytest.fixture
def partner() -> PartnerConfig:
    return make_partner("MFR-H")


@pytest.fixture
def work_dir(tmp_path) -> Path:
    path = tmp_path / "work"
    path.mkdir()
    return path


@pytest.fixture
def channel() -> FakeRemoteChannel:
    return FakeRemoteChannel("MFR-H")


@pytest.fixture
def channels():
    """One fake channel per partner id, built on demand by the channel factory."""
    created: dict[str, FakeRemoteChannel] = {}

    def factory(partner_id: str, endpoint: EndpointConfig) -> FakeRemoteChannel:
        if partner_id not in created:
            created[partner_id] = FakeRemoteChannel(partner_id, endpoint)
        return created[partner_id]

    factory.created = created
    return factory


@pytest.fixture
def agent_config(work_dir) -> AgentConfig:
    return AgentConfig(
        store=StoreConfig(type="duckdb", path=":memory:"),
        partners=(make_partner("MFR-H"), make_partner("MFR-E"), make_partner("MFR-A", enabled=False)),
        schedule=ScheduleConfig(
            ingest=IntervalConfig(every_s=20.0, initial_delay_s=20.0),
            export=IntervalConfig(every_s=30.0, initial_delay_s=30.0),
        ),
        work_dir=work_dir,
    )


def write_source(channel: FakeRemoteChannel, partner: PartnerConfig, lines: list[str], newline: str = "\n") -> None:
    channel.files[partner.source_file] = (newline.join(lines) + newline).encode("utf-8")


def failing(message: str = "connection reset") -> RemoteChannelError:
    return RemoteChannelError(message, partner_id="MFR-H")
