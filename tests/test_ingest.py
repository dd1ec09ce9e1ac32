"""
Tests for the ingestion pipeline against a fake remote channel.
"""

import pytest
from conftest import SAMPLE_LINES, FakeRemoteChannel, failing, make_partner, write_source

from galedi.exceptions import RemoteChannelError, StoreConnectionError, StoreError, SyncCancelledError
from galedi.sync.ingest import ingest_partner, run_ingestion
from galedi.sync.locks import KeyedLocks
from galedi.sync.types import staging_path
from galedi.utils.cancellation import CancelToken


class TestIngestPartner:
    """Tests for a single partner ingestion pass."""

    def test_inserts_all_valid_lines(self, store, channel, partner, work_dir):
        write_source(channel, partner, SAMPLE_LINES)

        summary = ingest_partner(partner, store=store, channel=channel, work_dir=work_dir)

        assert summary["inserted"] == 3
        assert summary["duplicates"] == 0
        assert summary["rejected"] == 0
        assert store.pending_count("MFR-H") == 3
        assert ("download", partner.source_file) in channel.calls

    def test_second_pass_only_duplicates(self, store, channel, partner, work_dir):
        write_source(channel, partner, SAMPLE_LINES)
        ingest_partner(partner, store=store, channel=channel, work_dir=work_dir)

        summary = ingest_partner(partner, store=store, channel=channel, work_dir=work_dir)

        assert summary["inserted"] == 0
        assert summary["duplicates"] == 3
        assert store.pending_count("MFR-H") == 3

    def test_duplicate_lines_in_one_file(self, store, channel, partner, work_dir):
        write_source(channel, partner, [SAMPLE_LINES[0], SAMPLE_LINES[0], SAMPLE_LINES[1]])

        summary = ingest_partner(partner, store=store, channel=channel, work_dir=work_dir)

        assert summary["inserted"] == 2
        assert summary["duplicates"] == 1

    def test_bad_lines_are_skipped(self, store, channel, partner, work_dir):
        lines = [
            SAMPLE_LINES[0],
            "this is not a record",
            "4714,A,B,01,03.02.24",
            "abc,A,B,01,03.02.24,07:15:00",
            "4715,A,B,01,99.99.99,07:15:00",
            SAMPLE_LINES[1],
        ]
        write_source(channel, partner, lines)

        summary = ingest_partner(partner, store=store, channel=channel, work_dir=work_dir)

        assert summary["inserted"] == 2
        assert summary["rejected"] == 4
        assert [r.le for r in store.read_pending("MFR-H")] == [4711, 4712]

    def test_non_ascii_digits_rejected_without_stopping_file(self, store, channel, partner, work_dir):
        lines = ["4711,A,B,²,03.02.24,07:15:00", "٤٧١١,A,B,01,03.02.24,07:15:00", *SAMPLE_LINES]
        write_source(channel, partner, lines)

        summary = ingest_partner(partner, store=store, channel=channel, work_dir=work_dir)

        assert summary["rejected"] == 2
        assert summary["inserted"] == 3
        assert store.pending_count("MFR-H") == 3

    def test_blank_lines_ignored(self, store, channel, partner, work_dir):
        write_source(channel, partner, [SAMPLE_LINES[0], "", "   ", SAMPLE_LINES[1]])

        summary = ingest_partner(partner, store=store, channel=channel, work_dir=work_dir)

        assert summary["lines"] == 2
        assert summary["inserted"] == 2
        assert summary["rejected"] == 0

    def test_crlf_and_bom(self, store, channel, partner, work_dir):
        data = ("\ufeff" + "\r\n".join(SAMPLE_LINES) + "\r\n").encode("utf-8")
        channel.files[partner.source_file] = data

        summary = ingest_partner(partner, store=store, channel=channel, work_dir=work_dir)

        assert summary["inserted"] == 3
        assert store.read_pending("MFR-H")[0].le == 4711

    def test_empty_file(self, store, channel, partner, work_dir):
        channel.files[partner.source_file] = b""

        summary = ingest_partner(partner, store=store, channel=channel, work_dir=work_dir)

        assert summary["lines"] == 0
        assert summary["inserted"] == 0

    def test_staging_file_removed(self, store, channel, partner, work_dir):
        write_source(channel, partner, SAMPLE_LINES)

        ingest_partner(partner, store=store, channel=channel, work_dir=work_dir)

        assert not staging_path(work_dir, "ingest", partner, partner.source_file).exists()

    def test_download_failure_propagates(self, store, channel, partner, work_dir):
        channel.failures["download"] = failing()

        with pytest.raises(RemoteChannelError):
            ingest_partner(partner, store=store, channel=channel, work_dir=work_dir)

        assert store.pending_count("MFR-H") == 0

    def test_store_error_skips_line(self, store, channel, partner, work_dir, monkeypatch):
        write_source(channel, partner, SAMPLE_LINES)
        real_insert = store.insert

        def flaky_insert(partner_id, fields):
            if fields[0] == "4712":
                raise StoreError("constraint hiccup")
            return real_insert(partner_id, fields)

        monkeypatch.setattr(store, "insert", flaky_insert)

        summary = ingest_partner(partner, store=store, channel=channel, work_dir=work_dir)

        assert summary["inserted"] == 2
        assert summary["failed"] == 1

    def test_store_connection_loss_abandons_file(self, store, channel, partner, work_dir, monkeypatch):
        write_source(channel, partner, SAMPLE_LINES)

        def down(partner_id, fields):
            raise StoreConnectionError("server closed the connection")

        monkeypatch.setattr(store, "insert", down)

        with pytest.raises(StoreConnectionError):
            ingest_partner(partner, store=store, channel=channel, work_dir=work_dir)
        assert not staging_path(work_dir, "ingest", partner, partner.source_file).exists()

    def test_cancelled_before_download(self, store, channel, partner, work_dir):
        write_source(channel, partner, SAMPLE_LINES)
        token = CancelToken()
        token.cancel("test")

        with pytest.raises(SyncCancelledError):
            ingest_partner(partner, store=store, channel=channel, work_dir=work_dir, cancel=token)

        assert channel.calls == []


class TestRunIngestion:
    """Tests for the multi-partner ingestion pass."""

    def test_all_enabled_partners(self, store, work_dir, channels):
        partners = [make_partner("MFR-H"), make_partner("MFR-E"), make_partner("MFR-A", enabled=False)]
        for p in partners[:2]:
            ch = channels(p.partner_id, p.source)
            write_source(ch, p, SAMPLE_LINES)

        summary = run_ingestion(partners, store=store, work_dir=work_dir, channel_factory=channels)

        assert summary["purpose"] == "ingest"
        assert set(summary["partners"]) == {"MFR-H", "MFR-E"}
        assert all(r["status"] == "ok" for r in summary["partners"].values())
        assert store.pending_count("MFR-H") == 3
        assert store.pending_count("MFR-E") == 3
        assert "MFR-A" not in channels.created

    def test_failure_isolated_per_partner(self, store, work_dir, channels):
        bad, good = make_partner("MFR-H"), make_partner("MFR-E")
        channels(bad.partner_id, bad.source).failures["download"] = failing("timed out")
        write_source(channels(good.partner_id, good.source), good, SAMPLE_LINES)

        summary = run_ingestion([bad, good], store=store, work_dir=work_dir, channel_factory=channels)

        assert summary["partners"]["MFR-H"]["status"] == "failed"
        assert "timed out" in summary["partners"]["MFR-H"]["error"]
        assert summary["partners"]["MFR-E"]["status"] == "ok"
        assert store.pending_count("MFR-E") == 3

    def test_missing_source_file(self, store, work_dir, channels):
        partner = make_partner("MFR-H")

        summary = run_ingestion([partner], store=store, work_dir=work_dir, channel_factory=channels)

        assert summary["partners"]["MFR-H"]["status"] == "failed"
        assert summary["partners"]["MFR-H"]["error_type"] == "not_found"

    def test_busy_partner_is_skipped(self, store, work_dir, channels):
        partner = make_partner("MFR-H")
        locks = KeyedLocks()

        with locks.single_flight(("MFR-H", "ingest")) as acquired:
            assert acquired
            summary = run_ingestion([partner], store=store, work_dir=work_dir, locks=locks, channel_factory=channels)

        assert summary["partners"]["MFR-H"]["status"] == "skipped"
        assert "MFR-H" not in channels.created

    def test_export_lock_does_not_block_ingest(self, store, work_dir, channels):
        partner = make_partner("MFR-H")
        write_source(channels(partner.partner_id, partner.source), partner, SAMPLE_LINES)
        locks = KeyedLocks()

        with locks.single_flight(("MFR-H", "export")):
            summary = run_ingestion([partner], store=store, work_dir=work_dir, locks=locks, channel_factory=channels)

        assert summary["partners"]["MFR-H"]["status"] == "ok"

    def test_cancelled_pass(self, store, work_dir, channels):
        token = CancelToken()
        token.cancel("shutdown")

        summary = run_ingestion(
            [make_partner("MFR-H"), make_partner("MFR-E")],
            store=store,
            work_dir=work_dir,
            cancel=token,
            channel_factory=channels,
        )

        assert {r["status"] for r in summary["partners"].values()} == {"cancelled"}
        assert channels.created == {}

    def test_unexpected_error_isolated(self, store, work_dir):
        def broken_factory(partner_id, endpoint):
            raise RuntimeError("factory exploded")

        summary = run_ingestion([make_partner("MFR-H")], store=store, work_dir=work_dir, channel_factory=broken_factory)

        assert summary["partners"]["MFR-H"]["status"] == "failed"
        assert summary["partners"]["MFR-H"]["error_type"] == "RuntimeError"

    def test_source_endpoint_used(self, store, work_dir):
        from dataclasses import replace

        from galedi.config.settings import EndpointConfig

        source = EndpointConfig(url="sftp://source.example/out", username="reader", password="pw")
        partner = replace(make_partner("MFR-H"), source=source)
        seen = []

        def factory(partner_id, endpoint):
            seen.append(endpoint)
            ch = FakeRemoteChannel(partner_id, endpoint)
            write_source(ch, partner, SAMPLE_LINES)
            return ch

        run_ingestion([partner], store=store, work_dir=work_dir, channel_factory=factory)

        assert seen == [source]
