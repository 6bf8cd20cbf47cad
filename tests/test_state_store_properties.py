"""
Property-based tests for the cooldown State Store.

Uses Hypothesis for property-based testing of eligibility, persistence
round-trips and the fallback write path.
"""

import json
import os
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

from hypothesis import given, settings
from hypothesis import strategies as st

from ssl_cert_monitor.exceptions import PersistenceError
from ssl_cert_monitor.state_store import FALLBACK_FILENAME, StateStore


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now = self.now + delta


# Strategies for generating test data

@st.composite
def domain_strategy(draw) -> str:
    """Generate valid host names."""
    sld = draw(st.text(
        alphabet=st.sampled_from("abcdefghijklmnopqrstuvwxyz0123456789"),
        min_size=1,
        max_size=20,
    ))
    tld = draw(st.sampled_from(["de", "com", "net", "org", "eu"]))
    return f"{sld}.{tld}"


threshold_strategy = st.integers(min_value=1, max_value=365)

utc_datetime_strategy = st.datetimes(
    min_value=datetime(2000, 1, 1),
    max_value=datetime(2100, 1, 1),
    timezones=st.just(timezone.utc),
)


class TestFreshStoreProperty:
    """Property 1: A store without entries allows every pair to send."""

    @given(domain=domain_strategy(), threshold=threshold_strategy)
    @settings(max_examples=100)
    def test_fresh_store_allows_send(self, domain: str, threshold: int) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            store = StateStore(Path(tmpdir) / "state.json", cooldown_hours=24)

            assert store.should_send(domain, threshold)
            assert store.get_last_sent(domain, threshold) is None

    def test_missing_file_is_empty_store(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            file_path = Path(tmpdir) / "does" / "not" / "exist.json"
            store = StateStore(file_path, cooldown_hours=24)

            assert store.entries == {}
            assert not file_path.exists()

    def test_memory_only_store_never_writes(self) -> None:
        store = StateStore(None, cooldown_hours=24)

        result = store.mark_sent("a.com", 30)

        assert result.path is None
        assert not result.used_fallback
        assert not store.should_send("a.com", 30)


class TestCooldownProperty:
    """Property 2: A marked pair is suppressed until the cooldown has passed."""

    @given(
        domain=domain_strategy(),
        threshold=threshold_strategy,
        cooldown_hours=st.integers(min_value=1, max_value=24 * 30),
        start=utc_datetime_strategy,
    )
    @settings(max_examples=100)
    def test_mark_sent_suppresses_until_cooldown_elapses(
        self, domain: str, threshold: int, cooldown_hours: int, start: datetime
    ) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            clock = FakeClock(start)
            store = StateStore(Path(tmpdir) / "state.json", cooldown_hours, clock=clock)

            store.mark_sent(domain, threshold)
            assert not store.should_send(domain, threshold)

            # Exactly at the boundary the cooldown still holds
            clock.advance(timedelta(hours=cooldown_hours))
            assert not store.should_send(domain, threshold)

            clock.advance(timedelta(microseconds=1))
            assert store.should_send(domain, threshold)

    @given(
        domain=domain_strategy(),
        marked=threshold_strategy,
        other=threshold_strategy,
    )
    @settings(max_examples=100)
    def test_cooldown_is_per_threshold(self, domain: str, marked: int, other: int) -> None:
        if marked == other:
            return
        store = StateStore(None, cooldown_hours=24)

        store.mark_sent(domain, marked)

        assert not store.should_send(domain, marked)
        assert store.should_send(domain, other)
        assert store.should_send(f"other-{domain}", marked)

    @given(cooldown_hours=st.floats(min_value=0, max_value=24 * 365, allow_nan=False))
    @settings(max_examples=50)
    def test_cooldown_property_reflects_configured_hours(self, cooldown_hours: float) -> None:
        store = StateStore(None, cooldown_hours=cooldown_hours)

        assert store.cooldown == timedelta(hours=cooldown_hours)

    def test_zero_cooldown_allows_immediate_resend_after_time_moves(self) -> None:
        clock = FakeClock(datetime(2026, 1, 1, tzinfo=timezone.utc))
        store = StateStore(None, cooldown_hours=0, clock=clock)

        store.mark_sent("a.com", 7)
        assert not store.should_send("a.com", 7)

        clock.advance(timedelta(seconds=1))
        assert store.should_send("a.com", 7)


class TestMarkSentIdempotenceProperty:
    """Property 3: Repeated marks overwrite, never accumulate."""

    @given(
        domain=domain_strategy(),
        threshold=threshold_strategy,
        gap_seconds=st.integers(min_value=0, max_value=3600),
    )
    @settings(max_examples=100)
    def test_double_mark_keeps_single_latest_entry(
        self, domain: str, threshold: int, gap_seconds: int
    ) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            file_path = Path(tmpdir) / "state.json"
            clock = FakeClock(datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc))
            store = StateStore(file_path, 24, clock=clock)

            store.mark_sent(domain, threshold)
            clock.advance(timedelta(seconds=gap_seconds))
            store.mark_sent(domain, threshold)

            assert store.entries == {domain: {threshold: clock.now}}

            with open(file_path, "r", encoding="utf-8") as f:
                raw = json.load(f)
            assert list(raw["entries"][domain].keys()) == [str(threshold)]


class TestStateRoundTripProperty:
    """Property 4: Persisted entries reload with exact timestamps."""

    def test_round_trip_two_thresholds(self) -> None:
        t1 = datetime(2026, 5, 4, 10, 11, 12, 345678, tzinfo=timezone.utc)
        t2 = datetime(2026, 5, 20, 23, 59, 59, 1, tzinfo=timezone.utc)
        times = iter([t1, t2])

        with tempfile.TemporaryDirectory() as tmpdir:
            file_path = Path(tmpdir) / "state.json"
            store = StateStore(file_path, 24, clock=lambda: next(times))
            store.mark_sent("a.com", 30)
            store.mark_sent("a.com", 7)

            reloaded = StateStore(file_path, 24)

            assert reloaded.get_last_sent("a.com", 30) == t1
            assert reloaded.get_last_sent("a.com", 7) == t2
            assert reloaded.entries == {"a.com": {30: t1, 7: t2}}

    @given(
        marks=st.dictionaries(
            keys=st.tuples(domain_strategy(), threshold_strategy),
            values=utc_datetime_strategy,
            min_size=1,
            max_size=10,
        ),
    )
    @settings(max_examples=100)
    def test_round_trip_preserves_all_entries(self, marks: dict) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            file_path = Path(tmpdir) / "state.json"
            clock = FakeClock(datetime(2026, 1, 1, tzinfo=timezone.utc))
            store = StateStore(file_path, 24, clock=clock)

            for (domain, threshold), sent_at in marks.items():
                clock.now = sent_at
                store.mark_sent(domain, threshold)

            reloaded = StateStore(file_path, 24)

            for (domain, threshold), sent_at in marks.items():
                assert reloaded.get_last_sent(domain, threshold) == sent_at
            assert reloaded.entries == store.entries

    def test_file_is_indented_json(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            file_path = Path(tmpdir) / "state.json"
            clock = FakeClock(datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc))
            store = StateStore(file_path, 24, clock=clock)
            store.mark_sent("example.com", 14)

            text = file_path.read_text(encoding="utf-8")

            assert '\n  "entries": {' in text
            assert json.loads(text) == {
                "entries": {"example.com": {"14": "2026-01-02T03:04:05.000000+00:00"}}
            }

    def test_no_temporary_files_left_behind(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            store = StateStore(Path(tmpdir) / "state.json", 24)
            store.mark_sent("a.com", 1)
            store.mark_sent("b.com", 2)

            assert os.listdir(tmpdir) == ["state.json"]


class TestClearProperty:
    """Property 5: Clearing empties memory and disk."""

    @given(
        pairs=st.lists(
            st.tuples(domain_strategy(), threshold_strategy), min_size=1, max_size=5
        ),
    )
    @settings(max_examples=50)
    def test_clear_resets_everything(self, pairs: list) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            file_path = Path(tmpdir) / "state.json"
            store = StateStore(file_path, 24)
            for domain, threshold in pairs:
                store.mark_sent(domain, threshold)

            store.clear()

            assert store.entries == {}
            for domain, threshold in pairs:
                assert store.should_send(domain, threshold)
            assert StateStore(file_path, 24).entries == {}


class TestMalformedStateProperty:
    """Property 6: A malformed state file is a fatal construction error."""

    def _write(self, tmpdir: str, content: str) -> Path:
        file_path = Path(tmpdir) / "state.json"
        file_path.write_text(content, encoding="utf-8")
        return file_path

    def _assert_rejected(self, content: str, code: str) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            file_path = self._write(tmpdir, content)
            try:
                StateStore(file_path, 24)
                assert False, "Expected PersistenceError"
            except PersistenceError as e:
                assert e.code == code

    def test_invalid_json_rejected(self) -> None:
        self._assert_rejected("{not json", "parse_error")

    def test_non_object_document_rejected(self) -> None:
        self._assert_rejected("[1, 2, 3]", "invalid_format")

    def test_non_object_entries_rejected(self) -> None:
        self._assert_rejected('{"entries": ["a.com"]}', "invalid_format")

    def test_bad_threshold_rejected(self) -> None:
        self._assert_rejected(
            '{"entries": {"a.com": {"soon": "2026-01-01T00:00:00+00:00"}}}',
            "invalid_format",
        )

    def test_bad_timestamp_rejected(self) -> None:
        self._assert_rejected(
            '{"entries": {"a.com": {"7": "yesterday"}}}',
            "invalid_format",
        )

    def test_null_sections_are_empty(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            file_path = self._write(tmpdir, '{"entries": {"a.com": null}}')
            store = StateStore(file_path, 24)

            assert store.should_send("a.com", 7)

    def test_naive_timestamps_are_read_as_utc(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            file_path = self._write(
                tmpdir, '{"entries": {"a.com": {"7": "2026-01-01T00:00:00"}}}'
            )
            store = StateStore(file_path, 24)

            assert store.get_last_sent("a.com", 7) == datetime(2026, 1, 1, tzinfo=timezone.utc)


class TestFallbackWriteProperty:
    """Property 7: Unwritable locations redirect to the working directory."""

    def test_uncreatable_directory_uses_basename_in_cwd(self, tmp_path, monkeypatch) -> None:
        monkeypatch.chdir(tmp_path)
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory", encoding="utf-8")
        requested = blocker / "nested" / "monitor-state.json"
        store = StateStore(requested, 24)

        result = store.mark_sent("a.com", 30)

        assert result.used_fallback
        assert result.fallback_from == requested
        assert result.path == tmp_path / "monitor-state.json"
        assert store.file_path == tmp_path / "monitor-state.json"
        assert "a.com" in json.loads(result.path.read_text(encoding="utf-8"))["entries"]

    def test_fallback_is_permanent_for_the_process(self, tmp_path, monkeypatch) -> None:
        monkeypatch.chdir(tmp_path)
        blocker = tmp_path / "blocker"
        blocker.write_text("", encoding="utf-8")
        store = StateStore(blocker / "state.json", 24)

        store.mark_sent("a.com", 30)
        second = store.mark_sent("a.com", 7)

        # Later writes go straight to the redirected path
        assert second.path == tmp_path / "state.json"
        assert not second.used_fallback

    def test_unwritable_file_uses_fixed_fallback_name(self, tmp_path, monkeypatch) -> None:
        monkeypatch.chdir(tmp_path)
        requested = tmp_path / "state" / "state.json"
        store = StateStore(requested, 24)
        # A directory where the file should be makes the final rename fail
        requested.mkdir(parents=True)

        result = store.mark_sent("a.com", 14)

        assert result.used_fallback
        assert result.path == tmp_path / FALLBACK_FILENAME
        assert StateStore(tmp_path / FALLBACK_FILENAME, 24).get_last_sent("a.com", 14) is not None

    def test_total_write_failure_keeps_in_memory_mark(self, tmp_path, monkeypatch) -> None:
        monkeypatch.chdir(tmp_path)
        requested = tmp_path / "state" / "state.json"
        store = StateStore(requested, 24)
        requested.mkdir(parents=True)
        (tmp_path / FALLBACK_FILENAME).mkdir()

        try:
            store.mark_sent("a.com", 7)
            assert False, "Expected PersistenceError"
        except PersistenceError as e:
            assert e.code == "io_error"

        assert not store.should_send("a.com", 7)
