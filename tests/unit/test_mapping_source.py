"""Tests for the in-memory mapping source and mapping file loader."""

from __future__ import annotations

import ipaddress
import threading
from typing import TYPE_CHECKING

import pytest

from tests.helpers.mappings import make_mapping
from vipbroker.ipc.errors import ParseError
from vipbroker.mapping import InMemoryMappingSource, load_mappings

if TYPE_CHECKING:
    from pathlib import Path

    from vipbroker.events import VipMapping


class Recorder:
    def __init__(self, *, keep: bool = True) -> None:
        self.events: list[tuple[bool, VipMapping]] = []
        self.keep = keep

    def __call__(self, up: bool, mapping: VipMapping) -> bool:
        self.events.append((up, mapping))
        return self.keep


class TestLookup:
    def test_dump_visits_every_mapping_once(self, source: InMemoryMappingSource) -> None:
        mappings = [make_mapping(vip=f"10.3.0.{i}") for i in range(1, 6)]
        for mapping in mappings:
            source.assign(mapping)
        recorder = Recorder()

        source.lookup(None, recorder)

        assert sorted(m.vip for _, m in recorder.events) == sorted(m.vip for m in mappings)
        assert all(up for up, _ in recorder.events)

    def test_filtered_lookup_only_visits_match(self, source: InMemoryMappingSource) -> None:
        source.assign(make_mapping(vip="10.3.0.1"))
        source.assign(make_mapping(vip="10.3.0.2"))
        recorder = Recorder()

        source.lookup(ipaddress.ip_address("10.3.0.2"), recorder)

        assert [str(m.vip) for _, m in recorder.events] == ["10.3.0.2"]

    def test_unknown_vip_visits_nothing(self, source: InMemoryMappingSource) -> None:
        source.assign(make_mapping(vip="10.3.0.1"))
        recorder = Recorder()

        source.lookup(ipaddress.ip_address("10.0.0.5"), recorder)

        assert recorder.events == []

    def test_lookup_stops_when_listener_returns_false(
        self, source: InMemoryMappingSource
    ) -> None:
        for i in range(1, 4):
            source.assign(make_mapping(vip=f"10.3.0.{i}"))
        recorder = Recorder(keep=False)

        source.lookup(None, recorder)

        assert len(recorder.events) == 1

    def test_lookup_does_not_register_listener(self, source: InMemoryMappingSource) -> None:
        source.lookup(None, Recorder())

        assert source.listener_count == 0


class TestEvents:
    def test_listener_sees_assign_and_release_in_order(
        self, source: InMemoryMappingSource
    ) -> None:
        recorder = Recorder()
        source.add_listener(recorder)
        mapping = make_mapping()

        source.assign(mapping)
        released = source.release(mapping.vip)

        assert released == mapping
        assert recorder.events == [(True, mapping), (False, mapping)]

    def test_reassignment_releases_previous_holder(self, source: InMemoryMappingSource) -> None:
        recorder = Recorder()
        source.add_listener(recorder)
        first = make_mapping(identity="carol")
        second = make_mapping(identity="dave")

        source.assign(first)
        source.assign(second)

        assert recorder.events == [(True, first), (False, first), (True, second)]
        assert source.mappings() == [second]

    def test_release_of_unknown_vip_fires_nothing(self, source: InMemoryMappingSource) -> None:
        recorder = Recorder()
        source.add_listener(recorder)

        assert source.release(ipaddress.ip_address("10.9.9.9")) is None
        assert recorder.events == []

    def test_listener_returning_false_is_dropped(self, source: InMemoryMappingSource) -> None:
        recorder = Recorder(keep=False)
        source.add_listener(recorder)

        source.assign(make_mapping(vip="10.3.0.1"))
        source.assign(make_mapping(vip="10.3.0.2"))

        assert len(recorder.events) == 1
        assert source.listener_count == 0

    def test_raising_listener_is_dropped_and_others_still_run(
        self, source: InMemoryMappingSource
    ) -> None:
        def broken(up: bool, mapping: VipMapping) -> bool:
            raise RuntimeError("boom")

        recorder = Recorder()
        source.add_listener(broken)
        source.add_listener(recorder)

        source.assign(make_mapping())

        assert len(recorder.events) == 1
        assert source.listener_count == 1

    def test_remove_listener(self, source: InMemoryMappingSource) -> None:
        recorder = Recorder()
        source.add_listener(recorder)
        source.remove_listener(recorder)

        source.assign(make_mapping())

        assert recorder.events == []

    def test_remove_listener_waits_for_in_flight_callback(
        self, source: InMemoryMappingSource
    ) -> None:
        entered = threading.Event()
        release = threading.Event()
        finished: list[str] = []

        def slow(up: bool, mapping: VipMapping) -> bool:
            entered.set()
            release.wait(timeout=5)
            finished.append("callback")
            return True

        source.add_listener(slow)
        firing = threading.Thread(target=source.assign, args=(make_mapping(),))
        firing.start()
        assert entered.wait(timeout=5)

        remover = threading.Thread(
            target=lambda: (source.remove_listener(slow), finished.append("removed"))
        )
        remover.start()
        remover.join(timeout=0.1)
        assert remover.is_alive()

        release.set()
        firing.join(timeout=5)
        remover.join(timeout=5)
        assert finished == ["callback", "removed"]

    def test_closed_source_ignores_new_listeners(self, source: InMemoryMappingSource) -> None:
        recorder = Recorder()
        source.close()
        source.add_listener(recorder)

        source.assign(make_mapping())

        assert recorder.events == []
        assert source.listener_count == 0


class TestLoadMappings:
    def test_loads_tables(self, tmp_path: Path) -> None:
        path = tmp_path / "mappings.toml"
        path.write_text(
            "[[mapping]]\n"
            'vip = "10.3.0.1"\n'
            'peer = "192.0.2.10"\n'
            'identity = "carol@strongswan.org"\n'
            'name = "home"\n'
            "\n"
            "[[mapping]]\n"
            'vip = "fec3::1"\n'
            'peer = "2001:db8::10"\n',
            encoding="utf-8",
        )

        mappings = load_mappings(path)

        assert mappings[0] == make_mapping()
        assert str(mappings[1].vip) == "fec3::1"
        assert mappings[1].identity == "2001:db8::10"
        assert mappings[1].name == ""

    def test_missing_key_is_reported(self, tmp_path: Path) -> None:
        path = tmp_path / "mappings.toml"
        path.write_text('[[mapping]]\nvip = "10.3.0.1"\n', encoding="utf-8")

        with pytest.raises(ValueError, match="missing 'peer'"):
            load_mappings(path)

    def test_bad_address_is_a_parse_error(self, tmp_path: Path) -> None:
        path = tmp_path / "mappings.toml"
        path.write_text('[[mapping]]\nvip = "nope"\npeer = "192.0.2.1"\n', encoding="utf-8")

        with pytest.raises(ParseError):
            load_mappings(path)

    def test_empty_file_has_no_mappings(self, tmp_path: Path) -> None:
        path = tmp_path / "mappings.toml"
        path.write_text("", encoding="utf-8")

        assert load_mappings(path) == []
