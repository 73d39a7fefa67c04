"""
PeerChat - Message log tests.

Created by orpheus497

Tests for chat entries and the append-only message log.
"""

import dataclasses

import pytest

from peerchat.message import ChatEntry, EntryKind, MessageLog, Sender


def test_entries_keep_append_order():
    """Test entries come back in the order they were added."""
    log = MessageLog()

    log.add_system("Encryption key received")
    log.add_local("hello")
    log.add_remote("hi")

    assert [e.sender for e in log] == [Sender.SYSTEM, Sender.LOCAL, Sender.REMOTE]
    assert [e.text for e in log.entries] == ["Encryption key received", "hello", "hi"]
    assert len(log) == 3
    assert log.last().text == "hi"


def test_entries_are_immutable():
    """Test an appended entry cannot be edited."""
    log = MessageLog()
    entry = log.add_local("hello")

    with pytest.raises(dataclasses.FrozenInstanceError):
        entry.text = "edited"


def test_entries_snapshot_is_read_only():
    """Test the entries view cannot be used to modify the log."""
    log = MessageLog()
    log.add_local("hello")

    snapshot = log.entries
    assert isinstance(snapshot, tuple)

    log.add_local("again")
    assert len(snapshot) == 1
    assert len(log) == 2


def test_remote_error_placeholder():
    """Test an undecryptable message is recorded as a remote error entry."""
    log = MessageLog()

    entry = log.add_remote_error("Decryption Error")

    assert entry.sender == Sender.REMOTE
    assert entry.kind == EntryKind.ERROR
    assert entry.is_error
    assert log.errors() == [entry]
    assert log.by_sender(Sender.REMOTE) == [entry]


def test_listeners_notified():
    """Test subscribers see each new entry and can unsubscribe."""
    log = MessageLog()
    seen = []
    log.subscribe(seen.append)

    first = log.add_local("one")
    log.unsubscribe(seen.append)
    log.add_local("two")

    assert seen == [first]


def test_listener_error_does_not_block_append():
    """Test a failing listener does not stop the entry from being stored."""
    log = MessageLog()

    def broken(entry):
        raise RuntimeError("display gone")

    log.subscribe(broken)
    log.add_remote("hi")

    assert len(log) == 1


def test_entry_dict_round_trip():
    """Test entries serialize to plain dictionaries."""
    entry = ChatEntry(Sender.REMOTE, "hi", kind=EntryKind.ERROR)

    data = entry.to_dict()

    assert data["sender"] == "remote"
    assert data["kind"] == "error"
    assert ChatEntry.from_dict(data) == entry


def test_entry_defaults():
    """Test new entries get a unique id and a UTC timestamp."""
    a = ChatEntry(Sender.LOCAL, "x")
    b = ChatEntry(Sender.LOCAL, "x")

    assert a.entry_id != b.entry_id
    assert a.kind == EntryKind.TEXT
    assert a.timestamp.endswith("+00:00")
