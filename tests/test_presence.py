"""
PeerChat - Presence signaling tests.

Created by orpheus497

Tests for the local typing debounce and the remote typing state.
"""

import asyncio

import pytest

from peerchat.constants import REMOTE_USER_PLACEHOLDER
from peerchat.presence import PresenceSignaling
from peerchat.protocol import FrameType

IDLE = 0.05


def _presence(sent_frames, connected=True, name="alice"):
    def send_frame(frame):
        if not connected:
            return False
        sent_frames.append(frame)
        return True

    return PresenceSignaling(send_frame, display_name=name, idle_timeout=IDLE)


def _types(frames):
    return [f["type"] for f in frames]


@pytest.mark.asyncio
async def test_burst_sends_one_typing_then_stop(sent_frames):
    """Test a keystroke burst sends typing once and stop-typing after idle."""
    presence = _presence(sent_frames)

    for _ in range(5):
        presence.keystroke()
        await asyncio.sleep(IDLE / 5)

    assert _types(sent_frames) == [FrameType.TYPING.value]
    assert sent_frames[0]["user"] == "alice"
    assert presence.timer_armed

    await asyncio.sleep(IDLE * 3)

    assert _types(sent_frames) == [FrameType.TYPING.value, FrameType.STOP_TYPING.value]
    assert not presence.timer_armed


@pytest.mark.asyncio
async def test_new_burst_after_idle(sent_frames):
    """Test typing is sent again once the previous burst ended."""
    presence = _presence(sent_frames)

    presence.keystroke()
    await asyncio.sleep(IDLE * 3)
    presence.keystroke()

    assert _types(sent_frames) == [
        FrameType.TYPING.value,
        FrameType.STOP_TYPING.value,
        FrameType.TYPING.value,
    ]
    presence.cancel()


@pytest.mark.asyncio
async def test_message_sent_cancels_timer(sent_frames):
    """Test sending a message ends the burst with no stray stop-typing later."""
    presence = _presence(sent_frames)

    presence.keystroke()
    presence.message_sent()

    assert not presence.timer_armed
    assert _types(sent_frames) == [FrameType.TYPING.value, FrameType.STOP_TYPING.value]

    await asyncio.sleep(IDLE * 3)

    assert _types(sent_frames) == [FrameType.TYPING.value, FrameType.STOP_TYPING.value]


@pytest.mark.asyncio
async def test_message_sent_without_burst_sends_nothing(sent_frames):
    """Test a message sent without typing produces no presence frames."""
    presence = _presence(sent_frames)

    presence.message_sent()

    assert sent_frames == []


@pytest.mark.asyncio
async def test_keystroke_without_channel(sent_frames):
    """Test keystrokes with no open channel arm nothing."""
    presence = _presence(sent_frames, connected=False)

    presence.keystroke()

    assert not presence.timer_armed
    await asyncio.sleep(IDLE * 2)
    assert sent_frames == []


@pytest.mark.asyncio
async def test_cancel_sends_nothing(sent_frames):
    """Test cancel stops the timer silently."""
    presence = _presence(sent_frames)

    presence.keystroke()
    presence.cancel()
    await asyncio.sleep(IDLE * 3)

    assert _types(sent_frames) == [FrameType.TYPING.value]


def test_remote_typing_toggles():
    """Test typing and stop-typing frames drive the remote indicator."""
    presence = PresenceSignaling(lambda frame: True)
    changes = []
    presence.on_change = lambda: changes.append(presence.is_remote_typing)

    presence.handle_typing({"type": "typing", "user": "bob"})
    assert presence.is_remote_typing
    assert presence.remote_display_name == "bob"

    presence.handle_typing({"type": "typing", "user": "bob"})
    assert presence.is_remote_typing

    presence.handle_stop_typing({"type": "stop-typing"})
    assert not presence.is_remote_typing
    assert changes == [True, True, False]


def test_remote_typing_without_name():
    """Test a typing frame without a user falls back to a placeholder."""
    presence = PresenceSignaling(lambda frame: True)

    presence.handle_typing({"type": "typing"})

    assert presence.remote_display_name == REMOTE_USER_PLACEHOLDER


def test_user_info_sets_name():
    """Test user-info updates the remote display name."""
    presence = PresenceSignaling(lambda frame: True)

    presence.handle_user_info({"type": "user-info", "name": "carol"})

    assert presence.remote_display_name == "carol"
    assert not presence.is_remote_typing


@pytest.mark.asyncio
async def test_reset_clears_remote_and_timer(sent_frames):
    """Test reset clears remote typing and cancels the local burst."""
    presence = _presence(sent_frames)
    presence.handle_typing({"type": "typing", "user": "bob"})
    presence.keystroke()

    presence.reset()
    await asyncio.sleep(IDLE * 3)

    assert not presence.is_remote_typing
    assert not presence.timer_armed
    assert _types(sent_frames) == [FrameType.TYPING.value]


def test_change_callback_errors_are_contained():
    """Test a failing change callback does not break frame handling."""
    presence = PresenceSignaling(lambda frame: True)

    def broken():
        raise RuntimeError("ui gone")

    presence.on_change = broken
    presence.handle_typing({"type": "typing", "user": "bob"})

    assert presence.is_remote_typing
