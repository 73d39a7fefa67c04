"""
PeerChat - Typing and display-name signaling.

Created by orpheus497

Presence frames travel unencrypted on the same channel as messages and carry
only a flag and a display name. They are fire-and-forget: there is no
acknowledgment, so the remote view is eventually consistent at best.

The local side debounces keystrokes into typing bursts. The first keystroke
of a burst sends "typing"; every keystroke re-arms an idle timer, and when
the timer fires "stop-typing" is sent. The timer is the session's only
schedulable resource and must be cancelled on send, disconnect and teardown.
"""

import asyncio
import logging
from typing import Any, Callable, Dict, Optional

from .constants import REMOTE_USER_PLACEHOLDER, TYPING_IDLE_TIMEOUT
from .protocol import Protocol

logger = logging.getLogger(__name__)


class PresenceSignaling:
    """Local typing debounce plus the remote presence state."""

    def __init__(
        self,
        send_frame: Callable[[Dict[str, Any]], bool],
        display_name: str = "",
        idle_timeout: float = TYPING_IDLE_TIMEOUT,
    ):
        """
        Args:
            send_frame: Sends a frame on the active channel; returns False
                when there is no open channel
            display_name: Local name announced in typing frames
            idle_timeout: Seconds without a keystroke before stop-typing
        """
        self._send_frame = send_frame
        self.display_name = display_name
        self.idle_timeout = idle_timeout

        self.remote_display_name: Optional[str] = None
        self.is_remote_typing = False

        self._idle_handle: Optional[asyncio.TimerHandle] = None

        self.on_change: Optional[Callable[[], None]] = None

    @property
    def timer_armed(self) -> bool:
        """True while a local typing burst is in progress."""
        return self._idle_handle is not None

    def keystroke(self) -> None:
        """Register one local keystroke."""
        if self._idle_handle is None:
            if not self._send_frame(Protocol.create_typing(self.display_name)):
                return
        else:
            self._idle_handle.cancel()

        loop = asyncio.get_running_loop()
        self._idle_handle = loop.call_later(self.idle_timeout, self._on_idle_timeout)

    def _on_idle_timeout(self) -> None:
        self._idle_handle = None
        logger.debug("Typing idle timeout, sending stop-typing")
        self._send_frame(Protocol.create_stop_typing())

    def message_sent(self) -> None:
        """End the typing burst because a message went out."""
        if self._idle_handle is None:
            return
        self._idle_handle.cancel()
        self._idle_handle = None
        self._send_frame(Protocol.create_stop_typing())

    def cancel(self) -> None:
        """Cancel the idle timer without sending anything."""
        if self._idle_handle is not None:
            self._idle_handle.cancel()
            self._idle_handle = None
            logger.debug("Typing idle timer cancelled")

    def handle_typing(self, frame: Dict[str, Any]) -> None:
        user = frame.get("user")
        self.remote_display_name = user if isinstance(user, str) and user else REMOTE_USER_PLACEHOLDER
        self.is_remote_typing = True
        self._changed()

    def handle_stop_typing(self, frame: Dict[str, Any]) -> None:
        self.is_remote_typing = False
        self._changed()

    def handle_user_info(self, frame: Dict[str, Any]) -> None:
        self.remote_display_name = frame["name"]
        self._changed()

    def reset(self) -> None:
        """Forget remote typing state and stop the local timer."""
        self.cancel()
        if self.is_remote_typing:
            self.is_remote_typing = False
            self._changed()

    def _changed(self) -> None:
        if self.on_change:
            try:
                self.on_change()
            except Exception as e:
                logger.error(f"Presence change callback error: {e}")
