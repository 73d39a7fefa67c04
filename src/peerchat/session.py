"""
PeerChat - Peer session: the unit of construction and teardown.

Created by orpheus497

A PeerSession owns one transport provider, at most one active channel and
one key slot. It wires transport events into the state machine, the key
exchange, the secure channel, presence signaling and the message log.

Every provider and channel event is pushed onto one queue and handled by a
single dispatcher task, so frames are processed strictly in arrival order
and a Message frame is fully decrypted before its entry is appended.
"""

import asyncio
import contextlib
import functools
import logging
from typing import Any, Callable, Dict, Optional

from .connection_fsm import ConnectionEvent, ConnectionState, ConnectionStateMachine
from .constants import (
    MAX_DISPLAY_NAME_LENGTH,
    MAX_TEXT_MESSAGE_SIZE,
    NOTIFY_CONNECTION_ESTABLISHED,
    NOTIFY_EMPTY_MESSAGE,
    NOTIFY_ENTER_PEER_ID,
    NOTIFY_KEY_GENERATION_FAILED,
    NOTIFY_KEY_IMPORT_FAILED,
    NOTIFY_MESSAGE_TOO_LONG,
    NOTIFY_NEW_MESSAGE,
    NOTIFY_NO_CONNECTION,
    TEXT_CONNECTION_CLOSED,
    TEXT_CONNECTION_ERROR,
    TEXT_DECRYPTION_ERROR,
    TEXT_ERROR,
    TEXT_KEY_RECEIVED,
    TEXT_KEY_SENT,
    TYPING_IDLE_TIMEOUT,
)
from .crypto import KeyExchange, SecureChannel
from .errors import (
    DecryptionError,
    ErrorCode,
    KeyGenerationError,
    KeyImportError,
    NoKeyError,
    ProtocolError,
    TransportError,
    ValidationError,
)
from .message import ChatEntry, MessageLog
from .presence import PresenceSignaling
from .protocol import FrameType, Protocol
from .transport import Channel, TransportProvider

logger = logging.getLogger(__name__)


def _error_text(error: Any) -> str:
    return getattr(error, "message", None) or str(error)


class PeerSession:
    """
    One end of a direct encrypted chat.

    Attributes:
        provider: Transport provider owned by this session
        peer_id: Local identity, assigned once by the provider
        remote_id: Identity of the peer on the current or last channel
        channel: The single active channel, or None
        fsm: Connection lifecycle state machine
        key_exchange: Owner of the symmetric key slot
        secure_channel: Message encryption with the current key
        presence: Typing debounce and remote presence state
        log: Append-only message log
    """

    def __init__(
        self,
        provider: TransportProvider,
        display_name: str = "",
        typing_timeout: float = TYPING_IDLE_TIMEOUT,
    ):
        self.provider = provider
        self.display_name = display_name
        self.peer_id: Optional[str] = None
        self.remote_id: Optional[str] = None
        self.channel: Optional[Channel] = None
        self.is_initiator = False
        self.destroyed = False

        self.fsm = ConnectionStateMachine()
        self.key_exchange = KeyExchange()
        self.secure_channel = SecureChannel(self.key_exchange)
        self.presence = PresenceSignaling(self._send_frame, display_name, typing_timeout)
        self.log = MessageLog()

        self._events: Optional[asyncio.Queue] = None
        self._dispatch_task: Optional[asyncio.Task] = None
        self._ready: Optional[asyncio.Event] = None

        # Callbacks for the display layer
        self.on_entry: Optional[Callable[[ChatEntry], None]] = None
        self.on_state_change: Optional[Callable[[ConnectionState, ConnectionState], None]] = None
        self.on_presence_change: Optional[Callable[[], None]] = None
        self.on_notification: Optional[Callable[[str], None]] = None

        self.fsm.on_state_change = self._fsm_state_changed
        self.presence.on_change = self._presence_changed
        self.log.subscribe(self._entry_added)

    # ------------------------------------------------------------------
    # Public state

    @property
    def state(self) -> ConnectionState:
        return self.fsm.get_state()

    @property
    def error_message(self) -> Optional[str]:
        return self.fsm.get_error_message()

    @property
    def is_connected(self) -> bool:
        return self.fsm.is_connected() and self.channel is not None

    @property
    def is_remote_typing(self) -> bool:
        return self.presence.is_remote_typing

    @property
    def remote_display_name(self) -> Optional[str]:
        return self.presence.remote_display_name

    # ------------------------------------------------------------------
    # Lifecycle

    async def open(self, local_id: Optional[str] = None) -> str:
        """
        Open the provider and wait for the local identity and key.

        Args:
            local_id: Identity to request from the provider (optional)

        Returns:
            The assigned peer identity

        Raises:
            ValidationError: If the session was already opened
            TransportError: If the provider failed before assigning an identity
        """
        if self._events is not None or self.destroyed:
            raise ValidationError(ErrorCode.E004_INVALID_STATE, "Session already opened")

        self._events = asyncio.Queue()
        self._ready = asyncio.Event()
        self._dispatch_task = asyncio.create_task(self._dispatch_loop())

        self.provider.on("open", functools.partial(self._enqueue, "provider-open", None))
        self.provider.on("connection", self._on_provider_connection)
        self.provider.on("error", functools.partial(self._enqueue, "provider-error", None))

        await self.provider.open(local_id)
        await self._ready.wait()

        if self.peer_id is None:
            raise TransportError(
                ErrorCode.E209_PROVIDER_NOT_OPEN,
                self.error_message or "Transport failed to open",
            )
        return self.peer_id

    async def connect(self, remote_id: str) -> Channel:
        """
        Start an outbound connection; this side's key becomes authoritative.

        Raises:
            ValidationError: Empty or own remote id, or a state that does
                not allow connecting; no transition happens
            TransportError: If the provider refused the attempt
        """
        remote_id = (remote_id or "").strip()
        if not remote_id:
            self._notify(NOTIFY_ENTER_PEER_ID)
            raise ValidationError(ErrorCode.E003_EMPTY_REMOTE_ID, "Remote peer ID is empty")
        if remote_id == self.peer_id:
            raise ValidationError(
                ErrorCode.E002_INVALID_ARGUMENT, "Cannot connect to own peer ID"
            )
        if not self.fsm.can_connect():
            raise ValidationError(
                ErrorCode.E004_INVALID_STATE,
                f"Cannot connect while {self.state.value}",
                {"state": self.state.value},
            )

        try:
            channel = self.provider.connect(remote_id)
        except TransportError as e:
            self.fsm.transition(ConnectionEvent.CONNECT_REQUESTED)
            self._record_error(TEXT_CONNECTION_ERROR, e)
            raise

        self.fsm.transition(ConnectionEvent.CONNECT_REQUESTED)
        self._replace_channel(channel, initiator=True)
        logger.info(f"Connecting to {remote_id}")
        return channel

    def disconnect(self) -> None:
        """Close the active channel, if any."""
        channel = self.channel
        if channel is None:
            return
        self._channel_closed()
        channel.close()

    async def destroy(self) -> None:
        """Tear the session down; the provider is released on every path."""
        if self.destroyed:
            return
        self.destroyed = True
        try:
            self.presence.cancel()
            channel, self.channel = self.channel, None
            if channel is not None:
                channel.close()
            self.key_exchange.clear()
            if self._dispatch_task is not None:
                self._dispatch_task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await self._dispatch_task
        finally:
            await self.provider.destroy()
            logger.info(f"Session {self.peer_id} destroyed")

    async def __aenter__(self) -> "PeerSession":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.destroy()

    async def drain(self) -> None:
        """Wait until every queued transport event has been handled."""
        if self._events is not None:
            await self._events.join()

    # ------------------------------------------------------------------
    # User actions

    async def send_message(self, text: str) -> Optional[ChatEntry]:
        """
        Encrypt and send a message, then record our plaintext.

        Returns:
            The Local entry, or None if the channel closed while encrypting

        Raises:
            ValidationError: If the text is empty or too long
            TransportError: If there is no open channel
            NoKeyError: If no key is established
        """
        if not text or not text.strip():
            self._notify(NOTIFY_EMPTY_MESSAGE)
            raise ValidationError(ErrorCode.E005_EMPTY_MESSAGE, "Message is empty")
        if len(text) > MAX_TEXT_MESSAGE_SIZE:
            self._notify(NOTIFY_MESSAGE_TOO_LONG)
            raise ValidationError(
                ErrorCode.E002_INVALID_ARGUMENT,
                f"Message too long: {len(text)} > {MAX_TEXT_MESSAGE_SIZE}",
            )

        channel = self.channel
        if channel is None or not channel.is_open:
            self._notify(NOTIFY_NO_CONNECTION)
            raise TransportError(ErrorCode.E203_CONNECTION_CLOSED, "Not connected to a peer")

        try:
            payload = await self.secure_channel.encrypt_message(text)
        except NoKeyError:
            self._notify(NOTIFY_NO_CONNECTION)
            raise

        if not self._is_current(channel):
            logger.debug("Channel closed during encryption, message discarded")
            return None

        channel.send(Protocol.create_message(payload))
        entry = self.log.add_local(text)
        self.presence.message_sent()
        return entry

    def notify_typing(self) -> None:
        """Register a local keystroke for typing signaling."""
        self.presence.keystroke()

    def set_display_name(self, name: str) -> None:
        """
        Change the local display name and announce it on an open channel.

        Raises:
            ValidationError: If the name is empty or too long
        """
        name = (name or "").strip()
        if not name:
            raise ValidationError(ErrorCode.E002_INVALID_ARGUMENT, "Display name is empty")
        if len(name) > MAX_DISPLAY_NAME_LENGTH:
            raise ValidationError(
                ErrorCode.E002_INVALID_ARGUMENT,
                f"Display name too long: {len(name)} > {MAX_DISPLAY_NAME_LENGTH}",
            )
        self.display_name = name
        self.presence.display_name = name
        self._send_frame(Protocol.create_user_info(name))

    # ------------------------------------------------------------------
    # Event plumbing

    def _enqueue(self, kind: str, channel: Optional[Channel], payload: Any = None) -> None:
        if self._events is None or self.destroyed:
            return
        self._events.put_nowait((kind, channel, payload))

    def _on_provider_connection(self, channel: Channel) -> None:
        # Subscribe before the channel can emit "open"
        self._subscribe(channel)
        self._enqueue("connection", channel)

    def _subscribe(self, channel: Channel) -> None:
        channel.on("open", functools.partial(self._enqueue, "open", channel))
        channel.on("data", functools.partial(self._enqueue, "data", channel))
        channel.on("close", functools.partial(self._enqueue, "close", channel))
        channel.on("error", functools.partial(self._enqueue, "error", channel))

    async def _dispatch_loop(self) -> None:
        logger.debug("Session dispatcher started")
        while True:
            kind, channel, payload = await self._events.get()
            try:
                await self._handle_event(kind, channel, payload)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Error handling '{kind}' event: {e}", exc_info=True)
            finally:
                self._events.task_done()

    async def _handle_event(self, kind: str, channel: Optional[Channel], payload: Any) -> None:
        if kind == "provider-open":
            await self._handle_provider_open(payload)
        elif kind == "provider-error":
            self._handle_provider_error(payload)
        elif kind == "connection":
            self._handle_inbound(channel)
        elif channel is not self.channel:
            logger.debug(f"Ignoring '{kind}' from inactive channel {channel!r}")
        elif kind == "open":
            await self._handle_channel_open(channel)
        elif kind == "data":
            await self._handle_frame(channel, payload)
        elif kind == "close":
            self._channel_closed()
        elif kind == "error":
            self._record_error(TEXT_CONNECTION_ERROR, payload)

    async def _handle_provider_open(self, peer_id: str) -> None:
        if self.peer_id is not None and peer_id != self.peer_id:
            logger.warning(f"Ignoring new identity {peer_id}, already assigned {self.peer_id}")
            return
        self.peer_id = peer_id
        assigned = self.fsm.transition(ConnectionEvent.PEER_ID_ASSIGNED)
        if not assigned or self.key_exchange.has_key:
            # Same identity announced again; the exchanged key stays
            logger.debug(f"Identity {peer_id} announced again, keeping current key")
            self._ready.set()
            return
        try:
            await self.key_exchange.generate_local_key()
        except KeyGenerationError as e:
            logger.error(f"Local key generation failed: {e}")
            self._notify(NOTIFY_KEY_GENERATION_FAILED)
        finally:
            self._ready.set()

    def _handle_provider_error(self, error: Any) -> None:
        self._record_error(TEXT_ERROR, error)
        if self.peer_id is None and self._ready is not None:
            self._ready.set()

    def _handle_inbound(self, channel: Channel) -> None:
        logger.info(f"Inbound connection from {channel.peer}")
        self._replace_channel(channel, initiator=False)

    def _replace_channel(self, channel: Channel, initiator: bool) -> None:
        previous = self.channel
        if previous is not None and previous is not channel:
            logger.warning(f"Replacing active channel to {previous.peer} with {channel.peer}")
            self.channel = None
            self.presence.reset()
            self.key_exchange.clear()
            previous.close()
        self.channel = channel
        self.remote_id = channel.peer
        self.is_initiator = initiator
        if initiator:
            self._subscribe(channel)

    async def _handle_channel_open(self, channel: Channel) -> None:
        if self.fsm.is_connected():
            logger.debug(f"Replacement channel to {channel.peer} open")
        elif not self.fsm.transition(ConnectionEvent.CHANNEL_OPENED):
            logger.warning(f"Channel to {channel.peer} opened in state {self.state.name}")
        self._notify(NOTIFY_CONNECTION_ESTABLISHED)

        if not self.is_initiator:
            return

        try:
            if not self.key_exchange.has_key:
                await self.key_exchange.generate_local_key()
            key_b64 = await self.key_exchange.export_key()
        except (KeyGenerationError, NoKeyError) as e:
            logger.error(f"Cannot send key to {channel.peer}: {e}")
            self._notify(NOTIFY_KEY_GENERATION_FAILED)
            return

        if not self._is_current(channel):
            logger.debug("Channel closed before key could be sent")
            return

        channel.send(Protocol.create_key(key_b64))
        if self.display_name:
            channel.send(Protocol.create_user_info(self.display_name))
        self.log.add_system(TEXT_KEY_SENT)

    async def _handle_frame(self, channel: Channel, frame: Any) -> None:
        try:
            ftype = Protocol.frame_type(frame)
        except ProtocolError as e:
            raw_type = frame.get("type") if isinstance(frame, dict) else None
            if raw_type == FrameType.MESSAGE.value:
                logger.warning(f"Malformed message frame from {channel.peer}: {e.message}")
                self.log.add_remote_error(TEXT_DECRYPTION_ERROR)
            elif raw_type == FrameType.KEY.value:
                logger.warning(f"Malformed key frame from {channel.peer}: {e.message}")
                self._notify(NOTIFY_KEY_IMPORT_FAILED)
            else:
                logger.warning(f"Dropping frame from {channel.peer}: {e.message}")
            return

        if ftype == FrameType.KEY:
            await self._handle_key_frame(channel, frame)
        elif ftype == FrameType.MESSAGE:
            await self._handle_message_frame(channel, frame)
        elif ftype == FrameType.TYPING:
            self.presence.handle_typing(frame)
        elif ftype == FrameType.STOP_TYPING:
            self.presence.handle_stop_typing(frame)
        elif ftype == FrameType.USER_INFO:
            self.presence.handle_user_info(frame)

    async def _handle_key_frame(self, channel: Channel, frame: Dict[str, Any]) -> None:
        try:
            key = await self.key_exchange.read_key(frame["key"])
        except KeyImportError as e:
            logger.warning(f"Key import from {channel.peer} failed: {e.message}")
            self._notify(NOTIFY_KEY_IMPORT_FAILED)
            return

        if not self._is_current(channel):
            logger.debug("Channel closed during key import, key discarded")
            return

        if self.key_exchange.adopt(key):
            self.log.add_system(TEXT_KEY_RECEIVED)

    async def _handle_message_frame(self, channel: Channel, frame: Dict[str, Any]) -> None:
        try:
            text = await self.secure_channel.decrypt_message(frame)
        except (NoKeyError, DecryptionError) as e:
            if not self._is_current(channel):
                return
            logger.warning(f"Could not decrypt message from {channel.peer}: {e.message}")
            self.log.add_remote_error(TEXT_DECRYPTION_ERROR)
            return

        if not self._is_current(channel):
            logger.debug("Channel closed during decryption, message discarded")
            return

        self.log.add_remote(text)
        self._notify(NOTIFY_NEW_MESSAGE)

    def _channel_closed(self) -> None:
        logger.info(f"Channel to {self.remote_id} closed")
        self.channel = None
        self.presence.reset()
        self.key_exchange.clear()
        self.log.add_system(TEXT_CONNECTION_CLOSED)
        self.fsm.transition(ConnectionEvent.CHANNEL_CLOSED)

    def _record_error(self, prefix: str, error: Any) -> None:
        message = _error_text(error)
        logger.error(f"{prefix}: {message}")
        self.fsm.transition(ConnectionEvent.ERROR_OCCURRED, message)
        self.log.add_system(f"{prefix}: {message}")
        self._notify(f"{prefix}: {message}")

    # ------------------------------------------------------------------
    # Helpers

    def _is_current(self, channel: Channel) -> bool:
        return channel is self.channel and channel.is_open

    def _send_frame(self, frame: Dict[str, Any]) -> bool:
        channel = self.channel
        if channel is None or not channel.is_open:
            return False
        try:
            channel.send(frame)
            return True
        except TransportError as e:
            logger.warning(f"Failed to send {frame.get('type')} frame: {e.message}")
            return False

    def _notify(self, message: str) -> None:
        logger.debug(f"Notification: {message}")
        if self.on_notification:
            try:
                self.on_notification(message)
            except Exception as e:
                logger.error(f"Notification callback error: {e}")

    def _entry_added(self, entry: ChatEntry) -> None:
        if self.on_entry:
            self.on_entry(entry)

    def _presence_changed(self) -> None:
        if self.on_presence_change:
            self.on_presence_change()

    def _fsm_state_changed(self, old_state: ConnectionState, new_state: ConnectionState) -> None:
        if self.on_state_change:
            self.on_state_change(old_state, new_state)

    def __repr__(self) -> str:
        return f"PeerSession(peer_id={self.peer_id!r}, state={self.state.name})"
