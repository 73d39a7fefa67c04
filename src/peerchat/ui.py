"""
PeerChat - Textual-based terminal user interface.

Created by orpheus497
"""

import logging
from typing import Optional

from rich.markup import escape
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Container, Horizontal, ScrollableContainer, Vertical
from textual.widgets import Button, Footer, Header, Input, Label, Static

from .config import Config
from .connection_fsm import ConnectionState
from .constants import APP_NAME, UI_NOTIFICATION_TIMEOUT, UI_TIMESTAMP_FORMAT
from .errors import PeerChatError
from .message import ChatEntry, Sender
from .session import PeerSession
from .utils import format_timestamp, truncate_string

logger = logging.getLogger(__name__)

STATE_LABELS = {
    ConnectionState.IDLE: "[dim]Starting...[/]",
    ConnectionState.PEER_ID_ASSIGNED: "[yellow]Ready[/]",
    ConnectionState.CONNECTING: "[yellow]Connecting...[/]",
    ConnectionState.CONNECTED: "[green]Connected[/]",
    ConnectionState.DISCONNECTED: "[red]Disconnected[/]",
    ConnectionState.ERROR: "[red]Error[/]",
}


def format_entry(entry: ChatEntry, remote_name: Optional[str], timestamp_format: str) -> str:
    """Render one log entry as rich markup."""
    timestamp_str = format_timestamp(entry.timestamp, timestamp_format)
    text = escape(entry.text)

    if entry.sender == Sender.SYSTEM:
        return f"[dim]{timestamp_str} * {text}[/]"
    if entry.is_error:
        return f"[red]{escape(remote_name or 'Peer')}[/] ([dim]{timestamp_str}[/]): [red]{text}[/]"
    if entry.sender == Sender.LOCAL:
        return f"[cyan]You[/] ([dim]{timestamp_str}[/]): {text}"
    return f"[yellow]{escape(remote_name or 'Peer')}[/] ([dim]{timestamp_str}[/]): {text}"


class ChatView(ScrollableContainer):
    """Chat message view."""

    def __init__(self, timestamp_format: str = UI_TIMESTAMP_FORMAT):
        super().__init__(id="chat-view")
        self.timestamp_format = timestamp_format

    def add_entry(self, entry: ChatEntry, remote_name: Optional[str]) -> None:
        """Add a single entry to the view."""
        self.mount(Label(format_entry(entry, remote_name, self.timestamp_format)))
        self.scroll_end(animate=False)


class ChatApp(App):
    """Main PeerChat application with Textual UI."""

    TITLE = APP_NAME

    CSS = """
    Screen {
        background: #000000;
    }

    #connection-bar {
        height: 3;
        background: #0a0a0a;
    }

    #peer-id-label, #status-label {
        width: auto;
        padding: 1 1;
        color: #cccccc;
    }

    #remote-id-input {
        width: 1fr;
    }

    Input {
        background: #0a0a0a;
        border: solid #444444;
        color: #ffffff;
    }

    Input:focus {
        border: solid #8b0000;
    }

    Button {
        margin: 0 1;
        background: #2a0a0a;
        color: #ff4444;
        border: solid #8b0000;
    }

    Button.-primary {
        background: #8b0000;
        color: #ffffff;
    }

    ChatView {
        height: 1fr;
        border-bottom: solid #8b0000;
    }

    #typing-indicator {
        height: 1;
        color: #888888;
        padding: 0 1;
    }

    #message-input-container {
        height: 3;
        dock: bottom;
        background: #0a0a0a;
    }

    #message-input {
        width: 1fr;
    }
    """

    BINDINGS = [
        Binding("ctrl+d", "disconnect", "Disconnect"),
        Binding("ctrl+q", "quit", "Quit"),
    ]

    def __init__(self, session: PeerSession, config: Config, connect_to: Optional[str] = None):
        super().__init__()
        self.session = session
        self.config = config
        self.connect_to = connect_to
        self.timestamp_format = config.get("ui", "timestamp_format", UI_TIMESTAMP_FORMAT)

        session.on_entry = self._on_entry
        session.on_state_change = self._on_state_change
        session.on_presence_change = self._on_presence_change
        session.on_notification = self._on_notification

    def compose(self) -> ComposeResult:
        """Compose the main application layout."""
        yield Header()
        with Container(id="main-container"):
            with Horizontal(id="connection-bar"):
                yield Label("Peer ID: ...", id="peer-id-label")
                yield Input(placeholder="Remote peer ID (host:port)", id="remote-id-input")
                yield Button("Connect", variant="primary", id="connect-btn")
                yield Button("Disconnect", id="disconnect-btn")
                yield Label(STATE_LABELS[ConnectionState.IDLE], id="status-label")
            with Vertical(id="chat-panel"):
                yield ChatView(self.timestamp_format)
                yield Static("", id="typing-indicator")
                with Horizontal(id="message-input-container"):
                    yield Input(placeholder="Type a message...", id="message-input")
                    yield Button("Send", variant="primary", id="send-btn")
        yield Footer()

    def on_mount(self) -> None:
        """Open the session once the screen exists."""
        self.run_worker(self.open_session_worker, exclusive=True)

    async def open_session_worker(self) -> None:
        """Worker that opens the transport and optionally connects."""
        try:
            peer_id = await self.session.open()
        except PeerChatError as e:
            self.notify(f"Failed to start: {e.message}", severity="error")
            return

        self.query_one("#peer-id-label", Label).update(f"Peer ID: [bold]{escape(peer_id)}[/]")
        if self.connect_to:
            await self._connect(self.connect_to)

    async def on_unmount(self) -> None:
        await self.session.destroy()

    async def _connect(self, remote_id: str) -> None:
        try:
            await self.session.connect(remote_id)
        except PeerChatError as e:
            logger.warning(f"Connect to {remote_id!r} failed: {e.message}")
            self.notify(e.message, severity="error", timeout=UI_NOTIFICATION_TIMEOUT)

    async def _send_current_message(self) -> None:
        message_input = self.query_one("#message-input", Input)
        text = message_input.value
        if not text.strip():
            return
        try:
            entry = await self.session.send_message(text)
        except PeerChatError as e:
            logger.debug(f"Send failed: {e.message}")
            return
        if entry is not None:
            message_input.value = ""

    async def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "connect-btn":
            await self._connect(self.query_one("#remote-id-input", Input).value)
        elif event.button.id == "disconnect-btn":
            self.action_disconnect()
        elif event.button.id == "send-btn":
            await self._send_current_message()

    async def on_input_submitted(self, event: Input.Submitted) -> None:
        if event.input.id == "remote-id-input":
            await self._connect(event.value)
        elif event.input.id == "message-input":
            await self._send_current_message()

    def on_input_changed(self, event: Input.Changed) -> None:
        # Clearing the field after a send also fires Changed
        if event.input.id == "message-input" and event.value:
            self.session.notify_typing()

    def action_disconnect(self) -> None:
        """Close the current connection."""
        self.session.disconnect()

    def _on_entry(self, entry: ChatEntry) -> None:
        self.query_one(ChatView).add_entry(entry, self.session.remote_display_name)

    def _on_state_change(self, old_state: ConnectionState, new_state: ConnectionState) -> None:
        self.query_one("#status-label", Label).update(STATE_LABELS[new_state])
        if new_state == ConnectionState.CONNECTED and self.session.remote_id:
            self.sub_title = f"Chatting with {self.session.remote_id}"
        elif new_state != ConnectionState.CONNECTED:
            self.sub_title = ""

    def _on_presence_change(self) -> None:
        indicator = self.query_one("#typing-indicator", Static)
        if self.session.is_remote_typing:
            name = truncate_string(self.session.remote_display_name or "Peer", 32)
            indicator.update(f"{escape(name)} is typing...")
        else:
            indicator.update("")

    def _on_notification(self, message: str) -> None:
        self.notify(message, timeout=UI_NOTIFICATION_TIMEOUT)
