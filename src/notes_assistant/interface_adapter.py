"""Interface adapters for UI-agnostic pipelines.

The note chat and the literature pipeline never talk to a user interface
directly. They report progress, stream output and ask for decisions through an
InterfaceAdapter:

1. **InterfaceAdapter** (Abstract): the contract for all UI implementations
2. **TerminalAdapter** (Concrete): Rich terminal interface
3. **RecordingAdapter** (Concrete): records events in memory, for tests and
   non-interactive callers

```python
from rich.console import Console
runner = ResearchRunner(provider, TerminalAdapter(Console()), config)
```

The one blocking interaction is ``confirm``, used when the text-generation
provider reports an error: confirming retries the request, cancelling abandons
it.
"""

from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Optional, List, Any, Dict

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table

from .project_types import RankedNote


class InterfaceAdapter(ABC):
    """Abstract base class for UI adapters."""

    @abstractmethod
    def show_progress(self, message: str, context: Optional[Dict[str, Any]] = None):
        """Show a progress message to the user."""
        pass

    @abstractmethod
    def show_info(self, message: str, context: Optional[Dict[str, Any]] = None):
        """Show an informational message to the user."""
        pass

    @abstractmethod
    def show_error(self, message: str, context: Optional[Dict[str, Any]] = None):
        """Show an error message to the user."""
        pass

    @abstractmethod
    def stream_text(self, text: str):
        """Append text to the output as soon as it is available."""
        pass

    @abstractmethod
    def render_content(self, content: str, title: Optional[str] = None):
        """Render a finished markdown response."""
        pass

    @abstractmethod
    def display_notes(self, notes: List[RankedNote]) -> None:
        """Show the notes (and their blocks) used as context."""
        pass

    @abstractmethod
    async def confirm(self, message: str) -> bool:
        """Ask the user to confirm (True) or cancel (False). Blocks until answered."""
        pass

    @contextmanager
    def progress_context(self, message: str):
        """Context manager for long-running operations."""
        self.show_progress(message)
        try:
            yield
        finally:
            pass


class TerminalAdapter(InterfaceAdapter):
    """Rich terminal implementation of the interface adapter."""

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console()
        self._current_status = None

    def _stop_status(self):
        if self._current_status:
            self._current_status.stop()
            self._current_status = None

    def show_progress(self, message: str, context: Optional[Dict[str, Any]] = None):
        # the spinner itself is started by progress_context
        pass

    def show_info(self, message: str, context: Optional[Dict[str, Any]] = None):
        self._stop_status()
        self.console.print(f"[blue]{message}[/blue]")

    def show_error(self, message: str, context: Optional[Dict[str, Any]] = None):
        self._stop_status()
        self.console.print(f"❌ [red]{message}[/red]")

    def stream_text(self, text: str):
        self.console.print(text, end='', markup=False, highlight=False)

    def render_content(self, content: str, title: Optional[str] = None):
        self._stop_status()
        self.console.print(Panel(Markdown(content), title=title or "📝 Response", border_style="green"))

    def display_notes(self, notes: List[RankedNote]) -> None:
        if not notes:
            self.show_info("No related notes")
            return
        table = Table(title="🗒️ Related notes")
        table.add_column("#", style="cyan", width=3)
        table.add_column("Note", style="white", max_width=50)
        table.add_column("Score", style="green", width=6)
        table.add_column("Lines", style="yellow", max_width=30)
        for i, note in enumerate(notes, 1):
            lines = ", ".join(str(block.line) for block in note.blocks)
            table.add_row(str(i), note.title or note.note_id, f"{note.score:.2f}", lines)
        self.console.print(table)

    async def confirm(self, message: str) -> bool:
        from rich.prompt import Confirm

        self._stop_status()
        return Confirm.ask(f"[red]Error:[/red] {message}\nRetry?", console=self.console, default=True)

    @contextmanager
    def progress_context(self, message: str):
        status = self.console.status(f"[bold yellow]{message}")
        self._current_status = status
        status.start()
        try:
            yield
        finally:
            status.stop()
            self._current_status = None


class RecordingAdapter(InterfaceAdapter):
    """Records every interaction as an event.

    ``confirm`` answers True for the first ``confirmations`` requests and False
    afterwards, so unattended runs cannot retry forever.
    """

    def __init__(self, confirmations: int = 0):
        self.events: List[Dict[str, Any]] = []
        self.confirmations = confirmations

    def show_progress(self, message: str, context: Optional[Dict[str, Any]] = None):
        self.events.append({"type": "progress", "message": message, "context": context})

    def show_info(self, message: str, context: Optional[Dict[str, Any]] = None):
        self.events.append({"type": "info", "message": message, "context": context})

    def show_error(self, message: str, context: Optional[Dict[str, Any]] = None):
        self.events.append({"type": "error", "message": message, "context": context})

    def stream_text(self, text: str):
        self.events.append({"type": "stream", "text": text})

    def render_content(self, content: str, title: Optional[str] = None):
        self.events.append({"type": "content", "content": content, "title": title})

    def display_notes(self, notes: List[RankedNote]) -> None:
        self.events.append({"type": "notes", "notes": [note.model_dump() for note in notes]})

    async def confirm(self, message: str) -> bool:
        answer = self.confirmations > 0
        if answer:
            self.confirmations -= 1
        self.events.append({"type": "confirm", "message": message, "answer": answer})
        return answer

    @property
    def streamed_text(self) -> str:
        return ''.join(e["text"] for e in self.events if e["type"] == "stream")

    def get_events(self, event_type: Optional[str] = None) -> List[Dict[str, Any]]:
        return [e for e in self.events if event_type is None or e["type"] == event_type]
