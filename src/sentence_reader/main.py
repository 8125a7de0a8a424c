"""Sentence Reader CLI - reads a text file aloud, one sentence at a time."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.prompt import Prompt
from rich.style import Style
from rich.table import Table

from .app import ReaderApp, configure_logging, create_reader
from .config import get_settings
from .schemas.voice import RATE_RANGE
from .services.playback.events import PlaybackIssue, PlaybackState, PlaybackView

logger = logging.getLogger(__name__)

# Styles
SENTENCE_STYLE = Style(color="bright_green")
ERROR_STYLE = Style(color="red", bold=True)
WARNING_STYLE = Style(color="yellow")
INFO_STYLE = Style(color="cyan")


def document_id_for(path: Path) -> str:
    """Stable identity for a file: its resolved path."""
    return str(path.expanduser().resolve())


def rate_argument(value: str) -> float:
    """argparse type for --rate."""
    try:
        rate = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not a number: {value!r}")
    low, high = RATE_RANGE
    if not low <= rate <= high:
        raise argparse.ArgumentTypeError(f"must be between {low:g} and {high:g}")
    return rate


class ShellReader:
    """Interactive terminal front end for a ReaderApp."""

    def __init__(self, reader: ReaderApp, console: Optional[Console] = None):
        self.reader = reader
        self.controller = reader.controller
        self.console = console or Console()
        self.running = True
        self._last_spoken: Optional[int] = None
        self._last_state = self.controller.state
        self._unsubscribe = [
            self.controller.subscribe(self._on_view),
            self.controller.on_issue(self._on_issue),
        ]

    def _on_view(self, view: PlaybackView) -> None:
        if view.spoken_index is not None and view.spoken_index != self._last_spoken:
            self._last_spoken = view.spoken_index
            self.console.print(
                f"[dim]{view.spoken_index + 1}/{view.sentence_count}[/dim] "
                f"{escape(view.sentences[view.spoken_index].strip())}",
                style=SENTENCE_STYLE,
                highlight=False,
            )
        if view.state != self._last_state:
            self._last_state = view.state
            if view.state == PlaybackState.FINISHED:
                self.console.print("[bold]Finished.[/bold]", style=INFO_STYLE)

    def _on_issue(self, issue: PlaybackIssue) -> None:
        style = WARNING_STYLE if issue.is_warning else ERROR_STYLE
        self.console.print(f"{issue.kind.value}: {escape(issue.message)}", style=style)

    def _show_help(self) -> None:
        """Show available commands."""
        help_text = """
[bold]Commands:[/bold]
  play                  Start or resume reading
  pause                 Pause (resume re-reads the sentence)
  stop                  Stop reading, keep the position
  reset                 Back to the first sentence, forget saved position
  next / prev           Move one sentence forward or back
  seek <n>              Jump to sentence n (1-based)
  rate <x>              Speaking rate multiplier (0.1 - 2.0)
  meditate on|off       Toggle silent gaps between sentences
  meditate <seconds>    Set the gap length
  eta                   Show remaining time
  status                Show position and state
  voices                List available voices
  voice <id>            Use a voice
  quit                  Save position and exit
"""
        self.console.print(
            Panel(help_text.strip(), title="Sentence Reader Help", border_style="blue")
        )

    def _show_status(self) -> None:
        view = self.controller.view
        current = view.current_sentence
        self.console.print(
            f"[bold]{view.state.value}[/bold] - sentence "
            f"{min(view.cursor_index + 1, view.sentence_count)}/{view.sentence_count} "
            f"({view.progress_percentage}%) - {view.eta_label} left",
            style=INFO_STYLE,
        )
        if current:
            self.console.print(escape(current.strip()), highlight=False)

    def _list_voices(self) -> None:
        voices = self.reader.engine.list_voices()
        if not voices:
            self.console.print("[dim]No voices reported by the engine[/dim]")
            return
        active = self.controller.voice.voice_id
        table = Table(title="Voices", show_lines=False)
        table.add_column("")
        table.add_column("Id", overflow="fold")
        table.add_column("Name")
        table.add_column("Languages")
        for voice in voices:
            table.add_row(
                "*" if voice.id == active else "",
                voice.id,
                voice.name,
                ", ".join(voice.languages),
            )
        self.console.print(table)

    def _set_rate(self, value: str) -> None:
        try:
            voice = self.controller.set_voice_params({"rate": float(value)})
        except ValueError as e:
            self.console.print(f"Invalid rate: {escape(str(e))}", style=ERROR_STYLE)
            return
        self.console.print(f"[dim]Rate {voice.rate:g} (applies from the next sentence)[/dim]")

    def _meditate(self, value: str) -> None:
        value = value.lower()
        if value in ("on", "true", "1"):
            self.controller.set_meditation_mode(True)
        elif value in ("off", "false", "0"):
            self.controller.set_meditation_mode(False)
        else:
            try:
                seconds = self.controller.set_meditation_pause_seconds(float(value))
            except ValueError:
                self.console.print("[dim]Usage: meditate on|off|<seconds>[/dim]")
                return
            self.controller.set_meditation_mode(True)
            self.console.print(f"[dim]Meditation gap {seconds:g}s[/dim]")
            return
        state = "on" if self.controller.meditation_mode else "off"
        self.console.print(f"[dim]Meditation mode {state}[/dim]")

    async def handle_command(self, line: str) -> bool:
        """Run one command. Returns False for unknown input."""
        parts = line.strip().split(maxsplit=1)
        if not parts:
            return True

        command = parts[0].lower()
        arg = parts[1].strip() if len(parts) > 1 else ""

        if command in ("help", "?"):
            self._show_help()
        elif command in ("quit", "exit", "q"):
            self.running = False
        elif command in ("play", "p"):
            self.controller.play()
        elif command == "pause":
            self.controller.pause()
        elif command == "stop":
            self.controller.stop()
        elif command == "reset":
            self.controller.reset()
            self._last_spoken = None
            self._show_status()
        elif command in ("next", "n"):
            self.controller.next()
            self._show_status()
        elif command in ("prev", "previous", "b"):
            self.controller.previous()
            self._show_status()
        elif command == "seek":
            try:
                self.controller.seek(int(arg) - 1)
            except ValueError:
                self.console.print("[dim]Usage: seek <sentence number>[/dim]")
                return True
            self._show_status()
        elif command == "rate":
            if arg:
                self._set_rate(arg)
            else:
                self.console.print(f"[dim]Rate {self.controller.voice.rate:g}[/dim]")
        elif command == "meditate":
            if arg:
                self._meditate(arg)
            else:
                self.console.print("[dim]Usage: meditate on|off|<seconds>[/dim]")
        elif command == "eta":
            self.console.print(f"{self.controller.eta_label} remaining", style=INFO_STYLE)
        elif command == "status":
            self._show_status()
        elif command == "voices":
            self._list_voices()
        elif command == "voice":
            if arg:
                self.controller.set_voice_params({"voice_id": arg})
                self.console.print(f"[dim]Voice {arg}[/dim]")
            else:
                self.console.print(f"[dim]Voice {self.controller.voice.voice_id or 'default'}[/dim]")
        else:
            return False
        return True

    async def run(self, path: Path, autoplay: bool = False) -> None:
        """Main command loop."""
        try:
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            self.console.print(f"Cannot read {path}: {escape(str(e))}", style=ERROR_STYLE)
            await self.reader.shutdown()
            return

        start = await self.reader.open(document_id_for(path), text)
        count = len(self.controller.sentences)
        self.console.print()
        self.console.print(
            f"[bold]{path.name}[/bold] - {count} sentence(s)"
            + (f", resuming at {start + 1}" if start else ""),
            style=INFO_STYLE,
        )
        self.console.print("[dim]Type help for commands, Ctrl+D to exit[/dim]")
        self.console.print()
        if autoplay:
            self.controller.play()

        try:
            while self.running:
                try:
                    line = await asyncio.to_thread(Prompt.ask, "[bold blue]>[/bold blue]")
                except EOFError:
                    # Ctrl+D
                    self.console.print("\n[dim]Goodbye![/dim]")
                    break
                if not await self.handle_command(line):
                    self.console.print(
                        f"[dim]Unknown command: {line.strip()} (try help)[/dim]"
                    )
        finally:
            for unsubscribe in self._unsubscribe:
                unsubscribe()
            await self.reader.shutdown()


async def _run(args: argparse.Namespace) -> int:
    settings = get_settings()
    reader = await create_reader(settings, persist=not args.no_save)

    if args.rate is not None:
        reader.controller.set_voice_params({"rate": args.rate})
    if args.meditate is not None:
        reader.controller.set_meditation_pause_seconds(args.meditate)
        reader.controller.set_meditation_mode(True)

    shell = ShellReader(reader)
    await shell.run(Path(args.file), autoplay=args.autoplay)
    return 0


def main(argv: Optional[list[str]] = None) -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Sentence Reader - read a text file aloud sentence by sentence",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  sentence-reader book.txt               Open book.txt at the saved position
  sentence-reader book.txt --play        Start reading right away
  sentence-reader book.txt --meditate 5  Five seconds of silence between sentences

Environment Variables:
  LOG_LEVEL                 Terminal log level
  READER_POSITION_DB        SQLite file for saved positions
  READER_VOICE_LANGUAGE     Preferred language for the default voice
""",
    )
    parser.add_argument("file", help="UTF-8 text file to read")
    parser.add_argument(
        "--play",
        dest="autoplay",
        action="store_true",
        help="Start reading as soon as the file is loaded",
    )
    parser.add_argument(
        "--rate",
        type=rate_argument,
        default=None,
        help="Speaking rate multiplier (0.1 - 2.0)",
    )
    parser.add_argument(
        "--meditate",
        type=float,
        default=None,
        metavar="SECONDS",
        help="Enable meditation mode with the given gap",
    )
    parser.add_argument(
        "--no-save",
        action="store_true",
        help="Do not read or write saved positions",
    )

    args = parser.parse_args(argv)
    configure_logging()

    try:
        sys.exit(asyncio.run(_run(args)))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
