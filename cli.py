#!/usr/bin/env python3
"""
OSINT Copilot - CLI Entry Point

Run investigations and manage saved conversations from the terminal.
"""

import sys
from datetime import datetime
from pathlib import Path

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.prompt import Confirm
from rich.table import Table
from rich import box

from config import load_settings
from models import Message, Mode
from session import ChatSession, open_session

console = Console()


def _when(millis: int) -> str:
    if not millis:
        return "unknown"
    return datetime.fromtimestamp(millis / 1000).strftime("%Y-%m-%d %H:%M")


def list_conversations(session: ChatSession):
    """List saved conversations"""
    summaries = session.store.list()
    if not summaries:
        console.print("[dim]No conversations yet. Start one with: copilot --ask \"...\"[/dim]")
        return []

    table = Table(title="Conversations", box=box.ROUNDED)
    table.add_column("ID", style="cyan")
    table.add_column("Title")
    table.add_column("Messages", justify="right")
    table.add_column("Mode", style="green")
    table.add_column("Last Updated", style="dim")

    for s in summaries:
        modes = [m.value for m in s.modes.active_modes]
        if s.modes.graph_generation:
            modes.append("graph")
        table.add_row(s.id, s.title, str(s.message_count), ", ".join(modes) or "-", _when(s.updated_at))

    console.print(table)
    return summaries


def render_message(message: Message):
    if message.role.value == "user":
        console.print(Panel(message.content, title="You", border_style="cyan"))
        return

    style = {"failed": "red", "timeout": "yellow", "cancelled": "yellow"}.get(message.status or "", "green")
    console.print(Panel(Markdown(message.content or ""), title="Copilot", border_style=style))
    if message.created_entities:
        console.print(f"[dim]{len(message.created_entities)} entities, "
                      f"{message.connections_created or 0} connections created[/dim]")


def show_conversation(session: ChatSession, conversation_id: str):
    conversation = session.store.load(conversation_id)
    if conversation is None:
        console.print(f"[red]Conversation not found: {conversation_id}[/red]")
        return
    console.print(f"[bold]{conversation.title}[/bold] [dim]({conversation.id})[/dim]\n")
    for message in conversation.messages:
        render_message(message)


def run_turn(session: ChatSession, text: str, mode: Mode, graph: bool):
    """Send one message and wait for any job it started."""
    conversation = session.ensure_conversation(text)
    conversation.modes.select(mode)
    if graph:
        conversation.modes.graph_generation = True

    with console.status("[dim]Working...[/dim]") as status:
        def on_update(message: Message):
            if message.progress:
                status.update(f"[dim]{message.progress.message} ({message.progress.percent}%)[/dim]")

        session.on_update = on_update
        message = session.send(text)
        if message.job_id:
            try:
                while not session.wait(message.job_id, timeout=1.0):
                    pass
            except KeyboardInterrupt:
                session.cancel(message.job_id)
                session.wait(message.job_id, timeout=5.0)
                console.print("[yellow]Cancelled.[/yellow]")

    final = session.conversation.messages[-1]
    render_message(final)
    console.print(f"[dim]Saved to conversation {session.conversation.id}[/dim]")


def cli():
    """Main CLI entry point"""
    import argparse

    parser = argparse.ArgumentParser(
        description="OSINT Copilot - investigations from the terminal",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  copilot --list                          # List saved conversations
  copilot --ask "Who owns example.com?"   # Q&A
  copilot --report "Acme Corp"            # Company & people report
  copilot --darkweb "acme.com leak"       # Dark web investigation
  copilot --leaks "john@example.com"      # Leak database search
  copilot --extract notes.txt             # Build graph entities from text
  copilot --continue conv-... --ask "..." # Continue a conversation
        """
    )
    parser.add_argument("--list", "-l", action="store_true", help="List conversations")
    parser.add_argument("--show", metavar="ID", help="Print a conversation")
    parser.add_argument("--delete", metavar="ID", help="Delete a conversation")
    parser.add_argument("--rename", nargs=2, metavar=("ID", "TITLE"), help="Rename a conversation")
    parser.add_argument("--continue", dest="cont", metavar="ID", help="Continue a conversation")
    parser.add_argument("--ask", metavar="TEXT", help="Ask a question")
    parser.add_argument("--report", metavar="TEXT", help="Generate a report")
    parser.add_argument("--darkweb", metavar="QUERY", help="Run a dark web investigation")
    parser.add_argument("--leaks", metavar="QUERY", help="Search leak databases")
    parser.add_argument("--extract", metavar="FILE", help="Extract entities from a text file ('-' for stdin)")
    parser.add_argument("--graph", action="store_true", help="Also generate graph entities from results")
    parser.add_argument("--health", action="store_true", help="Check the remote API")

    args = parser.parse_args()
    settings = load_settings()
    session = open_session(settings, args.cont)
    if args.cont and session.conversation is None:
        console.print(f"[red]Conversation not found: {args.cont}[/red]")
        sys.exit(1)

    try:
        if args.list:
            list_conversations(session)
        elif args.show:
            show_conversation(session, args.show)
        elif args.delete:
            if Confirm.ask(f"Delete {args.delete}?"):
                if session.store.delete(args.delete):
                    console.print("[green]Deleted.[/green]")
                else:
                    console.print("[red]Not found.[/red]")
        elif args.rename:
            conversation_id, title = args.rename
            if session.store.rename(conversation_id, title):
                console.print("[green]Renamed.[/green]")
            else:
                console.print("[red]Not found.[/red]")
        elif args.health:
            health = session.api.check_health()
            if health is None:
                console.print(f"[red]API unavailable at {settings.api.base_url}[/red]")
            else:
                console.print(f"[green]API online[/green] [dim]{health}[/dim]")
        elif args.extract:
            text = sys.stdin.read() if args.extract == "-" else Path(args.extract).read_text()
            session.ensure_conversation(text[:50])
            session.conversation.modes.select(Mode.LOCAL_SEARCH)
            render_message(session.extract_graph(text))
        elif args.ask:
            run_turn(session, args.ask, Mode.LOCAL_SEARCH, args.graph)
        elif args.report:
            run_turn(session, args.report, Mode.REPORT_GENERATION, args.graph)
        elif args.darkweb:
            run_turn(session, args.darkweb, Mode.DARK_WEB, args.graph)
        elif args.leaks:
            run_turn(session, args.leaks, Mode.LEAK_SEARCH, args.graph)
        else:
            parser.print_help()
    finally:
        session.close()


if __name__ == "__main__":
    cli()
