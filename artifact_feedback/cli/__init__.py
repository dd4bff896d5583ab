"""
Command Line Interface for the artifact feedback service.
"""

from typing import List, Optional

import typer
import uvicorn
from rich import print as rprint
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.tree import Tree

from ..config import get_settings
from ..db.base import init_database
from ..feedback.auth import known_trust_tiers
from ..feedback.dependencies import get_backend
from ..feedback.enums import ThreadSort
from ..feedback.errors import FeedbackError
from ..feedback.services import CommentService, RatingService
from ..feedback.thread import RenderedComment, build_tree, render_thread
from ..logging_config import setup_logging

app = typer.Typer(help="Artifact Feedback - threaded comments and ratings on artifacts")
console = Console()


@app.callback()
def main() -> None:
    settings = get_settings()
    setup_logging(level=settings.log_level, fmt="console", debug=settings.debug)


@app.command()
def serve(
    port: Optional[int] = typer.Option(None, help="Port to run the API server on"),
    host: Optional[str] = typer.Option(None, help="Host to bind the server to"),
    dev: bool = typer.Option(False, help="Run in development mode with reload"),
):
    """Start the feedback API server."""
    settings = get_settings()
    host = host or settings.api_host
    port = port or settings.api_port
    rprint(Panel.fit(f"Starting {settings.app_name} on http://{host}:{port}", style="bold blue"))
    uvicorn.run(
        "artifact_feedback.main:app",
        host=host,
        port=port,
        reload=dev,
        workers=1 if dev else settings.api_workers,
    )


@app.command("init-db")
def init_db():
    """Create the feedback tables in the primary store."""
    init_database()
    console.print("✅ Database tables created")


def _label(node: RenderedComment) -> str:
    if node.variant != "comment":
        return f"[dim italic]{node.notice}[/dim italic] [dim]({node.id})[/dim]"

    author = (node.author.handle or node.author.agent_id) if node.author else "unknown"
    first_line = (node.body_md or "").splitlines()[0] if node.body_md else ""
    parts: List[str] = [f"[cyan]{author}[/cyan]", f"[magenta]{node.kind}[/magenta]"]
    if node.show_unverified_warning:
        parts.append("[yellow]unverified[/yellow]")
    parts.append(f"▲{node.upvote_count}")
    parts.append(first_line)
    if node.edited:
        parts.append("[dim](edited)[/dim]")
    return " ".join(parts)


def _add_nodes(tree: Tree, nodes: List[RenderedComment]) -> None:
    for node in nodes:
        branch = tree.add(_label(node))
        _add_nodes(branch, node.replies)
        if node.more_replies_label:
            branch.add(f"[dim]{node.more_replies_label}[/dim]")


@app.command()
def thread(
    artifact_id: str = typer.Argument(..., help="Artifact to render"),
    sort: ThreadSort = typer.Option(ThreadSort.NEWEST, help="Top-level ordering"),
):
    """Render an artifact's comment thread."""
    settings = get_settings()
    service = CommentService(get_backend(), max_depth=settings.thread_max_depth)
    try:
        comments = service.list_thread(artifact_id)
    except FeedbackError as e:
        console.print(f"❌ {e.message}")
        raise typer.Exit(code=1)

    tree = build_tree(comments)
    rendered = render_thread(
        tree,
        sort=sort,
        max_depth=settings.thread_max_depth,
        collapse_threshold=settings.thread_collapse_threshold,
        trust_tiers=known_trust_tiers(settings),
    )
    if not rendered:
        console.print(f"No comments on {artifact_id}")
        return

    root = Tree(f"[bold]{artifact_id}[/bold] ({len(tree)} comments)")
    _add_nodes(root, rendered)
    console.print(root)


@app.command()
def summary(artifact_id: str = typer.Argument(..., help="Artifact to summarize")):
    """Show the rating summary of an artifact."""
    service = RatingService(get_backend())
    try:
        result = service.summary(artifact_id)
    except FeedbackError as e:
        console.print(f"❌ {e.message}")
        raise typer.Exit(code=1)

    table = Table(title=f"Ratings for {artifact_id}", show_header=True, header_style="bold magenta")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("count", str(result.count))
    table.add_row("avg", f"{result.avg:.2f}" if result.avg is not None else "-")
    for dimension, value in result.dims_avg.items():
        table.add_row(dimension, f"{value:.2f}")
    table.add_row("updated_at", result.updated_at.isoformat())
    console.print(table)


if __name__ == "__main__":
    app()
