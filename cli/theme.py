"""Unified Rich theme and reusable UI helper functions for the CLI."""

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.theme import Theme
from rich.tree import Tree

PLOTTER_THEME = Theme({
    "app.title": "bold",
    "success": "green",
    "warning": "yellow",
    "error": "red",
    "info": "blue",
    "muted": "dim",
    "accent": "cyan",
    "stat.label": "dim",
    "stat.value": "bold",
    "chapter.num": "blue",
    "character.name": "bold cyan",
})


def get_console() -> Console:
    """Return a Console instance with the plotter theme applied."""
    return Console(theme=PLOTTER_THEME)


def app_header(title: str = "plotter") -> Rule:
    """Return a Rule element for the application header banner."""
    return Rule(title=f"[bold]{title}[/]", style="dim")


def command_panel(title: str, fields: dict[str, str]) -> Panel:
    """Return a Panel displaying command parameters.

    Args:
        title: Panel title (e.g. "New story").
        fields: Ordered dict of label -> value pairs.
    """
    lines = []
    for label, value in fields.items():
        lines.append(f"  [stat.label]{label}:[/] [stat.value]{value}[/]")
    body = "\n".join(lines)
    return Panel(body, title=f"[bold]{title}[/]", box=box.ROUNDED, border_style="dim", padding=(0, 2))


def success_panel(title: str, body: str) -> Panel:
    """Return a green-bordered Panel for success results."""
    return Panel(body, title=f"[success]{title}[/]", box=box.ROUNDED, border_style="green", padding=(0, 2))


def story_summary_panel(story) -> Panel:
    """Return a Panel with story summary stats.

    Args:
        story: Story with .title, .premise, .chapters, .id attributes.
    """
    premise = story.premise or ""
    if len(premise) > 200:
        premise = premise[:200] + "..."
    done = sum(1 for c in story.chapters if c.completed)
    words = sum(len(c.content.split()) for c in story.chapters)

    body = (
        f"  [stat.label]Chapters:[/] [stat.value]{len(story.chapters)}[/]  "
        f"[muted]|[/]  [stat.label]Completed:[/] [stat.value]{done}[/]  "
        f"[muted]|[/]  [stat.label]Words:[/] [stat.value]{words:,}[/]"
    )
    if story.is_sequel:
        body += f"  [muted]|[/]  [stat.label]Sequel of:[/] {story.parent_story_id or '-'}"
    body += f"\n  [stat.label]Idea:[/] {premise}"
    return Panel(
        body,
        title=f"[bold]{story.title}[/] [muted](ID: {story.id})[/]",
        box=box.ROUNDED,
        border_style="dim",
        padding=(0, 2),
    )


def outline_tree(story) -> Tree:
    """Build a Rich Tree of the chapter beats with their status."""
    tree = Tree("[bold]Outline[/]")
    for index, beat in enumerate(story.outline):
        chapter = story.chapters[index] if index < len(story.chapters) else None
        mark = "[success]done[/]" if chapter and chapter.completed else "[muted]todo[/]"
        short = (beat[:70] + "...") if len(beat) > 70 else beat
        tree.add(f"[chapter.num]Chapter {index + 1}[/] {mark} {short}")
    return tree


def character_cards(characters: list) -> Table:
    """Build a Rich Table layout of character information.

    Args:
        characters: List of Character objects.
    """
    table = Table(box=box.ROUNDED, border_style="dim", show_header=True, padding=(0, 1))
    table.add_column("Name", style="character.name")
    table.add_column("Alias", style="muted")
    table.add_column("Pronouns", style="muted")
    table.add_column("Age", style="muted")

    for c in characters[:8]:
        table.add_row(c.name, c.aliases, c.pronouns, c.age)

    if len(characters) > 8:
        table.add_row(f"[muted]+{len(characters) - 8} more[/]", "", "", "")

    return table
