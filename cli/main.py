"""CLI entry point — plotter long-form fiction assistant.

Usage:
  plotter new -p "idea"        create a story (title, outline, characters)
  plotter list                 list your stories
  plotter write -s ID -c 1     stream chapter 1 from its beat
  plotter --help               list every command
"""

import asyncio
import logging
import sys
from typing import Optional

import click
import questionary
from rich.markup import escape
from rich.table import Table

from agents.outline_agent import OutlineSynthesizer, parse_characters
from agents.rewrite_agent import ChunkedRewriteEngine
from agents.writer_agent import SceneWriter
from cli.theme import (
    get_console,
    app_header,
    command_panel,
    success_panel,
    story_summary_panel,
    outline_tree,
    character_cards,
)
from config.exceptions import PlotterError
from config.logging_config import setup_logging
from config.settings import Settings
from models.database import StoryRecordStore
from persistence.local_store import FileLocalStore
from persistence.recovery import RECOVERY_QUESTION
from persistence.snapshot import SnapshotStore
from tools.provider_client import ProviderClient
from tools.text_utils import word_count
from workflow.callbacks import CompositeCallback, LoggingCallback, RichStreamCallback
from workflow.editor import StoryEditor

console = get_console()
logger = logging.getLogger(__name__)

_USER_OPTION = click.option(
    "--user-id", "-u", default="local", envvar="PLOTTER_USER",
    show_default=True, help="Owner of the stories",
)
_STORY_OPTION = click.option("--story-id", "-s", required=True, help="Story ID")
_CHAPTER_OPTION = click.option("--chapter", "-c", required=True, type=int, help="Chapter number (1-based)")


def _recover_option(f):
    return click.option(
        "--recover/--discard", "recover", default=None,
        help="Answer the unsaved-changes question without prompting",
    )(f)


def _init_logging(verbose: bool):
    """Configure logging based on verbosity."""
    level = logging.DEBUG if verbose else logging.INFO
    settings = Settings()
    setup_logging(level=level, log_dir=settings.log_dir, console_enabled=verbose)


def _store(settings: Settings) -> StoryRecordStore:
    return StoryRecordStore(settings.sqlite_db_path)


def _snapshots(settings: Settings) -> SnapshotStore:
    return SnapshotStore(FileLocalStore(settings.local_store_dir), version=settings.snapshot_version)


class PromptRecovery:
    """Recovery strategy that asks on the terminal unless answered up front."""

    def __init__(self, answer: Optional[bool] = None):
        self.answer = answer

    async def __call__(self, snapshot) -> bool:
        if self.answer is not None:
            return self.answer
        reply = await questionary.confirm(RECOVERY_QUESTION, default=True).ask_async()
        return bool(reply)


def _fail(message: str, code: int = 1):
    console.print(f"[error]{escape(message)}[/]")
    sys.exit(code)


def _run(coro, action: str):
    """Run a coroutine, mapping interrupts and plotter errors to exit codes."""
    try:
        return asyncio.run(coro)
    except KeyboardInterrupt:
        console.print("\n[warning]Interrupted[/]")
        sys.exit(130)
    except PlotterError as e:
        logger.debug("%s failed", action, exc_info=True)
        _fail(f"{action} failed: {e}")
    except Exception as e:
        logger.exception("%s failed", action)
        _fail(f"{action} failed: {e}")


async def _with_editor(story_id: str, recover: Optional[bool], action):
    """Open a story through recovery, run an action, then flush and close."""
    settings = Settings()
    provider = ProviderClient(settings)
    editor = await StoryEditor.open(
        story_id,
        _store(settings),
        _snapshots(settings),
        SceneWriter(provider, settings),
        ChunkedRewriteEngine(provider, settings),
        PromptRecovery(recover),
        settings=settings,
        surface=CompositeCallback(LoggingCallback(), RichStreamCallback(console)),
        on_warning=lambda message: console.print(f"[warning]{escape(message)}[/]"),
    )
    if editor.recovery and editor.recovery.recovered:
        console.print("[success]Recovered unsaved changes from your last session.[/]")
    try:
        return await action(editor)
    finally:
        if not await editor.close():
            console.print("[warning]Your work is saved locally and will sync next time.[/]")


def _chapter_index(editor: StoryEditor, number: int) -> int:
    index = number - 1
    editor.chapter(index)
    return index


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def cli(verbose):
    """plotter — outlines, chapters and rewrites for long-form fiction.

    \b
    Typical flow:
      plotter new -p "A lighthouse keeper finds a door in the sea"
      plotter write -s <id> -c 1
      plotter refine -s <id> -c 1
    """
    _init_logging(verbose)


# ---------------------------------------------------------------------------
# story creation
# ---------------------------------------------------------------------------

def _print_created(story, heading: str):
    console.print()
    console.print(app_header(heading))
    console.print()
    console.print(story_summary_panel(story))
    console.print()
    console.print(outline_tree(story))
    characters = parse_characters(story.characters)
    if characters:
        console.print()
        console.print("[bold]Characters[/]")
        console.print(character_cards(characters))
    console.print(f"\nNext: [info]plotter write -s {story.id} -c 1[/]")


@cli.command()
@click.option("--premise", "-p", default=None, help="Story idea (prompted for when omitted)")
@_USER_OPTION
def new(premise, user_id):
    """Create a story from an idea: title, outline and character roster.

    Example:
      plotter new -p "A courier discovers the letters she carries predict deaths"
    """
    premise = premise or click.prompt("Story idea")
    settings = Settings()

    console.print(app_header())
    console.print()
    console.print(command_panel("New story", {
        "Idea": premise if len(premise) <= 80 else premise[:80] + "...",
        "Chapters": f"{settings.outline_min_chapters}-{settings.outline_max_chapters}",
    }))

    async def create():
        synthesizer = OutlineSynthesizer(ProviderClient(settings), settings)
        with console.status("Writing title, outline and characters..."):
            return await synthesizer.create_story(premise, user_id, _store(settings))

    story = _run(create(), "Story creation")
    _print_created(story, "Story created")


@cli.command()
@_STORY_OPTION
def sequel(story_id):
    """Create a sequel linked to an existing story."""
    settings = Settings()
    store = _store(settings)
    parent = store.get_story(story_id)
    if not parent:
        _fail(f"Story {story_id} not found")

    console.print(app_header())
    console.print()
    console.print(command_panel("New sequel", {"Sequel to": parent.title}))

    async def create():
        synthesizer = OutlineSynthesizer(ProviderClient(settings), settings)
        with console.status("Writing sequel idea, outline and characters..."):
            return await synthesizer.create_sequel(parent, store)

    story = _run(create(), "Sequel creation")
    _print_created(story, "Sequel created")


# ---------------------------------------------------------------------------
# browsing
# ---------------------------------------------------------------------------

@cli.command(name="list")
@_USER_OPTION
def list_stories(user_id):
    """List stories, newest first."""
    stories = _store(Settings()).list_stories(user_id)
    if not stories:
        console.print("[warning]No stories yet. Use [info]plotter new[/] to create one.[/]")
        return

    table = Table(title="Stories", show_lines=True, border_style="dim")
    table.add_column("ID", style="chapter.num")
    table.add_column("Title", style="bold")
    table.add_column("Chapters", justify="right")
    table.add_column("Done", justify="right")
    table.add_column("Sequel")
    for story in stories:
        table.add_row(
            story.id,
            story.title,
            str(len(story.outline)),
            str(sum(1 for c in story.chapters if c.completed)),
            "yes" if story.is_sequel else "",
        )
    console.print(table)


@cli.command()
@_STORY_OPTION
@click.option("--chapter", "-c", default=None, type=int, help="Print one chapter's text")
@click.option("--characters", is_flag=True, help="Show the character roster")
def show(story_id, chapter, characters):
    """Show a story's outline, a chapter, or its characters."""
    story = _store(Settings()).get_story(story_id)
    if not story:
        _fail(f"Story {story_id} not found")

    if chapter is not None:
        if not 1 <= chapter <= len(story.chapters):
            _fail(f"Chapter {chapter} not found")
        ch = story.chapters[chapter - 1]
        beat = story.outline[chapter - 1] if chapter <= len(story.outline) else ""
        console.print(app_header(f"{ch.title} ({word_count(ch.content):,} words)"))
        if beat:
            console.print(f"[muted]{escape(beat)}[/]\n")
        if ch.content:
            console.print(ch.content, markup=False, highlight=False)
        else:
            console.print("[muted](empty)[/]")
        return

    console.print(story_summary_panel(story))
    console.print()
    if characters:
        roster = parse_characters(story.characters)
        if roster:
            console.print(character_cards(roster))
        else:
            console.print(story.characters, markup=False, highlight=False)
    else:
        console.print(outline_tree(story))


@cli.command()
@_STORY_OPTION
@click.option("--force", "-f", is_flag=True, help="Skip the confirmation")
def delete(story_id, force):
    """Delete a story; its sequels are kept and unlinked."""
    settings = Settings()
    store = _store(settings)
    story = store.get_story(story_id)
    if not story:
        _fail(f"Story {story_id} not found")
    if not force and not click.confirm(f"Delete '{story.title}'?", default=False):
        console.print("[warning]Cancelled[/]")
        return
    store.delete_story(story_id)
    _snapshots(settings).clear(story_id)
    console.print(f"[success]Deleted '{story.title}'[/]")


# ---------------------------------------------------------------------------
# editing commands
# ---------------------------------------------------------------------------

def _report(result: Optional[str], label: str):
    if result is None:
        sys.exit(1)
    console.print()
    console.print(success_panel(label, f"  [stat.label]Words:[/] [stat.value]{word_count(result):,}[/]"))


@cli.command()
@_STORY_OPTION
@_CHAPTER_OPTION
@_recover_option
def write(story_id, chapter, recover):
    """Stream a chapter from its outline beat."""

    async def action(editor: StoryEditor):
        return await editor.write(_chapter_index(editor, chapter))

    _report(_run(_with_editor(story_id, recover, action), "Write"), f"Chapter {chapter} written")


@cli.command()
@_STORY_OPTION
@_CHAPTER_OPTION
@click.option("--feedback", "-f", default=None, help="What to change (prompted for when omitted)")
@_recover_option
def revise(story_id, chapter, feedback, recover):
    """Revise a chapter following feedback."""
    feedback = feedback or click.prompt("Feedback")

    async def action(editor: StoryEditor):
        return await editor.revise(_chapter_index(editor, chapter), feedback)

    _report(_run(_with_editor(story_id, recover, action), "Revision"), f"Chapter {chapter} revised")


@cli.command()
@_STORY_OPTION
@_CHAPTER_OPTION
@_recover_option
def transition(story_id, chapter, recover):
    """Prepend a transition from the previous chapter."""

    async def action(editor: StoryEditor):
        return await editor.transition(_chapter_index(editor, chapter))

    _report(_run(_with_editor(story_id, recover, action), "Transition"), f"Transition added to chapter {chapter}")


@cli.command()
@_STORY_OPTION
@_CHAPTER_OPTION
@_recover_option
def refine(story_id, chapter, recover):
    """Rewrite a chapter's narration, leaving dialogue untouched."""

    async def action(editor: StoryEditor):
        return await editor.refine(_chapter_index(editor, chapter))

    _report(_run(_with_editor(story_id, recover, action), "Refine"), f"Chapter {chapter} refined")


@cli.command()
@_STORY_OPTION
@_CHAPTER_OPTION
@_recover_option
def edit(story_id, chapter, recover):
    """Edit a chapter in your $EDITOR."""

    async def action(editor: StoryEditor):
        index = _chapter_index(editor, chapter)
        edited = await asyncio.to_thread(click.edit, editor.chapters[index].content, extension=".txt")
        if edited is None:
            console.print("[warning]Edit cancelled (no changes)[/]")
            return None
        updated = editor.update_content(index, edited.rstrip("\n"))
        return updated

    updated = _run(_with_editor(story_id, recover, action), "Edit")
    if updated is not None:
        state = "complete" if updated.completed else "in progress"
        console.print(f"[success]Chapter {chapter} saved ({word_count(updated.content):,} words, {state})[/]")


@cli.command()
@_STORY_OPTION
@_CHAPTER_OPTION
@click.option("--undo", is_flag=True, help="Let the word count decide again")
@_recover_option
def complete(story_id, chapter, undo, recover):
    """Mark a chapter complete regardless of its length."""

    async def action(editor: StoryEditor):
        return editor.mark_complete(_chapter_index(editor, chapter), completed=not undo)

    updated = _run(_with_editor(story_id, recover, action), "Complete")
    state = "complete" if updated.completed else "in progress"
    console.print(f"[success]Chapter {chapter} is {state}[/]")


def main():
    """Entry point."""
    cli()


if __name__ == "__main__":
    main()
