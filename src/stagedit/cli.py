"""Command line front end."""

import base64
import json
import mimetypes
import uuid
from datetime import timedelta
from pathlib import Path

import click

from stagedit import __version__
from stagedit.changeset import apply_change, render_diff
from stagedit.checkpoints import CheckpointStore, forward_changes, inverse_changes, reverse_changes
from stagedit.config import Config
from stagedit.mode import Mode
from stagedit.orchestrator import AgentRequest, AgentResponse, Orchestrator
from stagedit.store import DirectoryProjectStore, StoreError
from stagedit.style import bold, colorize_diff, cyan, dim, green, red, section_header, yellow

DEFAULT_SESSION = "default"
DEFAULT_PROJECT_ID = "default"


def _image_data_url(path: Path) -> str:
    media_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
    encoded = base64.b64encode(path.read_bytes()).decode("ascii")
    return f"data:{media_type};base64,{encoded}"


def _checkpoint_store(project: Path, config: Config) -> CheckpointStore:
    return CheckpointStore(
        project,
        project_id=DEFAULT_PROJECT_ID,
        max_count=config.checkpoint_max_count,
        max_age=timedelta(hours=config.checkpoint_max_age_hours),
    )


def _print_response(response: AgentResponse) -> None:
    if response.multiple_results is not None:
        for result in response.multiple_results:
            if result.error:
                click.echo(section_header(result.model, "error"))
                click.echo(red(result.error))
            else:
                click.echo(section_header(result.model))
                click.echo(result.content)
        return

    click.echo(section_header(f"ASSISTANT ({response.used_model})"))
    click.echo(response.content)

    if response.tool_calls:
        click.echo("")
        click.echo(dim(f"{len(response.tool_calls)} tool call(s):"))
        for item in response.tool_calls:
            status = red("error") if "error" in item.result else green("ok")
            click.echo(dim(f"  - {item.tool} {json.dumps(item.args)[:80]} ") + status)

    if response.proposed_changes:
        click.echo("")
        click.echo(section_header("PROPOSED CHANGES", "warning"))
        for change in response.proposed_changes:
            click.echo(bold(f"{change.action.upper()} {change.file_path}"))
            diff = render_diff(change)
            if diff:
                click.echo(colorize_diff(diff))


class ApplyError(StoreError):
    """A change failed after earlier ones in the same batch were written."""

    def __init__(self, cause: StoreError, applied: list):
        super().__init__(str(cause))
        self.applied = applied


def _apply_all(store: DirectoryProjectStore, changes) -> None:
    """Apply changes in order.

    Raises:
        ApplyError: On the first failing change, carrying the changes
            already written.
    """
    applied = []
    for change in changes:
        try:
            apply_change(store, DEFAULT_PROJECT_ID, change)
        except StoreError as e:
            raise ApplyError(e, applied) from e
        applied.append(change)
        click.echo(green(f"{change.action} {change.file_path}"))


@click.group()
@click.version_option(__version__, "--version", "-v", prog_name="stagedit")
def cli():
    """stagedit: coding assistant with reviewable, staged edits.

    \b
    The model reads and edits your project through tools, but edits are
    staged in memory and shown as a diff. Nothing is written until you
    accept the changes (--apply), and applied changes can be undone.

    \b
    EXAMPLES:
      stagedit ask "Explain src/app.py" --mode ask
      stagedit ask "Add a README" --apply
      stagedit ask "Compare approaches" --models gpt-4o,claude-sonnet-4-20250514
      stagedit undo
    """
    pass


@cli.command("ask")
@click.argument("prompt")
@click.option("--model", type=str, help="Model id (e.g. gpt-4o, claude-sonnet-4-20250514, gemini-2.0-flash)")
@click.option(
    "--mode", "-m",
    type=click.Choice([m.value for m in Mode]),
    default=Mode.AGENT.value,
    help="ask / plan are read-only; agent may change files",
)
@click.option("--project", "-p", type=click.Path(file_okay=False, path_type=Path), default=".",
              help="Project directory")
@click.option("--file", "file_", type=click.Path(dir_okay=False, path_type=Path),
              help="File whose content is sent along with the prompt")
@click.option("--image", "images", multiple=True, type=click.Path(exists=True, dir_okay=False, path_type=Path),
              help="Image to attach (repeatable)")
@click.option("--auto", "auto_mode", is_flag=True, help="Pick the first configured model that has a key")
@click.option("--max", "max_mode", is_flag=True, help="Allow longer answers")
@click.option("--models", type=str, help="Comma-separated models to ask in parallel (no tools)")
@click.option("--no-review", is_flag=True, help="Write changes immediately instead of staging them")
@click.option("--apply", "apply_", is_flag=True, help="Accept all proposed changes and record a checkpoint")
@click.option("--json", "as_json", is_flag=True, help="Print the raw JSON response")
@click.option("--session", default=DEFAULT_SESSION, show_default=True, help="Checkpoint session id")
@click.option("--debug", is_flag=True, help="Print debug output to stderr")
def ask_cmd(prompt, model, mode, project, file_, images, auto_mode, max_mode, models,
            no_review, apply_, as_json, session, debug):
    """Run one request against a project directory."""
    project = project.resolve()
    config = Config.load(project, debug=debug)
    store = DirectoryProjectStore(project)

    file_text = ""
    if file_:
        file_path = file_ if file_.is_absolute() else project / file_
        try:
            file_text = file_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise click.ClickException(f"Cannot read {file_}: {e}")

    selected = [m.strip() for m in (models or "").split(",") if m.strip()]
    request = AgentRequest(
        project_id=DEFAULT_PROJECT_ID,
        prompt=prompt,
        file_text=file_text,
        model=model or "",
        mode=mode,
        images=[_image_data_url(path) for path in images],
        auto_mode=auto_mode,
        max_mode=max_mode,
        use_multiple_models=bool(selected),
        selected_models=selected,
        review_mode=False if no_review else None,
    )

    response = Orchestrator(store, config=config).handle(request)

    if as_json:
        click.echo(json.dumps(response.to_dict(), indent=2))
    elif response.ok:
        _print_response(response)

    if not response.ok:
        if as_json:
            raise SystemExit(1)
        raise click.ClickException(response.error)

    if apply_ and response.proposed_changes:
        checkpoints = _checkpoint_store(project, config)
        state = checkpoints.load_or_create(session)
        applied, failure = response.proposed_changes, None
        try:
            _apply_all(store, response.proposed_changes)
        except ApplyError as e:
            applied, failure = e.applied, e

        # Whatever reached the disk stays undoable
        if applied:
            checkpoint = checkpoints.record(
                state,
                anchor_message_id=uuid.uuid4().hex[:12],
                changes=applied,
                description=prompt[:80],
            )
            checkpoints.save(state)
            click.echo(dim(f"Checkpoint {checkpoint.id} recorded (session {session})"))
        if failure is not None:
            raise click.ClickException(
                f"Apply failed: {failure} ({len(applied)} of "
                f"{len(response.proposed_changes)} change(s) applied)"
            )


@cli.command("checkpoints")
@click.option("--project", "-p", type=click.Path(file_okay=False, path_type=Path), default=".")
@click.option("--session", default=DEFAULT_SESSION, show_default=True)
def checkpoints_cmd(project, session):
    """List checkpoints of a session, newest last."""
    project = project.resolve()
    state = _checkpoint_store(project, Config.load(project)).load(session)
    if state is None or not state.checkpoints:
        click.echo("No checkpoints.")
        return
    for checkpoint in state.checkpoints:
        marker = cyan("*") if checkpoint.id == state.head_checkpoint_id else " "
        paths = ", ".join(op.path for op in checkpoint.ops)
        click.echo(f"{marker} {checkpoint.id}  {checkpoint.created_at}  {checkpoint.description}")
        click.echo(dim(f"    {paths}"))


def _move_head(project: Path, session: str, forward: bool) -> None:
    project = project.resolve()
    config = Config.load(project)
    checkpoints = _checkpoint_store(project, config)
    state = checkpoints.load(session)
    checkpoint = None
    if state is not None:
        checkpoint = checkpoints.redo(state) if forward else checkpoints.undo(state)
    if checkpoint is None:
        click.echo(yellow("Nothing to redo." if forward else "Nothing to undo."))
        return

    verb = "Redo" if forward else "Undo"
    store = DirectoryProjectStore(project)
    changes = forward_changes(checkpoint) if forward else inverse_changes(checkpoint)
    try:
        _apply_all(store, changes)
    except ApplyError as e:
        # The head is only saved once every change is written
        try:
            _apply_all(store, reverse_changes(e.applied))
        except ApplyError as rollback:
            raise click.ClickException(
                f"{verb} failed: {e}. Rolling back also failed: {rollback}"
            )
        raise click.ClickException(f"{verb} failed: {e}. Partial changes were rolled back.")
    checkpoints.save(state)
    click.echo(dim(f"{'Re-applied' if forward else 'Reverted'} checkpoint {checkpoint.id}"))


@cli.command("undo")
@click.option("--project", "-p", type=click.Path(file_okay=False, path_type=Path), default=".")
@click.option("--session", default=DEFAULT_SESSION, show_default=True)
def undo_cmd(project, session):
    """Revert the head checkpoint."""
    _move_head(project, session, forward=False)


@cli.command("redo")
@click.option("--project", "-p", type=click.Path(file_okay=False, path_type=Path), default=".")
@click.option("--session", default=DEFAULT_SESSION, show_default=True)
def redo_cmd(project, session):
    """Re-apply the checkpoint after the head."""
    _move_head(project, session, forward=True)


@cli.command("config")
@click.option("--project", "-p", type=click.Path(file_okay=False, path_type=Path), default=".")
def config_cmd(project):
    """Show resolved configuration and where it came from.

    \b
    CONFIG LOCATIONS:
      Global:  ~/.stagedit/config.toml
      Local:   <project>/.stagedit/config.toml

    \b
    PRIORITY (highest to lowest):
      1. Environment variables (ANTHROPIC_API_KEY, STAGEDIT_MODEL, ...)
      2. Local config
      3. Global config
    """
    click.echo(Config.load(project.resolve()).show_config_info())


def main():
    """Entry point for the stagedit CLI."""
    cli()


if __name__ == "__main__":
    main()
