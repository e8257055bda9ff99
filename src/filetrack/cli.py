"""filetrack CLI: issue tracker backed by plain JSON files under a project root.

Commands:
    filetrack init PATH                          create a project root and remember it
    filetrack recover                            sweep temp residue and report what is left
    filetrack category list|create|delete|rename
    filetrack issue list CATEGORY                paged, sortable listing
    filetrack issue show CATEGORY ID
    filetrack issue create CATEGORY              --title --description --priority --due
    filetrack issue update CATEGORY ID           --status --title ...
    filetrack comment add CATEGORY ID            --body --author [--attach FILE]...
    filetrack auth init                          write auth/contractor.json
    filetrack auth verify                        check a contractor password

The project root comes from --root, FILETRACK_ROOT or the last root saved in
config.json.  Contractor mode needs --password (or FILETRACK_PASSWORD) that
verifies against auth/contractor.json; everything else runs as Vendor.
"""

from __future__ import annotations

import contextlib
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

import click

from filetrack import credentials, jsonfmt
from filetrack.attachments import AttachmentInput
from filetrack.config import AppConfig, ConfigRepository
from filetrack.credentials import CredentialVerifier
from filetrack.errors import StoreError
from filetrack.issues import CommentInput, IssueInput, IssueUpdate
from filetrack.mode import Mode
from filetrack.models import Priority, Status
from filetrack.project import Project, create_root, detect_mode
from filetrack.query import SORT_KEYS, ListQuery

if TYPE_CHECKING:
    from collections.abc import Iterator

_LOG_FORMAT = "%(asctime)s %(levelname)s %(message)s"

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


@contextlib.contextmanager
def _store_errors() -> Iterator[None]:
    """Turn store failures into click errors carrying the error code."""
    try:
        yield
    except StoreError as exc:
        raise click.ClickException(f"[{exc.code}] {exc}") from exc


@dataclass
class _State:
    config_dir: Path
    root: str | None
    password: str | None
    repo: ConfigRepository
    config: AppConfig
    _project: Project | None = field(default=None, repr=False)

    def project(self, report_residue: bool = True) -> Project:
        if self._project is not None:
            return self._project
        root = self.root or self.config.last_project_root_path
        if not root:
            raise click.ClickException("No project root: pass --root or run `filetrack init PATH` first")
        with _store_errors():
            project = Project.open(root)
        if report_residue:
            for w in project.warnings:
                click.echo(f"Warning: [{w.error_code}] {w.message} {w.target}", err=True)
        if self.root and str(project.root) != self.config.last_project_root_path:
            with _store_errors():
                self.config = self.repo.save_last_project_root(project.root)
        self._project = project
        return project

    def verifier(self) -> CredentialVerifier:
        return CredentialVerifier(credentials.credential_path(self.config_dir))

    def mode(self) -> Mode:
        with _store_errors():
            return detect_mode(self.verifier(), self.password)


def _state(ctx: click.Context) -> _State:
    return ctx.find_object(_State)  # type: ignore[return-value]


# ---------------------------------------------------------------------------
# Root group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(package_name="filetrack")
@click.option("--root", envvar="FILETRACK_ROOT", default=None, help="Project root directory")
@click.option(
    "--config-dir",
    envvar="FILETRACK_CONFIG_DIR",
    default=None,
    help="Directory holding config.json and auth/ (default: user config dir)",
)
@click.option("--password", envvar="FILETRACK_PASSWORD", default=None, help="Contractor password")
@click.option("--verbose", "-v", is_flag=True, help="Debug logging")
@click.pass_context
def cli(ctx: click.Context, root: str | None, config_dir: str | None, password: str | None, verbose: bool) -> None:
    """filetrack: file-based issue tracker."""
    cfg_dir = Path(config_dir) if config_dir else Path(click.get_app_dir("filetrack"))
    repo = ConfigRepository(cfg_dir)
    with _store_errors():
        config, _ = repo.load()
    logging.basicConfig(level=logging.DEBUG if verbose else config.log.logging_level, format=_LOG_FORMAT)
    ctx.obj = _State(config_dir=cfg_dir, root=root, password=password, repo=repo, config=config)


# ---------------------------------------------------------------------------
# filetrack init / recover
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("path")
@click.pass_context
def init(ctx: click.Context, path: str) -> None:
    """Create a new project root at PATH and make it the default."""
    state = _state(ctx)
    with _store_errors():
        check = create_root(path)
        if not check.is_valid:
            raise click.ClickException(f"{path}: {check.message}")
        state.config = state.repo.save_last_project_root(check.normalized_path)
    click.echo(f"Created project root {check.normalized_path}")


@cli.command()
@click.pass_context
def recover(ctx: click.Context) -> None:
    """Delete recent temp residue and list anything older than 24 hours."""
    project = _state(ctx).project(report_residue=False)
    if not project.warnings:
        click.echo("No temp residue found")
        return
    for w in project.warnings:
        click.echo(f"[{w.error_code}] {w.target}")
        click.echo(f"  {w.message} {w.hint}")


# ---------------------------------------------------------------------------
# filetrack category ...
# ---------------------------------------------------------------------------


@cli.group()
def category() -> None:
    """Manage categories (create/delete/rename need contractor mode)."""


@category.command("list")
@click.pass_context
def category_list(ctx: click.Context) -> None:
    project = _state(ctx).project()
    with _store_errors():
        categories = project.categories.scan()
    if not categories:
        click.echo("No categories")
        return
    for c in categories:
        click.echo(f"{c.name}  (read-only)" if c.read_only else c.name)


@category.command("create")
@click.argument("name")
@click.pass_context
def category_create(ctx: click.Context, name: str) -> None:
    state = _state(ctx)
    project = state.project()
    with _store_errors():
        created = project.categories.create(name, state.mode())
    click.echo(f"Created category {created.name}")


@category.command("delete")
@click.argument("name")
@click.pass_context
def category_delete(ctx: click.Context, name: str) -> None:
    state = _state(ctx)
    project = state.project()
    with _store_errors():
        project.categories.delete(name, state.mode())
    click.echo(f"Deleted category {name}")


@category.command("rename")
@click.argument("old")
@click.argument("new")
@click.pass_context
def category_rename(ctx: click.Context, old: str, new: str) -> None:
    state = _state(ctx)
    project = state.project()
    with _store_errors():
        renamed = project.categories.rename(old, new, state.mode())
    click.echo(f"Renamed category {old} -> {renamed.name}")


# ---------------------------------------------------------------------------
# filetrack issue ...
# ---------------------------------------------------------------------------


@cli.group()
def issue() -> None:
    """List, show, create and update issues."""


@issue.command("list")
@click.argument("category_name", metavar="CATEGORY")
@click.option("--page", "-p", default=1, show_default=True)
@click.option("--page-size", "-n", default=0, help="Rows per page (default: ui.page_size from config.json)")
@click.option("--sort", "sort_by", default="issue_id", show_default=True, type=click.Choice(SORT_KEYS))
@click.option("--desc", is_flag=True, help="Descending order")
@click.pass_context
def issue_list(ctx: click.Context, category_name: str, page: int, page_size: int, sort_by: str, desc: bool) -> None:
    """List one page of a category's issues.

    \b
    filetrack issue list bugs                       # ascending issue id
    filetrack issue list bugs --sort due_date -p 2
    filetrack issue list bugs --sort priority --desc
    """
    state = _state(ctx)
    project = state.project()
    query = ListQuery(
        page=page,
        page_size=page_size or state.config.ui.page_size,
        sort_by=sort_by,
        sort_order="desc" if desc else "asc",
    )
    with _store_errors():
        result = project.issues.list_issues(category_name, query)

    for s in result.items:
        flag = "!" if s.schema_invalid else " "
        click.echo(f"{flag} {s.issue_id:<9}  {s.status:<9} {s.priority:<6} {s.due_date:<10}  {s.title}")
    pages = max(1, -(-result.total // result.page_size))
    click.echo(f"page {result.page}/{pages}, {result.total} issue(s)")
    for err in result.load_errors:
        click.echo(f"Warning: could not load {err.path}: {err.message}", err=True)


@issue.command("show")
@click.argument("category_name", metavar="CATEGORY")
@click.argument("issue_id")
@click.option("--json", "as_json", is_flag=True, help="Print the stored record")
@click.pass_context
def issue_show(ctx: click.Context, category_name: str, issue_id: str, as_json: bool) -> None:
    project = _state(ctx).project()
    with _store_errors():
        detail = project.issues.get(category_name, issue_id)
    i = detail.issue

    if as_json:
        click.echo(jsonfmt.dumps_issue(i).decode("utf-8"), nl=False)
        return

    click.echo(f"{i.issue_id}  {i.title}")
    click.echo(f"  category : {i.category}")
    click.echo(f"  status   : {i.status}")
    click.echo(f"  priority : {i.priority}")
    click.echo(f"  origin   : {i.origin_company}")
    if i.assignee:
        click.echo(f"  assignee : {i.assignee}")
    click.echo(f"  due      : {i.due_date}")
    click.echo(f"  updated  : {i.updated_at}")
    if detail.schema_invalid:
        click.echo("  (read-only: record does not match the issue schema)")
        for v in detail.violations:
            click.echo(f"    {v}")
    elif detail.read_only:
        click.echo("  (read-only)")
    click.echo("")
    click.echo(i.description)
    for c in i.comments:
        click.echo("")
        click.echo(f"--- {c.author_name} ({c.author_company}) {c.created_at}")
        click.echo(c.body)
        for a in c.attachments:
            click.echo(f"    [{a.file_name}] {a.relative_path}")


@issue.command("create")
@click.argument("category_name", metavar="CATEGORY")
@click.option("--title", "-t", required=True)
@click.option("--description", "-d", required=True)
@click.option("--priority", default=Priority.MEDIUM.value, show_default=True, type=click.Choice([p.value for p in Priority]))
@click.option("--due", "due_date", required=True, help="Due date, YYYY-MM-DD")
@click.option("--assignee", default=None)
@click.pass_context
def issue_create(
    ctx: click.Context,
    category_name: str,
    title: str,
    description: str,
    priority: str,
    due_date: str,
    assignee: str | None,
) -> None:
    state = _state(ctx)
    project = state.project()
    data = IssueInput(title=title, description=description, priority=priority, due_date=due_date, assignee=assignee)
    with _store_errors():
        created = project.issues.create(category_name, state.mode(), data)
    click.echo(created.issue_id)


@issue.command("update")
@click.argument("category_name", metavar="CATEGORY")
@click.argument("issue_id")
@click.option("--title", "-t", default=None)
@click.option("--description", "-d", default=None)
@click.option("--status", "-s", default=None, type=click.Choice([s.value for s in Status]))
@click.option("--priority", default=None, type=click.Choice([p.value for p in Priority]))
@click.option("--due", "due_date", default=None, help="Due date, YYYY-MM-DD")
@click.option("--assignee", default=None, help="Empty string clears the assignee")
@click.pass_context
def issue_update(
    ctx: click.Context,
    category_name: str,
    issue_id: str,
    title: str | None,
    description: str | None,
    status: str | None,
    priority: str | None,
    due_date: str | None,
    assignee: str | None,
) -> None:
    state = _state(ctx)
    project = state.project()
    changes = IssueUpdate(
        title=title,
        description=description,
        status=status,
        priority=priority,
        assignee=assignee,
        due_date=due_date,
    )
    with _store_errors():
        updated = project.issues.update(category_name, issue_id, state.mode(), changes)
    click.echo(f"Updated {updated.issue_id} ({updated.status})")


# ---------------------------------------------------------------------------
# filetrack comment add
# ---------------------------------------------------------------------------


@cli.group()
def comment() -> None:
    """Add comments to issues."""


@comment.command("add")
@click.argument("category_name", metavar="CATEGORY")
@click.argument("issue_id")
@click.option("--body", "-b", required=True)
@click.option("--author", "-a", "author_name", required=True)
@click.option(
    "--attach",
    "attach",
    multiple=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="File to attach (repeatable, up to 5)",
)
@click.pass_context
def comment_add(
    ctx: click.Context,
    category_name: str,
    issue_id: str,
    body: str,
    author_name: str,
    attach: tuple[Path, ...],
) -> None:
    state = _state(ctx)
    project = state.project()
    data = CommentInput(
        body=body,
        author_name=author_name,
        attachments=[AttachmentInput(p.name, p.read_bytes()) for p in attach],
    )
    with _store_errors():
        added = project.issues.add_comment(category_name, issue_id, state.mode(), data)
    click.echo(f"Added comment {added.comment_id} ({len(added.attachments)} attachment(s))")


# ---------------------------------------------------------------------------
# filetrack auth ...
# ---------------------------------------------------------------------------


@cli.group()
def auth() -> None:
    """Contractor credentials."""


@auth.command("init")
@click.option("--force", is_flag=True, help="Overwrite an existing credential file")
@click.password_option("--new-password", prompt="Password", confirmation_prompt="Confirm")
@click.pass_context
def auth_init(ctx: click.Context, force: bool, new_password: str) -> None:
    """Write auth/contractor.json for a new contractor password."""
    path = credentials.credential_path(_state(ctx).config_dir)
    with _store_errors():
        sealed = credentials.generate(new_password)
        credentials.write(path, sealed, force=force)
    click.echo(f"Wrote {path}")


@auth.command("verify")
@click.pass_context
def auth_verify(ctx: click.Context) -> None:
    """Check a password against auth/contractor.json."""
    state = _state(ctx)
    verifier = state.verifier()
    if not verifier.exists():
        raise click.ClickException(f"No credential file at {verifier.path}")
    password = state.password or click.prompt("Password", hide_input=True)
    with _store_errors():
        ok = verifier.verify(password)
    if not ok:
        raise click.ClickException("password verification failed")
    click.echo(Mode.CONTRACTOR.value)
