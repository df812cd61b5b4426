"""CLI adapter for ``flowsource_migrate`` built on ``lib_cli_exit_tools``.

Purpose
-------
Expose the migration and its building blocks (merge, validate, extract,
provider wiring) as commands so operators can run a full migration or a
single step against an existing application.

Contents
--------
* :data:`CLICK_CONTEXT_SETTINGS` – shared Click settings ensuring ``-h`` works.
* :func:`cli` – root command that wires global traceback handling into
  ``lib_cli_exit_tools``.
* :func:`cli_info` – prints distribution metadata.
* :func:`cli_merge` / :func:`cli_validate` / :func:`cli_extract` /
  :func:`cli_wire_provider` – single-step commands.
* :func:`cli_migrate` – full run with the end-of-run summary.
* :func:`main` – entry point used by ``console_scripts`` registration.

System Role
-----------
The CLI lives in the outermost layer. It calls the composition root and the
application services and never reaches into adapter details beyond the
markdown parser. ``lib_cli_exit_tools`` centralises the exit code strategy:
fatal migration errors and failed summaries both leave a non-zero status.
"""

from __future__ import annotations

import json
import sys
from importlib import metadata
from pathlib import Path
from typing import Final, Optional, Sequence

import lib_cli_exit_tools
import rich_click as click

from .adapters.file_loaders.structured import YAMLFileLoader
from .adapters.markdown.default import MarkdownDocumentationParser
from .application.extract import DocFragmentExtractor
from .application.merger import ConfigMerger
from .application.patcher import SourcePatcher
from .application.providers import PROVIDERS, frontend_edits, get_provider, section_edits
from .core import read_settings, run_migration
from .domain.errors import MigrationError
from .domain.settings import CATALOG_CHOICES, INTEGRATION_METHODS
from .observability import configure_logging, get_logger

CLICK_CONTEXT_SETTINGS = {"help_option_names": ["-h", "--help"]}
_TRACEBACK_SUMMARY_LIMIT: Final[int] = 500
_TRACEBACK_VERBOSE_LIMIT: Final[int] = 10_000
_DISTRIBUTION: Final[str] = "flowsource-migrate"


def _resolve_version() -> str:
    """Return the installed package version, ``"0.0.0"`` when not installed."""

    try:
        return metadata.version(_DISTRIBUTION)
    except metadata.PackageNotFoundError:
        return "0.0.0"


@click.group(
    help="Turn a Backstage skeleton into a FlowSource application",
    context_settings=CLICK_CONTEXT_SETTINGS,
    invoke_without_command=False,
)
@click.version_option(
    version=_resolve_version(),
    prog_name="flowsource-migrate",
    message="flowsource-migrate version %(version)s",
)
@click.option(
    "--traceback/--no-traceback",
    is_flag=True,
    default=False,
    help="Show full Python traceback on errors",
)
@click.pass_context
def cli(ctx: click.Context, traceback: bool) -> None:
    """Root command configuring traceback handling for all subcommands.

    Side Effects
        Mutates ``lib_cli_exit_tools.config.traceback`` and
        ``lib_cli_exit_tools.config.traceback_force_color``.
    """

    ctx.ensure_object(dict)
    ctx.obj["traceback"] = traceback
    lib_cli_exit_tools.config.traceback = traceback
    lib_cli_exit_tools.config.traceback_force_color = traceback


@cli.command("info", context_settings=CLICK_CONTEXT_SETTINGS)
def cli_info() -> None:
    """Print basic distribution metadata so users can confirm installation."""

    try:
        meta = metadata.metadata(_DISTRIBUTION)
    except metadata.PackageNotFoundError:
        click.echo(f"{_DISTRIBUTION} (metadata unavailable)")
        return
    click.echo(f"Info for {meta.get('Name', _DISTRIBUTION)}:")
    click.echo(f"  Version         : {meta.get('Version', _resolve_version())}")
    click.echo(f"  Requires-Python : {meta.get('Requires-Python', '>=3.10')}")
    summary = meta.get("Summary")
    if summary:
        click.echo(f"  Summary         : {summary}")


@cli.command("merge", context_settings=CLICK_CONTEXT_SETTINGS)
@click.argument("target", type=click.Path(path_type=Path, dir_okay=False))
@click.argument("fragment", type=click.Path(path_type=Path, exists=True, dir_okay=False, readable=True))
@click.option("--label", default=None, help="Comment line recorded in the target's header")
def cli_merge(target: Path, fragment: Path, label: Optional[str]) -> None:
    """Merge the YAML FRAGMENT file into the TARGET configuration file."""

    payload = YAMLFileLoader().load(str(fragment))
    if not ConfigMerger().merge_into_file(target, payload, label):
        raise click.ClickException(f"Could not merge {fragment} into {target}")
    click.echo(f"Merged {fragment} into {target}")


@cli.command("validate", context_settings=CLICK_CONTEXT_SETTINGS)
@click.argument("config", type=click.Path(path_type=Path, exists=True, dir_okay=False, readable=True))
@click.option("--strict/--no-strict", default=False, help="Exit with status 1 when warnings are found")
def cli_validate(config: Path, strict: bool) -> None:
    """Report duplicate providers, secrets, hosts and catalog targets as JSON."""

    report = ConfigMerger().validate(config.read_text(encoding="utf-8"))
    click.echo(json.dumps(report.to_dict(), indent=2))
    if strict and not report.is_valid:
        raise SystemExit(1)


@cli.command("extract", context_settings=CLICK_CONTEXT_SETTINGS)
@click.argument("document", type=click.Path(path_type=Path, exists=True, dir_okay=False, readable=True))
@click.option("--language", default="yaml", show_default=True, help="Code block language tag to select")
@click.option("--keyword", "keywords", multiple=True, help="Keep blocks containing this word (repeatable)")
@click.option(
    "--merge-into",
    type=click.Path(path_type=Path, dir_okay=False),
    default=None,
    help="Merge the fragments into this YAML file instead of printing them",
)
@click.option("--label", default=None, help="Header comment used with --merge-into")
def cli_extract(
    document: Path,
    language: str,
    keywords: Sequence[str],
    merge_into: Optional[Path],
    label: Optional[str],
) -> None:
    """Extract configuration fragments from a markdown DOCUMENT."""

    tree = MarkdownDocumentationParser().parse(document)
    if merge_into is None:
        fragments = DocFragmentExtractor().extract_fragments(tree, language, keywords)
        click.echo(json.dumps(fragments, indent=2))
        return
    extractor = DocFragmentExtractor(ConfigMerger())
    count = extractor.merge_documentation(tree, merge_into, language_tag=language, keywords=keywords, label=label)
    click.echo(f"Merged {count} fragment(s) into {merge_into}")


@cli.command("wire-provider", context_settings=CLICK_CONTEXT_SETTINGS)
@click.argument("app_tsx", type=click.Path(path_type=Path, exists=True, dir_okay=False, readable=True))
@click.option(
    "--provider",
    type=click.Choice(sorted(PROVIDERS), case_sensitive=False),
    default="github",
    show_default=True,
)
@click.option("--dry-run/--write", default=False, help="Print the patched file instead of writing it")
def cli_wire_provider(app_tsx: Path, provider: str, dry_run: bool) -> None:
    """Register a sign-in provider in the frontend APP_TSX file."""

    patcher = SourcePatcher()
    wiring = get_provider(provider)
    edits = [*frontend_edits(wiring, patcher), *section_edits(wiring, patcher)]
    if dry_run:
        text = app_tsx.read_text(encoding="utf-8")
        for edit in edits:
            text = edit(text)
        click.echo(text, nl=False)
        return
    changed = patcher.patch_file(app_tsx, edits)
    click.echo(f"Updated {app_tsx}" if changed else f"{app_tsx} already wired for {wiring.title}")


@cli.command("migrate", context_settings=CLICK_CONTEXT_SETTINGS)
@click.option(
    "--config",
    "config_file",
    type=click.Path(path_type=Path, exists=True, dir_okay=False, readable=True),
    default=None,
    help="Settings file (TOML, JSON or YAML)",
)
@click.option("--source", type=click.Path(path_type=Path, file_okay=False), default=None, help="FlowSource source tree")
@click.option("--destination", type=click.Path(path_type=Path, file_okay=False), default=None, help="Application directory")
@click.option("--name", "app_name", default=None, help="Application name used when scaffolding")
@click.option("--phase", type=int, default=None, help="1 = UI theme, 2 = + authentication, 3 = + templates and plugins")
@click.option("--provider", default=None, help=f"Sign-in provider ({', '.join(sorted(PROVIDERS))})")
@click.option("--integration", default=None, help=f"Integration method ({', '.join(INTEGRATION_METHODS)})")
@click.option("--dual/--no-dual", "dual_config", default=None, help="Force dual template/value output on or off")
@click.option("--template", "templates", multiple=True, help="Software template to install (repeatable)")
@click.option("--plugin", "plugins", multiple=True, help="FlowSource plugin to integrate (repeatable)")
@click.option(
    "--catalog",
    "catalog",
    type=click.Choice(CATALOG_CHOICES, case_sensitive=False),
    multiple=True,
    help="Catalog onboarding choice (repeatable)",
)
@click.option("--catalog-repo", "catalog_repositories", multiple=True, help="Remote catalog file URL (repeatable)")
@click.option("--skip-scaffold", is_flag=True, default=None, help="Fail instead of scaffolding a missing skeleton")
@click.option(
    "--start-dir",
    type=click.Path(path_type=Path, exists=True, file_okay=False),
    default=None,
    help="Starting directory for the .env upward search (defaults to CWD)",
)
@click.option("--verbose", is_flag=True, default=False, help="Log debug events")
@click.option("--json", "as_json", is_flag=True, default=False, help="Print the summary as JSON")
def cli_migrate(
    config_file: Optional[Path],
    source: Optional[Path],
    destination: Optional[Path],
    app_name: Optional[str],
    phase: Optional[int],
    provider: Optional[str],
    integration: Optional[str],
    dual_config: Optional[bool],
    templates: Sequence[str],
    plugins: Sequence[str],
    catalog: Sequence[str],
    catalog_repositories: Sequence[str],
    skip_scaffold: Optional[bool],
    start_dir: Optional[Path],
    verbose: bool,
    as_json: bool,
) -> None:
    """Run the migration phases and print the end-of-run summary.

    Exits with status 1 when any step failed; fatal errors (unsupported
    phase or provider, missing source tree or skeleton) abort the run.
    """

    overrides = {
        "source": str(source) if source else None,
        "destination": str(destination) if destination else None,
        "app_name": app_name,
        "phase": phase,
        "provider": provider,
        "integration": integration,
        "dual_config": dual_config,
        "templates": list(templates) or None,
        "plugins": list(plugins) or None,
        "catalog": list(catalog) or None,
        "catalog_repositories": list(catalog_repositories) or None,
        "skip_scaffold": skip_scaffold,
    }
    settings = read_settings(
        config_file=config_file,
        start_dir=str(start_dir) if start_dir else None,
        overrides=overrides,
    )
    handler = configure_logging(verbose=verbose)
    try:
        summary = run_migration(settings)
    finally:
        get_logger().removeHandler(handler)
    click.echo(json.dumps(summary.to_dict(), indent=2) if as_json else summary.render())
    if not summary.succeeded:
        raise SystemExit(summary.exit_code)


def main(argv: Optional[Sequence[str]] = None, *, restore_traceback: bool = True) -> int:
    """Execute the CLI with shared exit handling and return the exit code."""

    previous_traceback = getattr(lib_cli_exit_tools.config, "traceback", False)
    previous_force_color = getattr(lib_cli_exit_tools.config, "traceback_force_color", False)
    try:
        try:
            return lib_cli_exit_tools.run_cli(
                cli,
                argv=list(argv) if argv is not None else None,
                prog_name="flowsource-migrate",
            )
        except BaseException as exc:  # noqa: BLE001 - funnel through shared printers
            lib_cli_exit_tools.print_exception_message(
                trace_back=lib_cli_exit_tools.config.traceback,
                length_limit=(
                    _TRACEBACK_VERBOSE_LIMIT if lib_cli_exit_tools.config.traceback else _TRACEBACK_SUMMARY_LIMIT
                ),
            )
            return lib_cli_exit_tools.get_system_exit_code(exc)
    finally:
        if restore_traceback:
            lib_cli_exit_tools.config.traceback = previous_traceback
            lib_cli_exit_tools.config.traceback_force_color = previous_force_color


__all__ = ["cli", "main", "MigrationError"]


if __name__ == "__main__":  # pragma: no cover - exercised via console entry point
    raise SystemExit(main(sys.argv[1:]))
