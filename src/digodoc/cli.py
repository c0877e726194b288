"""digodoc command line.

    digodoc                      scan the switch and print a summary
    digodoc MODULE               show the source of MODULE, or list its owners
    digodoc --html / --www       generate / open the documentation
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

import click
import structlog
from pydantic import ValidationError

from digodoc import __version__
from digodoc.cache import load_snapshot, save_snapshot
from digodoc.config import Settings
from digodoc.errors import DigodocError, ErrorCode, FailureLog
from digodoc.index import find_modules
from digodoc.logging_config import configure_logging
from digodoc.models.index import Module, SwitchIndex
from digodoc.process import generate_docs, open_browser, view_file
from digodoc.scan import scan_switch
from digodoc.switch import SwitchResolver

log = structlog.get_logger()

_USAGE_ERRORS = frozenset({ErrorCode.CONFIG_INVALID, ErrorCode.DOCS_MISSING})


class Run:
    """Settings, switch resolver and failure log shared by one invocation."""

    def __init__(self, settings: Settings, cached: bool, objinfo: bool) -> None:
        self.settings = settings
        self.cached = cached
        self.objinfo = objinfo and settings.scan.objinfo
        self.resolver = SwitchResolver(settings.switch_prefix)
        self.failures = FailureLog()

    def get_index(self, objinfo: bool | None = None) -> SwitchIndex:
        if self.cached:
            index = asyncio.run(load_snapshot(Path(self.settings.cache.path)))
            # module paths must resolve against the switch the snapshot describes
            self.resolver = SwitchResolver(index.switch_prefix)
            return index
        objinfo = self.objinfo if objinfo is None else objinfo
        index = scan_switch(
            self.resolver.resolve(),
            self.failures,
            objinfo_command=self.settings.scan.objinfo_command if objinfo else None,
        )
        if objinfo:
            try:
                asyncio.run(save_snapshot(Path(self.settings.cache.path), index))
            except DigodocError as exc:
                if not exc.recoverable:
                    raise
                self.failures.record(exc.code, self.settings.cache.path, exc.message)
        return index


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------


def print_summary(index: SwitchIndex, as_json: bool) -> None:
    counts: dict[str, int] = {}
    for module in index.iter_modules():
        counts[module.library] = counts.get(module.library, 0) + 1

    if as_json:
        data = {
            "switch_prefix": index.switch_prefix,
            "packages": {
                pkg.name: {
                    "version": pkg.version,
                    "files": len(pkg.files),
                    "libraries": {lib: counts.get(lib, 0) for lib in sorted(pkg.libraries)},
                }
                for pkg in index.packages.values()
            },
        }
        click.echo(json.dumps(data, indent=2))
        return

    for pkg in index.packages.values():
        click.echo(f"{pkg.name} {pkg.version}".rstrip())
        for lib in sorted(pkg.libraries):
            click.echo(f"  {lib} ({counts.get(lib, 0)} modules)")
    click.echo(
        f"{len(index.packages)} packages, {len(index.libraries)} libraries, "
        f"{index.module_count} modules"
    )


def _module_json(module: Module, prefix: Path) -> dict[str, object]:
    return {
        "name": module.name,
        "package": module.package,
        "library": module.library,
        "files": [str(prefix / module.file(ext)) for ext in sorted(module.exts)],
    }


def search(run: Run, name: str, as_json: bool) -> None:
    # a lookup does not need archive inspection
    index = run.get_index(objinfo=False)
    matches = find_modules(index, name)
    prefix = run.resolver.resolve()

    if as_json:
        click.echo(json.dumps([_module_json(m, prefix) for m in matches], indent=2))
        return

    if len(matches) > 1:
        click.echo(f'Found {len(matches)} occurrences of "{name}":')
        for module in matches:
            click.echo(f"* {module.qualified_name}")
        return

    module = matches[0]
    source = module.source_file()
    if source is None:
        click.echo(f"{module.qualified_name}: no source, see {prefix / module.directory}")
        return
    view_file(run.settings.docs.pager, prefix / source, run.failures)


def report_failures(failures: FailureLog) -> None:
    for i, failure in enumerate(failures, start=1):
        click.echo(f"{i} failure: {failure}", err=True)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(__version__, prog_name="digodoc")
@click.option("--html", "action", flag_value="html", help="Build the html documentation.")
@click.option("--www", "action", flag_value="www", help="Open the html documentation.")
@click.option(
    "-k", "--continue-on-error", is_flag=True, help="Record generator failures and go on."
)
@click.option("--cached", is_flag=True, help="Use the cached state instead of scanning.")
@click.option("--no-objinfo", is_flag=True, help="Do not call ocamlobjinfo on archives.")
@click.option(
    "--switch-prefix",
    metavar="SWITCH",
    help="Scan SWITCH instead of the current opam switch (ignored with --cached).",
)
@click.option("--json", "as_json", is_flag=True, help="Print results as JSON.")
@click.argument("module", required=False)
@click.pass_context
def main(
    ctx: click.Context,
    action: str | None,
    continue_on_error: bool,
    cached: bool,
    no_objinfo: bool,
    switch_prefix: str | None,
    as_json: bool,
    module: str | None,
) -> None:
    """Index the packages, libraries and modules of an opam switch.

    If MODULE is given, display the source of the module with that name.
    """
    overrides: dict[str, object] = {}
    if switch_prefix:
        overrides["switch_prefix"] = switch_prefix
    try:
        settings = Settings(**overrides)
    except ValidationError as exc:
        click.echo(f"Error: invalid configuration\n{exc}", err=True)
        ctx.exit(2)

    configure_logging(settings.logging)
    run = Run(settings, cached=cached, objinfo=not no_objinfo)

    exit_code = 0
    try:
        if module is not None:
            search(run, module, as_json)
        elif action == "html":
            generate_docs(
                run.get_index(),
                settings.docs,
                run.failures,
                continue_on_error=continue_on_error,
            )
        elif action == "www":
            open_browser(settings.docs.browser, Path(settings.docs.html_dir), run.failures)
        else:
            print_summary(run.get_index(), as_json)
    except DigodocError as exc:
        click.echo(f"Error: {exc.message}", err=True)
        log.debug("command_failed", code=str(exc.code))
        exit_code = 2 if exc.code in _USAGE_ERRORS else 1
    finally:
        report_failures(run.failures)
    ctx.exit(exit_code)
