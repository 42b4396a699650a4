# cli.py
from __future__ import annotations

import sys

import click

from stagemake.engine import run_build, scan
from stagemake.errors import BuildError
from stagemake.runner import JobFailure
from stagemake.ui.console import Console
from stagemake.walker import discover_stages

# exit status for fatal errors other than a failing job
EXIT_BUILD_ERROR = 2


def parse_overrides(ctx, param, values) -> dict[str, str]:
    """click callback: turn repeated NAME=VALUE options into a dict."""
    out: dict[str, str] = {}
    for item in values:
        name, sep, value = item.partition("=")
        if not sep or not name:
            raise click.BadParameter(f"expected NAME=VALUE, got {item!r}")
        out[name] = value
    return out


@click.group()
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Show full reasoning, materialized commands and stack traces",
)
@click.option(
    "--terse",
    is_flag=True,
    default=False,
    help="Print only destination and reason for each finished job",
)
@click.pass_context
def cli(ctx, debug, terse):
    """stagemake: incremental, stage-ordered directory-tree builds."""
    ctx.ensure_object(dict)
    ctx.obj["console"] = Console(debug=debug, terse=terse)
    ctx.obj["debug"] = debug


@cli.command()
@click.argument("root", required=False, default=".", type=click.Path(exists=True, file_okay=False))
@click.option(
    "-D", "--define", "overrides",
    multiple=True,
    callback=parse_overrides,
    metavar="NAME=VALUE",
    help="Environment override that no descriptor can replace (repeatable)",
)
@click.option("--target", default=None, help="Alternate top-level target from the root Stagefile")
@click.option("--cache-file", default=None, type=click.Path(dir_okay=False), help="Cache file (defaults to ROOT/.stagemake-cache.json)")
@click.option("--plugin", "plugins", multiple=True, type=click.Path(exists=True, dir_okay=False), help="Python file registering custom destination functions")
@click.pass_context
def build(ctx, root, overrides, target, cache_file, plugins):
    """Bring every destination under ROOT up to date."""
    console: Console = ctx.obj["console"]

    try:
        result = run_build(
            root,
            console=console,
            target=target,
            overrides=overrides,
            cache_file=cache_file,
            plugins=plugins,
        )
        console.print_results(result.executed)

    except JobFailure as e:
        sys.exit(e.exit_code)
    except BuildError as e:
        console.print_error(e.kind, e.message, details=[f"{k}={v}" for k, v in e.details.items()])
        sys.exit(EXIT_BUILD_ERROR)
    except KeyboardInterrupt:
        console.print_info("\nInterrupted by user")
        sys.exit(130)
    except Exception as e:
        console.print_exception(e)
        sys.exit(1)


@cli.command()
@click.argument("root", required=False, default=".", type=click.Path(exists=True, file_okay=False))
@click.option(
    "-D", "--define", "overrides",
    multiple=True,
    callback=parse_overrides,
    metavar="NAME=VALUE",
    help="Environment override, as for build (repeatable)",
)
@click.option("--target", default=None, help="Alternate top-level target from the root Stagefile")
@click.pass_context
def stages(ctx, root, overrides, target):
    """List stages and the directories that take part in the build."""
    console: Console = ctx.obj["console"]

    try:
        walk_ctx, nodes = scan(root, console=console, target=target, overrides=overrides)
    except BuildError as e:
        console.print_error(e.kind, e.message, details=[f"{k}={v}" for k, v in e.details.items()])
        sys.exit(EXIT_BUILD_ERROR)

    max_stage = discover_stages(nodes)
    for stage in range(max_stage + 1):
        name = walk_ctx.stage_names.get(stage)
        dirs = [n.key for n in sorted(nodes, key=lambda n: n.key) if n.descriptor.sections(stage)]
        title = f"stage {stage}" + (f" ({name})" if name else "")
        click.echo(f"{title}: {', '.join(dirs) if dirs else '-'}")
    for job in walk_ctx.forced_jobs:
        click.echo(f"forced: {job.dir_key}: {job.body}")


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
