"""CLI entrypoint for zkceremony."""

import logging
import os
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler

from . import __version__
from .archive import AwsCliArchiveClient, LocalArchiveClient
from .archive.client import ArchiveClient
from .commands.common import print_error
from .config import DEFAULT_ROOT, CeremonyConfig, CeremonySettings, load_settings
from .errors import ConfigurationError
from .transform import SnarkjsRunner


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False, show_time=False)],
        force=True,
    )


def _archive(ctx: click.Context) -> ArchiveClient:
    """Build the archive client, failing before any ceremony stage runs."""
    obj = ctx.obj
    if obj.get("archive") is not None:
        return obj["archive"]

    if obj["archive_dir"] is not None:
        archive: ArchiveClient = LocalArchiveClient(obj["archive_dir"])
    else:
        try:
            config = CeremonyConfig.from_env(os.environ, root=obj["root"], settings=obj["settings"])
        except ConfigurationError as e:
            print_error(Console(stderr=True), e)
            sys.exit(1)
        archive = AwsCliArchiveClient(config)
    obj["archive"] = archive
    return archive


@click.group()
@click.version_option(__version__, prog_name="zkceremony")
@click.option(
    "--root",
    "-r",
    type=click.Path(file_okay=False, dir_okay=True, path_type=Path),
    envvar="CEREMONY_ROOT",
    default=DEFAULT_ROOT,
    show_default=True,
    help="Local contributions root (or set CEREMONY_ROOT)",
)
@click.option(
    "--settings",
    "settings_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    envvar="CEREMONY_SETTINGS",
    default=None,
    help="TOML file overriding ceremony settings (or set CEREMONY_SETTINGS)",
)
@click.option(
    "--archive-dir",
    type=click.Path(file_okay=False, dir_okay=True, path_type=Path),
    envvar="CEREMONY_ARCHIVE_DIR",
    default=None,
    help="Use a directory as the archive instead of S3 (or set CEREMONY_ARCHIVE_DIR)",
)
@click.option("--verbose", is_flag=True, help="Show diagnostic logging")
@click.pass_context
def cli(
    ctx: click.Context,
    root: Path,
    settings_path: Path | None,
    archive_dir: Path | None,
    verbose: bool,
) -> None:
    """zkceremony - coordinate a multi-party trusted setup ceremony.

    Participants contribute in turn, each on top of the latest archived
    folder; the coordinator closes the ceremony with a public beacon.

    Archive access needs AWS_ACCESS_KEY_ID, AWS_SECRET_ACCESS_KEY,
    AWS_DEFAULT_REGION, AWS_ENDPOINT_URL and S3BUCKET in the environment.
    """
    _configure_logging(verbose)
    ctx.ensure_object(dict)

    settings = CeremonySettings()
    if settings_path is not None:
        try:
            settings = load_settings(settings_path)
        except ConfigurationError as e:
            print_error(Console(stderr=True), e)
            sys.exit(1)

    ctx.obj["root"] = root
    ctx.obj["settings"] = settings
    ctx.obj["archive_dir"] = archive_dir


@cli.command()
@click.option("--name", "contributor", type=str, prompt="Enter your GitHub username", help="Contributor identity")
@click.option(
    "--extra-entropy/--no-extra-entropy",
    default=None,
    help="Add hidden keyboard entropy (asks when neither flag is given)",
)
@click.option("--snarkjs", "snarkjs_bin", type=str, envvar="SNARKJS_BIN", default="snarkjs", show_default=True)
@click.pass_context
def contribute(ctx: click.Context, contributor: str, extra_entropy: bool | None, snarkjs_bin: str) -> None:
    """Contribute on top of the latest folder and upload the result.

    Examples:

        zkceremony contribute --name alice

        zkceremony --root ./contributions contribute --no-extra-entropy
    """
    from .commands.contribute_cmd import run_contribute

    archive = _archive(ctx)
    exit_code = run_contribute(
        ctx.obj["root"],
        ctx.obj["settings"],
        archive,
        SnarkjsRunner(snarkjs_bin),
        contributor=contributor,
        extra_entropy=extra_entropy,
    )
    sys.exit(exit_code)


@cli.command()
@click.option("--snarkjs", "snarkjs_bin", type=str, envvar="SNARKJS_BIN", default="snarkjs", show_default=True)
@click.pass_context
def finalize(ctx: click.Context, snarkjs_bin: str) -> None:
    """Apply the random beacon to the latest contribution and close the ceremony."""
    from .commands.finalize_cmd import run_finalize

    archive = _archive(ctx)
    exit_code = run_finalize(ctx.obj["root"], ctx.obj["settings"], archive, SnarkjsRunner(snarkjs_bin))
    sys.exit(exit_code)


@cli.command("sync-check")
@click.argument("folder")
@click.option("--json", "output_json", is_flag=True, help="Print the sync report as JSON")
@click.pass_context
def sync_check(ctx: click.Context, folder: str, output_json: bool) -> None:
    """Compare FOLDER with the archive and fetch missing artifacts.

    Exits non-zero while archived files are still missing locally.
    """
    from .commands.sync_cmd import run_sync_check

    archive = _archive(ctx)
    exit_code = run_sync_check(ctx.obj["root"], ctx.obj["settings"], archive, folder, output_json=output_json)
    sys.exit(exit_code)


@cli.command()
@click.argument("folder")
@click.pass_context
def upload(ctx: click.Context, folder: str) -> None:
    """Upload an attested FOLDER to the archive (retry after a failed upload)."""
    from .commands.sync_cmd import run_upload

    archive = _archive(ctx)
    exit_code = run_upload(ctx.obj["root"], ctx.obj["settings"], archive, folder)
    sys.exit(exit_code)


@cli.command()
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
@click.pass_context
def status(ctx: click.Context, output_json: bool) -> None:
    """List local and archived folders with the next ordinal."""
    from .commands.sync_cmd import run_status

    archive = _archive(ctx)
    exit_code = run_status(ctx.obj["root"], ctx.obj["settings"], archive, output_json=output_json)
    sys.exit(exit_code)


@cli.command()
@click.option("--last", "last_n", type=int, default=20, show_default=True, help="Number of entries to show")
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
@click.pass_context
def journal(ctx: click.Context, last_n: int, output_json: bool) -> None:
    """Show recent ceremony journal entries."""
    from .commands.journal_cmd import run_journal

    exit_code = run_journal(ctx.obj["root"], last_n=last_n, output_json=output_json)
    sys.exit(exit_code)


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
