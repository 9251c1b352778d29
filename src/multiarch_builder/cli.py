#!/usr/bin/env python3
"""
Command-line interface of the multi-arch builder

Built with Typer and Rich. Every option can also be given through the
environment variable named in its help text.
"""

import json
import logging
import sys
from typing import Dict, Optional

try:
    from typing import Annotated  # Python 3.9+
except ImportError:
    from typing_extensions import Annotated  # Python 3.8

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table
from rich.traceback import install

# Locals are not shown, they may hold registry secrets
install(show_locals=False)

# Initialize Rich console
console = Console()

from multiarch_builder import __version__
from multiarch_builder.core import constants
from multiarch_builder.core.config import BuildConfig
from multiarch_builder.core.constants import ExitCode
from multiarch_builder.core.errors import (
    ConfigurationError,
    ErrorHandler,
    MultiArchError,
    handle_error,
    set_error_handler,
)
from multiarch_builder.tools.multiarch_orchestrator import MultiArchOrchestrator

# Initialize the main Typer app
app = typer.Typer(
    name="multiarch-builder",
    help="🐳 Build one multi-architecture image on native hosts and publish its manifest",
    rich_markup_mode="rich",
    add_completion=False,
    no_args_is_help=True,
)


# Options shared by the build and plan commands
ImageNameOption = Annotated[
    str, typer.Option("--image-name", "-n", envvar="IMAGE_NAME", help="Image name, e.g. org/image [IMAGE_NAME]")
]
ImageTagOption = Annotated[
    str, typer.Option("--image-tag", "-t", envvar="IMAGE_TAG", help="Image tag, a timestamp by default [IMAGE_TAG]")
]
BuildArgsOption = Annotated[
    str, typer.Option("--build-args", envvar="BUILD_ARGS_LINE", help="Arguments handed to docker buildx build as-is [BUILD_ARGS_LINE]")
]
RepoUrlOption = Annotated[
    str, typer.Option("--repo-url", envvar="REPO_URL", help="Repository holding the Dockerfile [REPO_URL]")
]
RepoBranchOption = Annotated[
    str, typer.Option("--repo-branch", envvar="REPO_BRANCH", help="Branch of the repository [REPO_BRANCH]")
]
DockerTokenOption = Annotated[
    str, typer.Option("--docker-token", envvar="DOCKER_TOKEN", help="Pre-generated registry auth token [DOCKER_TOKEN]", show_default=False)
]
DockerLoginOption = Annotated[
    str, typer.Option("--docker-login", envvar="DOCKER_LOGIN", help="Registry login [DOCKER_LOGIN]")
]
DockerPassOption = Annotated[
    str, typer.Option("--docker-pass", envvar="DOCKER_PASS", help="Registry password [DOCKER_PASS]", show_default=False)
]
ManifestHostOption = Annotated[
    str, typer.Option("--manifest-host", envvar="BASE_MANIFEST_CONNECTION", help="Host creating the combined manifest, e.g. 'ssh -A user@host' [BASE_MANIFEST_CONNECTION]")
]
ArchMappingOption = Annotated[
    str, typer.Option("--arch-mapping", envvar="ARCH_CONNECTIONS_MAPPING", help="'linux/amd64::ssh -A user@host1; linux/arm64/v8::ssh -A user@host2' [ARCH_CONNECTIONS_MAPPING]")
]
HostsFileOption = Annotated[
    Optional[str], typer.Option("--hosts-file", help="🗂️ JSON or YAML file with manifest_host and arch_hosts")
]
WorkingDirOption = Annotated[
    str, typer.Option("--working-dir", envvar="WORKING_DIR", help="Workspace directory on every host [WORKING_DIR]")
]
UseCacheOption = Annotated[
    bool, typer.Option("--use-cache/--no-cache", envvar="USE_CACHE", help="Use the registry build cache [USE_CACHE]")
]
RegistryOption = Annotated[
    str, typer.Option("--registry", "-r", help="Registry host of the cache references")
]
HubApiUrlOption = Annotated[
    str, typer.Option("--hub-api-url", help="Registry API used to remove the per-architecture tags")
]
VerboseOption = Annotated[
    bool, typer.Option("--verbose", "-v", help="🔍 Enable verbose logging")
]


def setup_logging(verbose: bool = False) -> None:
    """Setup Rich logging configuration."""
    log_level = logging.DEBUG if verbose else logging.INFO

    # Setup rich logging handler
    rich_handler = RichHandler(
        console=console,
        show_time=True,
        show_path=verbose,
        markup=False,
        rich_tracebacks=True,
    )

    logging.basicConfig(
        level=log_level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[rich_handler],
    )
    set_error_handler(ErrorHandler(console=console, verbose=verbose))


def load_config(**kwargs) -> BuildConfig:
    """Build the run configuration, exiting with INVALID_ARGS when it is invalid."""
    try:
        return BuildConfig.from_sources(**kwargs)
    except ConfigurationError as e:
        handle_error(e)
        raise typer.Exit(ExitCode.INVALID_ARGS)


def display_plan(config: BuildConfig) -> None:
    """Display the architecture to host plan of a run."""
    table = Table(title="Build Plan", show_header=True, header_style="bold magenta")
    table.add_column("Architecture", style="cyan")
    table.add_column("Host", style="yellow")
    table.add_column("Tag", style="green")
    table.add_column("Workspace", style="dim")

    for mapping in config.arch_mappings:
        table.add_row(
            mapping.architecture,
            mapping.target.label,
            config.image.arch_tag(mapping.architecture),
            config.image_workspace(mapping.architecture),
        )
    console.print(table)

    amends = "\n".join(
        f"  --amend {config.image.arch_reference(arch)}" for arch in config.architectures
    )
    console.print(Panel(
        f"Manifest: [yellow]{config.image.reference}[/yellow]\n"
        f"Manifest host: [yellow]{config.manifest_host.label}[/yellow]\n"
        f"Cache: [yellow]{'enabled' if config.use_cache else 'disabled'}[/yellow]\n"
        f"{amends}",
        title="Manifest",
        border_style="blue",
    ))


def display_results_table(summary: Dict, title: str) -> None:
    """Display per-architecture results in a formatted table."""
    table = Table(title=title, show_header=True, header_style="bold magenta")
    table.add_column("Architecture", style="cyan")
    table.add_column("Host", style="yellow")
    table.add_column("Tag")
    table.add_column("Status", style="bold")
    table.add_column("Exit Code", justify="right")
    table.add_column("Duration", justify="right")

    for task in summary.get("task_results", []):
        status_color = "green" if task["status"] == "SUCCEEDED" else "red"
        table.add_row(
            task["architecture"],
            task["target"],
            task["arch_tag"],
            f"[{status_color}]{task['status']}[/{status_color}]",
            str(task["exit_code"]),
            f"{task['duration']:.2f}s",
        )

    if not summary.get("task_results"):
        table.add_row("ℹ️ No builds", "", "", "", "", "")

    console.print(table)


@app.command()
def build(
    image_name: ImageNameOption = "",
    image_tag: ImageTagOption = "",
    build_args: BuildArgsOption = "",
    repo_url: RepoUrlOption = "",
    repo_branch: RepoBranchOption = constants.DEFAULT_REPO_BRANCH,
    docker_token: DockerTokenOption = "",
    docker_login: DockerLoginOption = "",
    docker_pass: DockerPassOption = "",
    manifest_host: ManifestHostOption = "",
    arch_mapping: ArchMappingOption = "",
    hosts_file: HostsFileOption = None,
    working_dir: WorkingDirOption = "",
    use_cache: UseCacheOption = True,
    registry: RegistryOption = constants.DEFAULT_REGISTRY,
    hub_api_url: HubApiUrlOption = constants.DEFAULT_HUB_API_URL,
    report_output: Annotated[Optional[str], typer.Option("--report-output", help="📊 Output file for the JSON run report")] = None,
    live_output: Annotated[bool, typer.Option("--live-output/--quiet-output", help="Stream the output of every host")] = True,
    verbose: VerboseOption = False,
) -> None:
    """
    🔨 Build the image on every architecture host and publish its manifest.

    Each architecture is built natively on its own host and pushed as
    NAME:TAG-ARCH. Once every build succeeded the combined manifest NAME:TAG
    is created on the manifest host and the per-architecture tags are
    removed from the registry. When any build fails, the images of the run
    are removed from every host instead.

    Example:
        multiarch-builder build -n org/image -t v1 --repo-url https://host/repo.git \\
            --manifest-host "ssh -A user@host1" \\
            --arch-mapping "linux/amd64::ssh -A user@host1; linux/arm64/v8::ssh -A user@host2"
    """
    setup_logging(verbose)

    config = load_config(
        image_name=image_name,
        image_tag=image_tag,
        repo_url=repo_url,
        repo_branch=repo_branch,
        build_args=build_args,
        docker_token=docker_token,
        docker_login=docker_login,
        docker_pass=docker_pass,
        manifest_connection=manifest_host,
        arch_connections_mapping=arch_mapping,
        hosts_file=hosts_file,
        working_dir=working_dir,
        use_cache=use_cache,
        registry=registry,
        hub_api_url=hub_api_url,
    )

    console.print(Panel(
        f"🔨 [bold cyan]Building multi-arch image[/bold cyan]\n"
        f"Image: [yellow]{config.image.reference}[/yellow]\n"
        f"Architectures: [yellow]{', '.join(config.architectures)}[/yellow]\n"
        f"Source: [yellow]{config.repo_url} ({config.repo_branch})[/yellow]\n"
        f"Working dir: [yellow]{config.working_dir}[/yellow]",
        title="Build Configuration",
        border_style="blue",
    ))

    try:
        orchestrator = MultiArchOrchestrator(config, live_output=live_output)
        result = orchestrator.run()

        summary = result.to_dict()
        display_results_table(summary, "Build Results")

        if report_output:
            try:
                orchestrator.generate_report(result, report_output)
                console.print(f"💾 Run report saved to: [cyan]{report_output}[/cyan]")
            except IOError as e:
                console.print(f"❌ Failed to save run report: [red]{e}[/red]")

        if result.exit_code == ExitCode.SUCCESS:
            console.print(f"🎉 [bold green]Published {config.image.reference}[/bold green]")
        else:
            console.print(
                f"💥 [bold red]Run failed in the {result.phase} phase: "
                f"{result.error_message}[/bold red]"
            )
        raise typer.Exit(result.exit_code)

    except typer.Exit:
        raise
    except MultiArchError as e:
        handle_error(e)
        raise typer.Exit(ExitCode.FAILURE)
    except Exception as e:
        console.print(f"💥 [bold red]Build process failed: {e}[/bold red]")
        if verbose:
            console.print_exception()
        raise typer.Exit(ExitCode.FAILURE)


@app.command()
def plan(
    image_name: ImageNameOption = "",
    image_tag: ImageTagOption = "",
    build_args: BuildArgsOption = "",
    repo_url: RepoUrlOption = "",
    repo_branch: RepoBranchOption = constants.DEFAULT_REPO_BRANCH,
    docker_token: DockerTokenOption = "",
    docker_login: DockerLoginOption = "",
    docker_pass: DockerPassOption = "",
    manifest_host: ManifestHostOption = "",
    arch_mapping: ArchMappingOption = "",
    hosts_file: HostsFileOption = None,
    working_dir: WorkingDirOption = "",
    use_cache: UseCacheOption = True,
    registry: RegistryOption = constants.DEFAULT_REGISTRY,
    hub_api_url: HubApiUrlOption = constants.DEFAULT_HUB_API_URL,
    output: Annotated[Optional[str], typer.Option("--output", "-o", help="Write the plan as JSON")] = None,
    verbose: VerboseOption = False,
) -> None:
    """
    📋 Validate the configuration and show what a build would do.

    No host is contacted.
    """
    setup_logging(verbose)

    config = load_config(
        image_name=image_name,
        image_tag=image_tag,
        repo_url=repo_url,
        repo_branch=repo_branch,
        build_args=build_args,
        docker_token=docker_token,
        docker_login=docker_login,
        docker_pass=docker_pass,
        manifest_connection=manifest_host,
        arch_connections_mapping=arch_mapping,
        hosts_file=hosts_file,
        working_dir=working_dir,
        use_cache=use_cache,
        registry=registry,
        hub_api_url=hub_api_url,
    )

    display_plan(config)

    if output:
        plan_data = {
            "image": config.image.reference,
            "manifest_host": config.manifest_host.label,
            "use_cache": config.use_cache,
            "working_dir": config.working_dir,
            "builds": [
                {
                    "architecture": mapping.architecture,
                    "target": mapping.target.label,
                    "arch_tag": config.image.arch_tag(mapping.architecture),
                }
                for mapping in config.arch_mappings
            ],
        }
        with open(output, "w") as f:
            json.dump(plan_data, f, indent=2)
        console.print(f"💾 Plan saved to: [cyan]{output}[/cyan]")

    console.print("✅ [bold green]Configuration is valid[/bold green]")


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    version: Annotated[bool, typer.Option("--version", help="Show version and exit")] = False,
) -> None:
    """
    🐳 multiarch-builder

    Build a multi-architecture image on native build hosts over SSH.
    """
    if version:
        console.print(f"🐳 [bold cyan]multiarch-builder[/bold cyan] version [green]{__version__}[/green]")
        raise typer.Exit()

    # If no command is provided, show help
    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())
        ctx.exit()


def cli_main() -> None:
    """Entry point for the CLI application."""
    try:
        app()
    except KeyboardInterrupt:
        console.print("\n🛑 [yellow]Operation cancelled by user[/yellow]")
        sys.exit(ExitCode.FAILURE)
    except Exception as e:
        console.print(f"💥 [bold red]Unexpected error: {e}[/bold red]")
        console.print_exception()
        sys.exit(ExitCode.FAILURE)


if __name__ == "__main__":
    cli_main()
