"""Command line interface for Studio Publisher."""

import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.table import Table

from .config import ConfigManager, Config, get_github_token, get_vercel_token
from .publisher import (
    InvalidFileBatchError,
    PublishConflictError,
    PublishError,
    PublishResult,
    load_file_changes,
)
from . import __version__

# Module-level imports for test mocking
from .api_clients.github_client import GitHubAPIClient
from .api_clients.deployment_client import VercelDeploymentClient, DeploymentStatus
from .publisher.atomic_publisher import AtomicPublisher
from .publisher.repository_initializer import RepositoryInitializer

logger = logging.getLogger(__name__)

console = Console()


def _github_client(config: Config) -> GitHubAPIClient:
    return GitHubAPIClient(
        token=get_github_token(),
        base_url=config.github.api_url,
        timeouts=config.timeouts,
        retry=config.retry,
    )


def _publisher(client: GitHubAPIClient, config: Config) -> AtomicPublisher:
    return AtomicPublisher(
        client,
        max_concurrent_blobs=config.publish.max_concurrent_blobs,
        verify_tip_before_advance=config.publish.verify_tip_before_advance,
    )


def _resolve_owner(owner: Optional[str], config: Config) -> str:
    resolved = owner or config.github.owner
    if not resolved:
        console.print(
            "❌ No repository owner given. Use --owner or set github.owner via 'init'",
            style="red",
        )
        sys.exit(1)
    return resolved


def _load_sources(source: str, config: Config):
    try:
        files = load_file_changes(Path(source), config.exclude_dirs)
    except InvalidFileBatchError as e:
        console.print(f"❌ {e}", style="red")
        sys.exit(1)
    if not files:
        console.print(f"❌ No files found in {source}", style="red")
        sys.exit(1)
    return files


def _display_publish_result(result: PublishResult) -> None:
    table = Table(title=f"{result.owner}/{result.repo}@{result.branch}")
    table.add_column("Path", style="cyan")
    table.add_column("Blob", style="dim")
    for path in result.paths:
        table.add_row(path, result.blob_shas[path][:12])
    console.print(table)
    console.print(
        f"✅ Published {result.files_published} file(s) as commit "
        f"[bold]{result.commit_sha}[/bold] (parent {result.base_commit_sha[:12]})",
        style="green",
    )


def _report_publish_error(
    e: PublishError, owner: str, repo: str, branch: Optional[str]
) -> None:
    stage = e.stage.value
    branch_name = branch or "default branch"
    if isinstance(e, PublishConflictError):
        console.print(
            f"❌ Conflict: branch '{branch_name}' was updated by someone else. "
            "Re-run publish against the new tip.",
            style="red",
        )
    else:
        console.print(f"❌ Publish failed at stage '{stage}': {e}", style="red")

    if e.restart_safe:
        console.print("   The branch was not changed; it is safe to run publish again.")
    elif e.commit_sha and e.base_commit_sha and not isinstance(e, PublishConflictError):
        console.print(
            "   The branch may or may not have moved. Finish with:\n"
            f"   studio-publisher resume --owner {owner} --repo {repo} "
            f"--branch {branch or '<default-branch>'} "
            f"--commit {e.commit_sha} --base {e.base_commit_sha}",
            style="yellow",
            soft_wrap=True,
        )

    guidance = getattr(e.cause, "user_guidance", "")
    if guidance:
        console.print(guidance)


@click.group(invoke_without_command=True)
@click.option("--config", "-c", type=click.Path(exists=False), help="Config file path")
@click.option("--verbose", "-v", is_flag=True, help="Verbose output")
@click.version_option(version=__version__, prog_name="studio-publisher")
@click.pass_context
def cli(ctx, config: Optional[str], verbose: bool):
    """Publish generated web projects to GitHub and deploy them.

    \b
    Tokens are read from the environment:
      GITHUB_TOKEN   for publish, resume and init-repo
      VERCEL_TOKEN   for deploy and deployment-status

    \b
    EXAMPLES:
      studio-publisher init --owner my-org
      studio-publisher publish ./site --repo landing -m "Update hero"
      studio-publisher init-repo generation.json --repo landing --public
      studio-publisher deploy ./site --project landing --wait
    """
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s:%(name)s:%(message)s",
    )
    if not verbose:
        logging.getLogger("httpx").setLevel(logging.WARNING)

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())
        return

    if config:
        ctx.obj["config_manager"] = ConfigManager(Path(config))
    else:
        ctx.obj["config_manager"] = ConfigManager.create_with_backtrack()


def _load_config(ctx) -> Config:
    try:
        return ctx.obj["config_manager"].load()
    except ValueError as e:
        console.print(f"❌ {e}", style="red")
        sys.exit(1)


@cli.command()
@click.option("--owner", help="Default repository owner")
@click.option("--branch", help="Default branch to publish to")
@click.option("--private/--public", default=True, help="Visibility of new repositories")
@click.option("--force", is_flag=True, help="Overwrite an existing config")
@click.pass_context
def init(ctx, owner: Optional[str], branch: Optional[str], private: bool, force: bool):
    """Write a configuration file for this project."""
    config_manager: ConfigManager = ctx.obj["config_manager"]
    if config_manager.config_path.exists() and not force:
        console.print(
            f"⚠️  Config already exists at {config_manager.config_path} (use --force)",
            style="yellow",
        )
        sys.exit(1)

    config = Config()
    config.github.owner = owner
    config.github.default_branch = branch
    config.github.private = private
    config_manager.save(config)
    console.print(f"✅ Wrote {config_manager.config_path}", style="green")


@cli.command("show-config")
@click.pass_context
def show_config(ctx):
    """Print the effective configuration."""
    config = _load_config(ctx)
    console.print(f"📁 {ctx.obj['config_manager'].config_path}", style="dim")
    console.print_json(config.model_dump_json())


@cli.command()
@click.argument("source", type=click.Path(exists=True))
@click.option("--repo", "-r", required=True, help="Repository name")
@click.option("--owner", "-o", help="Repository owner (defaults to config)")
@click.option("--branch", "-b", help="Branch to publish to (defaults to config, then main)")
@click.option("--message", "-m", help="Commit message")
@click.pass_context
def publish(
    ctx,
    source: str,
    repo: str,
    owner: Optional[str],
    branch: Optional[str],
    message: Optional[str],
):
    """Publish SOURCE to a branch as a single commit.

    \b
    SOURCE is a directory or a generation manifest (.json with a "files" list).
    The branch must already exist. Nothing on the branch changes unless every
    file lands; a concurrent update to the branch is reported as a conflict.
    """
    config = _load_config(ctx)
    owner = _resolve_owner(owner, config)
    branch = branch or config.github.default_branch or "main"
    message = message or config.publish.commit_message
    files = _load_sources(source, config)

    async def _publish():
        async with _github_client(config) as client:
            return await _publisher(client, config).publish(
                owner, repo, branch, files, message
            )

    try:
        result = asyncio.run(_publish())
    except InvalidFileBatchError as e:
        console.print(f"❌ {e}", style="red")
        sys.exit(1)
    except PublishError as e:
        _report_publish_error(e, owner, repo, branch)
        sys.exit(1)
    except ValueError as e:
        console.print(f"❌ {e}", style="red")
        sys.exit(1)

    _display_publish_result(result)


@cli.command()
@click.option("--repo", "-r", required=True, help="Repository name")
@click.option("--owner", "-o", help="Repository owner (defaults to config)")
@click.option("--branch", "-b", required=True, help="Branch being published")
@click.option("--commit", "commit_sha", required=True, help="Commit built by publish")
@click.option("--base", "base_sha", required=True, help="Branch tip publish started from")
@click.pass_context
def resume(ctx, repo: str, owner: Optional[str], branch: str, commit_sha: str, base_sha: str):
    """Finish a publish whose branch update failed or timed out."""
    config = _load_config(ctx)
    owner = _resolve_owner(owner, config)

    async def _resume():
        async with _github_client(config) as client:
            return await _publisher(client, config).resume(
                owner, repo, branch, commit_sha, base_sha
            )

    try:
        sha = asyncio.run(_resume())
    except PublishError as e:
        _report_publish_error(e, owner, repo, branch)
        sys.exit(1)
    except ValueError as e:
        console.print(f"❌ {e}", style="red")
        sys.exit(1)

    console.print(f"✅ Branch {branch} now points at {sha}", style="green")


@cli.command("init-repo")
@click.argument("source", type=click.Path(exists=True))
@click.option("--repo", "-r", required=True, help="Repository name")
@click.option("--owner", "-o", help="Repository owner (defaults to config)")
@click.option("--org", help="Create the repository under this organization")
@click.option("--branch", "-b", help="Branch to publish to (defaults to repository default)")
@click.option("--private/--public", default=None, help="Visibility of a new repository")
@click.option("--readme/--no-readme", default=None, help="Add a README.md if missing")
@click.option("--message", "-m", help="Commit message")
@click.pass_context
def init_repo(
    ctx,
    source: str,
    repo: str,
    owner: Optional[str],
    org: Optional[str],
    branch: Optional[str],
    private: Optional[bool],
    readme: Optional[bool],
    message: Optional[str],
):
    """Create (or reuse) a repository and publish SOURCE into it."""
    config = _load_config(ctx)
    owner = org or _resolve_owner(owner, config)
    files = _load_sources(source, config)
    private = config.github.private if private is None else private
    readme = config.github.include_readme if readme is None else readme

    async def _init():
        async with _github_client(config) as client:
            initializer = RepositoryInitializer(
                client,
                publisher=_publisher(client, config),
                description=config.github.repository_description,
            )
            return await initializer.initialize_and_push(
                owner,
                repo,
                files,
                branch=branch or config.github.default_branch,
                private=private,
                include_readme=readme,
                message=message,
                organization=org,
            )

    try:
        result = asyncio.run(_init())
    except PublishError as e:
        _report_publish_error(e, owner, repo, branch)
        sys.exit(1)
    except Exception as e:
        console.print(f"❌ Repository setup failed: {e}", style="red")
        guidance = getattr(e, "user_guidance", "")
        if guidance:
            console.print(guidance)
        sys.exit(1)

    verb = "Created" if result.created else "Reused"
    console.print(f"📦 {verb} repository {result.repository.full_name}")
    _display_publish_result(result.publish)
    if result.repository.html_url:
        console.print(f"🔗 {result.repository.html_url}")


def _display_deployment(status: DeploymentStatus) -> None:
    style = {"READY": "green", "ERROR": "red", "CANCELED": "red"}.get(status.state, "yellow")
    console.print(f"🚀 Deployment {status.id}: [{style}]{status.state}[/{style}]")
    if status.url:
        console.print(f"🔗 https://{status.url}")


@cli.command()
@click.argument("source", type=click.Path(exists=True))
@click.option("--project", "-p", required=True, help="Deployment project name")
@click.option("--wait", is_flag=True, help="Poll until the deployment is ready")
@click.pass_context
def deploy(ctx, source: str, project: str, wait: bool):
    """Deploy SOURCE to the hosting provider."""
    config = _load_config(ctx)
    files = _load_sources(source, config)

    async def _deploy():
        async with VercelDeploymentClient(
            token=get_vercel_token(),
            base_url=config.deployment.api_url,
            timeouts=config.timeouts,
            retry=config.retry,
        ) as client:
            status = await client.create_deployment(
                project, files, framework=config.deployment.framework
            )
            if wait and not status.is_terminal:
                status = await client.wait_for_deployment(
                    status.id,
                    poll_interval=config.deployment.poll_interval,
                    timeout=config.deployment.wait_timeout,
                )
            return status

    try:
        status = asyncio.run(_deploy())
    except Exception as e:
        console.print(f"❌ Deployment failed: {e}", style="red")
        sys.exit(1)

    _display_deployment(status)


@cli.command("deployment-status")
@click.argument("deployment_id")
@click.pass_context
def deployment_status(ctx, deployment_id: str):
    """Show the state of a deployment."""
    config = _load_config(ctx)

    async def _status():
        async with VercelDeploymentClient(
            token=get_vercel_token(),
            base_url=config.deployment.api_url,
            timeouts=config.timeouts,
            retry=config.retry,
        ) as client:
            return await client.get_deployment(deployment_id)

    try:
        status = asyncio.run(_status())
    except Exception as e:
        console.print(f"❌ Failed to get deployment status: {e}", style="red")
        sys.exit(1)

    _display_deployment(status)


def main():
    """Entry point for the console script."""
    cli(obj={})


if __name__ == "__main__":
    main()
