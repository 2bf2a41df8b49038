"""Command-line interface for repo-deployer."""

from __future__ import annotations

import argparse
import sys
from dataclasses import dataclass
from typing import Dict, Optional

from .config import AppConfig, load_config
from .interaction import CLIInteractionHandler, UserInteractionHandler
from .orchestrator import PipelineRun
from .workflow import DeploymentWorkflow

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_INTERRUPTED = 130


@dataclass
class CLIContext:
    """Context captured from CLI arguments."""

    config: AppConfig
    interaction_handler: Optional[UserInteractionHandler]
    raw_inputs: Dict[str, Optional[str]]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="repo-deployer",
        description=(
            "Deploy a Dockerized Git repository to a remote host over SSH and put "
            "nginx in front of it. Values not given as flags are read from the "
            "environment (GIT_URL, PAT, BRANCH, REMOTE_USER, REMOTE_HOST, SSH_KEY, "
            "CONTAINER_PORT, REMOTE_PROJECT_DIR) or prompted for."
        ),
    )
    parser.add_argument(
        "--cleanup",
        "--teardown",
        dest="teardown",
        action="store_true",
        help="Remove the project's container, nginx rule and remote directory instead of deploying.",
    )
    parser.add_argument("--repo", dest="repo_url", help="Git repository URL")
    parser.add_argument("--branch", help="Branch to deploy (default: main)")
    parser.add_argument("--host", help="Remote server IP or hostname")
    parser.add_argument("--user", help="Remote SSH username")
    parser.add_argument("--ssh-key", dest="key_path", help="Path to the SSH private key")
    parser.add_argument("--port", dest="app_port", help="Application internal port")
    parser.add_argument(
        "--remote-dir",
        dest="remote_dir",
        help="Remote project directory (default: /home/<user>/<project>)",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to a JSON config file overriding defaults.",
    )
    parser.add_argument(
        "--workspace",
        type=str,
        default=None,
        help="Directory for local working copies.",
    )
    parser.add_argument(
        "--non-interactive",
        action="store_true",
        help="Never prompt; fail if a required value is missing.",
    )
    # No flag for the access token; it would end up in shell history.
    return parser


def _build_context(args: argparse.Namespace) -> CLIContext:
    config = load_config(args.config)
    if args.workspace:
        config.deployment.workspace_root = args.workspace
    interactive = config.deployment.interactive and not args.non_interactive and sys.stdin.isatty()
    config.deployment.interactive = interactive
    raw_inputs = {
        "repo_url": args.repo_url,
        "branch": args.branch,
        "host": args.host,
        "user": args.user,
        "key_path": args.key_path,
        "app_port": args.app_port,
        "remote_dir": args.remote_dir,
    }
    return CLIContext(
        config=config,
        interaction_handler=CLIInteractionHandler() if interactive else None,
        raw_inputs=raw_inputs,
    )


def exit_code_for(run: PipelineRun) -> int:
    if run.interrupted:
        return EXIT_INTERRUPTED
    return EXIT_OK if run.succeeded else EXIT_FAILURE


def dispatch_command(args: argparse.Namespace) -> int:
    try:
        context = _build_context(args)
    except FileNotFoundError as exc:
        print(f"❌ {exc}", file=sys.stderr)
        return EXIT_FAILURE

    workflow = DeploymentWorkflow(
        config=context.config,
        interaction_handler=context.interaction_handler,
    )
    if args.teardown:
        run = workflow.run_teardown(context.raw_inputs)
    else:
        run = workflow.run_deploy(context.raw_inputs)

    print(f"📄 Log file: {run.log_path}")
    failure = run.failure
    if failure is not None:
        print(f"❌ {failure.stage_id}: {failure.message}", file=sys.stderr)
    return exit_code_for(run)


def run_cli(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        return dispatch_command(args)
    except KeyboardInterrupt:
        print("Interrupted", file=sys.stderr)
        return EXIT_INTERRUPTED
