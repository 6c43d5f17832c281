import argparse
import logging
import sys
from pathlib import Path

from staal.core.charter import EditMode, build_system_prompt
from staal.core.config import load_config, load_env_file
from staal.core.contracts.loader import ContractViolation
from staal.core.conversation.orchestrator import Conversation, ConversationSettings
from staal.core.guardrails.guard_state import GuardLimits
from staal.core.llm_api import client_factory, resolve_credentials
from staal.core.protocol.parser import ParsePolicy
from staal.core.tools.light_ci_runner import LightCiRunner
from staal.core.tools.workspace_files import WorkspaceFiles


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="staal", description="Let a language model edit a repository.")
    sub = parser.add_subparsers(dest="command", required=True)

    generate = sub.add_parser("generate", help="Run one conversation against a working directory.")
    generate.add_argument("--prompt-file", required=True, help="File holding the goal for the model.")
    generate.add_argument("--working-directory", required=True, help="Root the model may read and edit.")
    generate.add_argument(
        "--edit-mode",
        choices=[mode.value for mode in EditMode],
        default=EditMode.ALL.value,
    )
    generate.add_argument("--config", default=None, help="YAML config file (default: ./staal.yaml).")
    generate.add_argument("--debug", action="store_true", help="Shortcut for --log-level DEBUG.")
    generate.add_argument("--log-level", default="INFO")
    return parser


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def run_generate(args: argparse.Namespace) -> int:
    working_directory = Path(args.working_directory).resolve()
    if not working_directory.is_dir():
        print(f"Working directory does not exist: {working_directory}")
        return 1

    try:
        goal = Path(args.prompt_file).read_text(encoding="utf-8")
    except OSError as e:
        print(f"Could not read prompt file: {e}")
        return 1

    try:
        config = load_config(args.config)
        resolve_credentials(config["model"])
        settings = ConversationSettings.from_config(config["conversation"])
        guard_limits = GuardLimits.from_config(config["guardrails"])
        parse_policy = ParsePolicy(config["protocol"]["parse_policy"])
    except (ContractViolation, ValueError) as e:
        print(f"Configuration error: {e}")
        return 1

    workspace = WorkspaceFiles(working_directory)
    conversation = Conversation(
        client_factory=client_factory(config["model"]),
        workspace=workspace,
        light_ci=LightCiRunner(working_directory, config["ci"]["light_ci_timeout_seconds"]),
        settings=settings,
        guard_limits=guard_limits,
        parse_policy=parse_policy,
    )

    prompt = build_system_prompt(goal, working_directory, EditMode(args.edit_mode))
    try:
        failed = conversation.start(prompt)
    except KeyboardInterrupt:
        conversation.stop(failed=True, outcome="Interrupted by user")
        failed = True

    print("\n--- STAAL Result ---")
    print("FAILED" if failed else "OK")
    if conversation.outcome:
        print(conversation.outcome)
    return 1 if failed else 0


def main(argv=None) -> int:
    args = _build_parser().parse_args(argv)
    _configure_logging("DEBUG" if args.debug else args.log_level)
    load_env_file(".env")
    if args.command == "generate":
        return run_generate(args)
    return 1


if __name__ == "__main__":
    sys.exit(main())
