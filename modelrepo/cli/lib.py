"""Command line interface for modelrepo.

Usage: python -m modelrepo {command} [args]
"""

import argparse
import json
import sys
from pathlib import Path

import numpy as np
from dotenv import load_dotenv
from pydantic import ValidationError

from modelrepo.config import (
    EnvVar,
    get_environment,
    get_environment_info,
    list_environment_variables,
)
from modelrepo.core import (
    BadParameterError,
    ModelRepositoryError,
    get_logger,
    setup_logging,
)
from modelrepo.repository import CorrespondenceTable, ModelRepository
from modelrepo.simsearch import BackendType, IndexConfiguration

logger = get_logger(__name__)


# =============================================================================
# Init Command
# =============================================================================


def cmd_init(args: argparse.Namespace) -> int:
    """Handle the init command."""
    try:
        params = json.loads(args.params)
    except json.JSONDecodeError as e:
        logger.error(f"--params is not valid JSON: {e}")
        return 1
    if not isinstance(params, dict):
        logger.error("--params must be a JSON object")
        return 1

    options = {
        "repository": args.repository,
        "create_repository": args.create,
        "init": args.init,
        "index_preload": args.preload,
    }
    try:
        repo = ModelRepository(options, params)
    except ModelRepositoryError as e:
        logger.error(f"Repository initialization failed: {e}")
        return 1

    logger.info(f"Repository ready: {repo.repo_path}")
    best_model = repo.read_best_model()
    if best_model:
        logger.info(f"Best model: {best_model}")
    print(json.dumps(params, indent=2))
    return 0


def handle_init_command(argv: list[str]) -> int:
    """Handle init-specific commands."""
    parser = argparse.ArgumentParser(
        prog="modelrepo init",
        description="Validate, create or bootstrap a model repository",
    )
    parser.add_argument(
        "--repository",
        "-r",
        type=Path,
        required=True,
        help="Repository directory",
    )
    parser.add_argument(
        "--create",
        action="store_true",
        help="Create the repository directory if it does not exist",
    )
    parser.add_argument(
        "--init",
        type=str,
        default=None,
        help="Model archive to install (local path or http/https/file URL)",
    )
    parser.add_argument(
        "--preload",
        action="store_true",
        help="Prefault similarity indexes when they are loaded",
    )
    parser.add_argument(
        "--params",
        type=str,
        default="{}",
        help="Outgoing parameters as a JSON object (default: {})",
    )

    args = parser.parse_args(argv)
    return cmd_init(args)


# =============================================================================
# Label Command
# =============================================================================


def cmd_label(args: argparse.Namespace) -> int:
    """Handle the label command."""
    table = CorrespondenceTable.load(args.corresp)
    for index in args.indices:
        print(f"{index} {table.lookup(index)}")
    return 0


def handle_label_command(argv: list[str]) -> int:
    """Handle label-specific commands."""
    parser = argparse.ArgumentParser(
        prog="modelrepo label",
        description="Look up class labels in a correspondence file",
    )
    parser.add_argument(
        "--corresp",
        "-c",
        type=Path,
        required=True,
        help="Correspondence file ('<index> <label>' per line)",
    )
    parser.add_argument(
        "indices",
        type=int,
        nargs="+",
        help="Class indices to look up",
    )

    args = parser.parse_args(argv)
    return cmd_label(args)


# =============================================================================
# Index Command
# =============================================================================


def _open_sim_search(args: argparse.Namespace):
    try:
        config = IndexConfiguration(
            index_type=args.index_type,
            train_samples=args.train_samples,
            ondisk=args.ondisk,
            nprobe=args.nprobe,
            index_gpu=args.gpu or None,
            index_gpuid=args.gpuid,
        )
    except ValidationError as e:
        message = f"invalid index options: {e}"
        logger.error(message)
        raise BadParameterError(message) from e
    repo = ModelRepository.from_path(args.repository, simsearch_backend=args.backend)
    repo.index_preload = args.preload
    return repo, repo.create_sim_search(args.dim, config)


def cmd_index_create(args: argparse.Namespace) -> int:
    """Handle the index create command."""
    try:
        repo, sim = _open_sim_search(args)
        with repo:
            if not sim.enabled:
                logger.info("Similarity search is disabled (backend=none)")
                return 0
            logger.info(f"Index ready in {repo.repo_path} ({sim.backend.size} vectors)")
        return 0
    except ModelRepositoryError as e:
        logger.error(f"Index creation failed: {e}")
        return 1


def cmd_index_build(args: argparse.Namespace) -> int:
    """Handle the index build command."""
    try:
        repo, sim = _open_sim_search(args)
        with repo:
            if args.vectors is not None and sim.enabled:
                vectors = np.load(args.vectors)
                if args.ids is not None:
                    ids = args.ids.read_text().splitlines()
                else:
                    offset = sim.backend.size
                    ids = [str(offset + i) for i in range(len(vectors))]
                sim.index(vectors, ids)
                logger.info(f"Queued {len(ids)} vectors from {args.vectors}")
            repo.build_index()
            if sim.enabled:
                logger.info(f"Index built in {repo.repo_path} ({sim.backend.size} vectors)")
        return 0
    except (ModelRepositoryError, OSError, ValueError) as e:
        logger.error(f"Index build failed: {e}")
        return 1


def cmd_index_remove(args: argparse.Namespace) -> int:
    """Handle the index remove command."""
    try:
        repo, _sim = _open_sim_search(args)
        with repo:
            repo.remove_index()
        logger.info(f"Removed index from {args.repository}")
        return 0
    except ModelRepositoryError as e:
        logger.error(f"Index removal failed: {e}")
        return 1


def cmd_index_search(args: argparse.Namespace) -> int:
    """Handle the index search command."""
    try:
        query = np.load(args.query)
        repo, _sim = _open_sim_search(args)
        with repo:
            results = repo.search(query, k=args.k)
        for result in results:
            print(f"{result.rank}\t{result.id}\t{result.distance:.6f}")
        return 0
    except (ModelRepositoryError, OSError, ValueError) as e:
        logger.error(f"Search failed: {e}")
        return 1


def handle_index_command(argv: list[str]) -> int:
    """Handle index-specific commands."""
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--repository",
        "-r",
        type=Path,
        required=True,
        help="Repository directory",
    )
    common.add_argument(
        "--dim",
        "-d",
        type=int,
        required=True,
        help="Vector dimension",
    )
    common.add_argument(
        "--backend",
        "-b",
        type=str,
        default=None,
        choices=[b.value for b in BackendType],
        help="Similarity backend (default: MODELREPO_SIMSEARCH_BACKEND)",
    )
    common.add_argument("--index-type", type=str, default=None, help="FAISS factory string")
    common.add_argument("--train-samples", type=int, default=None)
    common.add_argument("--nprobe", type=int, default=None)
    common.add_argument(
        "--ondisk",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Memory-map the persisted index",
    )
    common.add_argument("--gpu", action="store_true", help="Place the index on GPU")
    common.add_argument("--gpuid", type=int, nargs="+", default=None, help="GPU ids")
    common.add_argument(
        "--preload",
        action="store_true",
        help="Prefault the index when it is loaded",
    )

    parser = argparse.ArgumentParser(
        prog="modelrepo index",
        description="Manage a repository's similarity index",
    )
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    create_parser = subparsers.add_parser(
        "create", parents=[common], help="Open or create the index"
    )
    create_parser.set_defaults(func=cmd_index_create)

    build_parser = subparsers.add_parser(
        "build", parents=[common], help="Add vectors and (re)build the index"
    )
    build_parser.add_argument(
        "--vectors",
        type=Path,
        default=None,
        help="Vectors to add, as a .npy array of shape (n, dim)",
    )
    build_parser.add_argument(
        "--ids",
        type=Path,
        default=None,
        help="Text file with one id per vector (default: running numbers)",
    )
    build_parser.set_defaults(func=cmd_index_build)

    remove_parser = subparsers.add_parser(
        "remove", parents=[common], help="Delete the persisted index"
    )
    remove_parser.set_defaults(func=cmd_index_remove)

    search_parser = subparsers.add_parser(
        "search", parents=[common], help="Query the index"
    )
    search_parser.add_argument(
        "--query",
        "-q",
        type=Path,
        required=True,
        help="Query vector as a .npy array",
    )
    search_parser.add_argument(
        "-k",
        type=int,
        default=5,
        help="Number of results to return (default: 5)",
    )
    search_parser.set_defaults(func=cmd_index_search)

    if not argv:
        parser.print_help()
        return 1

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    return args.func(args)


# =============================================================================
# Env Command
# =============================================================================


def cmd_env(args: argparse.Namespace) -> int:
    """Handle the env command."""
    for var in list_environment_variables(args.category):
        info = get_environment_info(var)
        value = get_environment(var)
        print(f"{info.name}={value}  # {info.description}")
    return 0


def handle_env_command(argv: list[str]) -> int:
    """Handle env-specific commands."""
    parser = argparse.ArgumentParser(
        prog="modelrepo env",
        description="Show configuration environment variables",
    )
    parser.add_argument(
        "--category",
        type=str,
        default=None,
        help="Only show one category (simsearch, bootstrap, logging)",
    )

    args = parser.parse_args(argv)
    return cmd_env(args)


# =============================================================================
# Entry Point
# =============================================================================


def show_help() -> None:
    """Display CLI help message."""
    print("Usage: modelrepo {command} [args]")
    print("\nCommands:")
    print("  init       Validate, create or bootstrap a model repository")
    print("  label      Look up class labels in a correspondence file")
    print("  index      Create, build, remove or query a similarity index")
    print("  env        Show configuration environment variables")
    print("\nExamples:")
    print("  modelrepo init -r models/resnet --create --init https://host/resnet.tar.gz")
    print("  modelrepo label -c models/resnet/corresp.txt 3 5 7")
    print("  modelrepo index build -r models/resnet -d 512 --vectors emb.npy")
    print("  modelrepo index search -r models/resnet -d 512 -q query.npy -k 3")


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the CLI."""
    load_dotenv()

    argv = sys.argv[1:] if argv is None else argv
    if not argv:
        show_help()
        return 1

    command, rest_args = argv[0], argv[1:]
    verbose = "--verbose" in rest_args or "-v" in rest_args
    rest_args = [a for a in rest_args if a not in ("--verbose", "-v")]

    if command in ("-h", "--help"):
        show_help()
        return 0

    commands = {
        "init": lambda: handle_init_command(rest_args),
        "label": lambda: handle_label_command(rest_args),
        "index": lambda: handle_index_command(rest_args),
        "env": lambda: handle_env_command(rest_args),
    }

    if command in commands:
        setup_logging("DEBUG" if verbose else get_environment(EnvVar.LOG_LEVEL))
        return commands[command]()

    logger.error(f"Unknown command: {command}")
    show_help()
    return 1


__all__ = ["main"]
