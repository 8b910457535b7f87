"""Command line interface for tipsy."""

import argparse
import json
import logging
import sys

from tipsy import commands
from tipsy.config import TipsyConfig
from tipsy.errors import ClientConstructionError, TipsyError
from tipsy.generators.fault.inject_cpu import METHOD_STRESS_NG, METHODS
from tipsy.logger import init_logger
from tipsy.service.kubectl import KubeCtl
from tipsy.state.ledger import ACTION_TYPES, ActionLedger

logger = logging.getLogger("all.tipsy.cli")


def add_namespace(parser: argparse.ArgumentParser):
    parser.add_argument(
        "-n",
        "--namespace",
        dest="local_namespace",
        type=str,
        default=None,
        help="Kubernetes namespace for this command (overrides the global --namespace)",
    )


def add_shared_flags(parser: argparse.ArgumentParser, suppress: bool = False):
    """Flags accepted both before and after the subcommand."""
    kwargs = {"default": argparse.SUPPRESS} if suppress else {}
    parser.add_argument("--kubeconfig", type=str, help="Path to a kubeconfig file", **kwargs)
    parser.add_argument(
        "--dry-run", action="store_true", help="Describe what would happen without changing the cluster", **kwargs
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug output", **kwargs)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tipsy",
        description="Inject faults into Kubernetes workloads and roll them back",
    )
    add_shared_flags(parser)
    parser.add_argument("--namespace", type=str, default=None, help="Kubernetes namespace (default: 'default')")

    # SUPPRESS keeps a flag given before the subcommand from being reset by the subparser.
    shared = argparse.ArgumentParser(add_help=False)
    add_shared_flags(shared, suppress=True)

    sub = parser.add_subparsers(dest="command", metavar="COMMAND")
    sub.required = True

    kill = sub.add_parser("kill", parents=[shared], help="Delete random pods matching a label selector")
    kill.add_argument("-s", "--selector", type=str, required=True, help="Label selector (e.g. 'app=web')")
    kill.add_argument("-c", "--count", type=int, default=1, help="Number of pods to delete")
    add_namespace(kill)

    latency = sub.add_parser(
        "latency", parents=[shared], help="Add network latency to pods matching a label selector"
    )
    latency.add_argument("-s", "--selector", type=str, required=True, help="Label selector (e.g. 'app=web')")
    latency.add_argument("-d", "--delay", type=str, default="200ms", help="Delay to add (e.g. '200ms')")
    latency.add_argument("-t", "--duration", type=str, default="30s", help="How long the delay lasts")
    add_namespace(latency)

    loss = sub.add_parser("packetloss", parents=[shared], help="Drop packets on pods matching a label selector")
    loss.add_argument("-s", "--selector", type=str, required=True, help="Label selector (e.g. 'app=web')")
    loss.add_argument("-l", "--loss", type=str, default="30%", help="Percentage of packets to drop")
    loss.add_argument("-t", "--duration", type=str, default="30s", help="How long the loss lasts")
    add_namespace(loss)

    cpu = sub.add_parser("cpustress", parents=[shared], help="Burn CPU in pods matching a label selector")
    cpu.add_argument("-s", "--selector", type=str, required=True, help="Label selector (e.g. 'app=web')")
    cpu.add_argument(
        "-m", "--method", type=str, default=METHOD_STRESS_NG, help=f"Stress method ({', '.join(METHODS)})"
    )
    cpu.add_argument("-t", "--duration", type=str, default="60s", help="How long the stress lasts")
    add_namespace(cpu)

    misroute = sub.add_parser("misroute", parents=[shared], help="Break a Service by rewriting its endpoints")
    misroute.add_argument("--service", type=str, required=True, help="Service name")
    misroute.add_argument("--remove-all", action="store_true", help="Remove every endpoint")
    misroute.add_argument(
        "--replace-with-selector",
        type=str,
        default="",
        help="Point the service at pods matching this selector instead",
    )
    add_namespace(misroute)

    rollback = sub.add_parser("rollback", parents=[shared], help="Reverse recorded chaos actions")
    rollback.add_argument(
        "--type", dest="action_type", type=str, default="", help=f"Only this action type ({', '.join(ACTION_TYPES)})"
    )
    rollback.add_argument("--pod", type=str, default="", help="Only actions targeting this pod or service")

    return parser


def dispatch(args: argparse.Namespace, config: TipsyConfig, kubectl: KubeCtl, ledger: ActionLedger):
    namespace = getattr(args, "local_namespace", None)
    if args.command == "kill":
        return commands.run_kill(config, kubectl, ledger, args.selector, args.count, namespace)
    if args.command == "latency":
        return commands.run_latency(config, kubectl, ledger, args.selector, args.delay, args.duration, namespace)
    if args.command == "packetloss":
        return commands.run_packetloss(config, kubectl, ledger, args.selector, args.loss, args.duration, namespace)
    if args.command == "cpustress":
        return commands.run_cpustress(config, kubectl, ledger, args.selector, args.method, args.duration, namespace)
    if args.command == "misroute":
        return commands.run_misroute(
            config, kubectl, ledger, args.service, args.remove_all, args.replace_with_selector, namespace
        )
    if args.command == "rollback":
        return commands.run_rollback(config, kubectl, ledger, args.action_type, args.pod)
    raise ValueError(f"unknown command: {args.command}")


def main(argv: list[str] | None = None, kubectl: KubeCtl | None = None) -> int:
    """Parse ``argv``, run one command and return the process exit status."""
    args = build_parser().parse_args(argv)
    init_logger(args.verbose)

    config = TipsyConfig.from_env(
        kubeconfig=args.kubeconfig,
        namespace=args.namespace,
        dry_run=args.dry_run,
        verbose=args.verbose,
    )
    logger.debug(f"Configuration: {json.dumps(config.describe())}")
    if config.dry_run:
        logger.info("Running in dry-run mode - no changes will be made")

    if kubectl is None:
        try:
            kubectl = KubeCtl(config.kubeconfig)
        except ClientConstructionError as e:
            logger.error(f"Failed to create Kubernetes client: {e}")
            return 1

    ledger = ActionLedger(config.state_file)
    try:
        dispatch(args, config, kubectl, ledger)
    except TipsyError as e:
        logger.error(f"{args.command} failed: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
