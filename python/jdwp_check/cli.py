"""Command line entry point for the contended monitor check."""

from __future__ import annotations

import argparse
import logging
import os
import sys
from typing import List, Optional, TextIO

from python.jdwpdbg.launcher import Binder, LaunchConfig, split_vm_options
from python.jdwpdbg.transport import ATTACH, LISTEN, TransportConfig

from .runner import JCK_STATUS_BASE, CheckConfig, ContendedMonitorCheck

LOG = logging.getLogger("jdwp_check.cli")


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def build_arg_parser() -> argparse.ArgumentParser:
    defaults = CheckConfig()
    parser = argparse.ArgumentParser(description="JDWP ThreadReference.CurrentContendedMonitor check")
    parser.add_argument("--java", default=os.environ.get("JAVA", "java"), help="Java launcher for the debuggee")
    parser.add_argument("-cp", "--classpath", help="Classpath of the debuggee classes")
    parser.add_argument("--debugee.vmkeys", dest="vm_options", help="Extra debuggee VM options (quoted)")
    parser.add_argument("--debuggee-class", default=defaults.debuggee_class, help="Debuggee main class")
    parser.add_argument("--tested-class", default=defaults.tested_class, help="Class holding the tested fields")
    parser.add_argument("--thread-field", default=defaults.thread_field, help="Static field with the tested thread")
    parser.add_argument("--monitor-field", default=defaults.monitor_field, help="Static field with the monitor")
    parser.add_argument(
        "--connector",
        choices=(LISTEN, ATTACH),
        default=LISTEN,
        help="listen: debuggee connects to us; attach: we connect to the debuggee",
    )
    parser.add_argument("--host", default="127.0.0.1", help="Transport host")
    parser.add_argument("--port", type=int, default=0, help="Transport port (0 picks a free port when listening)")
    parser.add_argument(
        "--waittime",
        type=float,
        help="Minutes to wait for debuggee replies and exit (default: wait forever)",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Log protocol details")
    parser.add_argument(
        "--log-level",
        default=os.environ.get("JDWP_CHECK_LOG", "INFO"),
        help="Logging level (default INFO)",
    )
    return parser


def build_binder(args: argparse.Namespace) -> Binder:
    timeout = args.waittime * 60.0 if args.waittime else None
    transport = TransportConfig(
        mode=args.connector,
        host=args.host,
        port=args.port,
        read_timeout=timeout,
    )
    if timeout is not None:
        transport.connect_timeout = timeout
    launch = LaunchConfig(
        java=args.java,
        classpath=args.classpath,
        vm_options=list(split_vm_options(args.vm_options)),
    )
    LOG.debug("transport: %s", transport)
    LOG.debug("launch: %s", launch)
    return Binder(transport, launch, wait_timeout=timeout)


def run(argv: Optional[List[str]] = None, out: Optional[TextIO] = None) -> int:
    """Run the check and return 0 (passed) or 2 (failed)."""
    parser = build_arg_parser()
    args = parser.parse_args(argv)
    if args.connector == ATTACH and not args.port:
        parser.error("--port is required with --connector attach")
    _configure_logging("DEBUG" if args.verbose else args.log_level)
    binder = build_binder(args)
    config = CheckConfig(
        debuggee_class=args.debuggee_class,
        tested_class=args.tested_class,
        thread_field=args.thread_field,
        monitor_field=args.monitor_field,
    )
    check = ContendedMonitorCheck(binder, config, out=out)
    return check.run()


def main(argv: Optional[List[str]] = None) -> int:
    return run(argv) + JCK_STATUS_BASE


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
