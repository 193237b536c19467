"""Debugger side of the ThreadReference.CurrentContendedMonitor check.

The debuggee starts a thread that blocks trying to enter a monitor owned by
another thread and publishes both the thread and the monitor in static fields
of its ``TestedClass``.  This runner resolves those two objects, suspends the
VM, asks which monitor the thread is contending for and checks the answer.
"""

from __future__ import annotations

import logging
import sys
from dataclasses import dataclass
from typing import Optional, TextIO

from python.jdwpdbg.constants import Capability, Tag
from python.jdwpdbg.errors import Failure, JdwpError
from python.jdwpdbg.launcher import Binder
from python.jdwpdbg.queries import class_signature, get_reference_type_id, query_typed_value
from python.jdwpdbg.session import DebuggeeSession
from python.jdwpdbg.validator import QueryOutcome, run_query

LOG = logging.getLogger("jdwp_check.runner")

# exit status constants
JCK_STATUS_BASE = 95
PASSED = 0
FAILED = 2

PACKAGE_NAME = "nsk.jdwp.ThreadReference.CurrentContendedMonitor"
TEST_CLASS_NAME = PACKAGE_NAME + ".curcontmonitor001"
DEBUGEE_CLASS_NAME = TEST_CLASS_NAME + "a"
TESTED_CLASS_NAME = DEBUGEE_CLASS_NAME + "$TestedClass"
THREAD_FIELD_NAME = "thread"
MONITOR_FIELD_NAME = "monitor"

VM_CAPABILITY_NUMBER = Capability.CAN_GET_CURRENT_CONTENDED_MONITOR
VM_CAPABILITY_NAME = "canGetCurrentContendedMonitor"


@dataclass
class CheckConfig:
    debuggee_class: str = DEBUGEE_CLASS_NAME
    tested_class: str = TESTED_CLASS_NAME
    thread_field: str = THREAD_FIELD_NAME
    monitor_field: str = MONITOR_FIELD_NAME


class ContendedMonitorCheck:
    """One run of the check against one freshly launched debuggee."""

    def __init__(self, binder: Binder, config: Optional[CheckConfig] = None, *, out: Optional[TextIO] = None) -> None:
        self.binder = binder
        self.config = config or CheckConfig()
        self.out = out or sys.stdout
        self.success = True
        self.outcome: Optional[QueryOutcome] = None
        self.debuggee_exit_code: Optional[int] = None

    def run(self) -> int:
        """Return ``PASSED`` or ``FAILED`` (without the status base)."""
        session: Optional[DebuggeeSession] = None
        try:
            LOG.info(">>> Preparing debuggee for testing")
            LOG.info("launching debuggee %s", self.config.debuggee_class)
            session = self.binder.bind_to_debuggee(self.config.debuggee_class)
            session.prepare()
            try:
                if not self._check_capability(session):
                    print(f"TEST PASSED: unsupported VM capability: {VM_CAPABILITY_NAME}", file=self.out)
                    return PASSED
                self._test_body(session)
            finally:
                LOG.info(">>> Finishing test")
                self._quit_debuggee(session)
        except Failure as exc:
            LOG.error("TEST FAILED: %s", exc)
            self.success = False
        except Exception as exc:
            LOG.exception("Caught unexpected exception while running the test: %s", exc)
            self.success = False
        finally:
            if session is not None:
                session.close()

        if not self.success:
            print("TEST FAILED", file=self.out)
            return FAILED
        print("TEST PASSED", file=self.out)
        return PASSED

    def _check_capability(self, session: DebuggeeSession) -> bool:
        LOG.info(">>> Checking VM capability")
        self._log_vm_version(session)
        LOG.debug("checking VM capability: %s", VM_CAPABILITY_NAME)
        return session.get_capability(VM_CAPABILITY_NUMBER, VM_CAPABILITY_NAME)

    def _test_body(self, session: DebuggeeSession) -> None:
        LOG.info(">>> Obtaining required data from debuggee")
        signature = class_signature(self.config.tested_class)
        LOG.debug("getting classID by signature: %s", signature)
        class_id = get_reference_type_id(session, signature)
        LOG.debug("  got classID: %s", class_id)

        LOG.debug("getting threadID value from static field: %s", self.config.thread_field)
        thread_id = query_typed_value(session, class_id, self.config.thread_field, Tag.THREAD)
        LOG.debug("  got threadID: %s", thread_id)
        self._log_thread_name(session, thread_id)

        LOG.debug("getting objectID value for monitor from static field: %s", self.config.monitor_field)
        monitor_id = query_typed_value(session, class_id, self.config.monitor_field, Tag.OBJECT)
        LOG.debug("  got objectID: %s", monitor_id)

        with session.suspended():
            LOG.info(">>> Testing JDWP command")
            self.outcome = run_query(session, thread_id, monitor_id)
        if not self.outcome.passed:
            self.success = False

    # Issued only at DEBUG level; failures never change the verdict.
    def _log_vm_version(self, session: DebuggeeSession) -> None:
        if not LOG.isEnabledFor(logging.DEBUG):
            return
        try:
            version = session.commands.version()
        except JdwpError as exc:
            LOG.debug("unable to get debuggee VM version: %s", exc)
            return
        LOG.debug("debuggee VM: %s %s (JDWP %s.%s)", version.vm_name, version.vm_version,
                  version.jdwp_major, version.jdwp_minor)

    def _log_thread_name(self, session: DebuggeeSession, thread_id: int) -> None:
        if not LOG.isEnabledFor(logging.DEBUG):
            return
        try:
            name = session.commands.thread_name(thread_id)
        except JdwpError as exc:
            LOG.debug("unable to get name of thread %s: %s", thread_id, exc)
            return
        LOG.debug("  tested thread name: %s", name)

    def _quit_debuggee(self, session: DebuggeeSession) -> None:
        code = session.quit()
        self.debuggee_exit_code = code
        if code == JCK_STATUS_BASE + PASSED:
            LOG.info("Debuggee PASSED with exit code: %s", code)
        else:
            LOG.error("Debuggee FAILED with exit code: %s", code)
            self.success = False
