"""Launching the debuggee VM and binding a JDWP session to it."""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from .errors import TestBug, TransportError
from .pipe import IOPipe
from .session import DebuggeeSession
from .transport import ATTACH, LISTEN, JdwpTransport, TransportConfig

LOGGER = logging.getLogger("jdwpdbg.launcher")


@dataclass
class LaunchConfig:
    java: str = "java"
    classpath: Optional[str] = None
    vm_options: List[str] = field(default_factory=list)
    debuggee_args: List[str] = field(default_factory=list)
    suspend: bool = True

    def agent_option(self, transport: TransportConfig) -> str:
        server = "y" if transport.mode == ATTACH else "n"
        suspend = "y" if self.suspend else "n"
        return (
            f"-agentlib:jdwp=transport=dt_socket,server={server},"
            f"suspend={suspend},address={transport.address}"
        )

    def command_line(self, class_name: str, transport: TransportConfig) -> List[str]:
        argv = [self.java, *self.vm_options]
        if self.classpath:
            argv.extend(["-classpath", self.classpath])
        argv.append(self.agent_option(transport))
        argv.append(class_name)
        argv.extend(self.debuggee_args)
        return argv


class DebuggeeProcess:
    """Handle on a launched debuggee VM process."""

    def __init__(self, popen: subprocess.Popen) -> None:
        self._popen = popen

    @property
    def pid(self) -> int:
        return self._popen.pid

    def is_alive(self) -> bool:
        return self._popen.poll() is None

    def create_io_pipe(self) -> IOPipe:
        if self._popen.stdout is None or self._popen.stdin is None:
            raise TestBug("debuggee was launched without a side channel")
        return IOPipe(self._popen.stdout, self._popen.stdin)

    def wait_for(self, timeout: Optional[float] = None) -> int:
        try:
            return self._popen.wait(timeout=timeout)
        except subprocess.TimeoutExpired as exc:
            raise TestBug(f"debuggee did not exit within {timeout}s") from exc

    def kill(self) -> None:
        if self.is_alive():
            LOGGER.warning("killing debuggee process %s", self.pid)
            self._popen.kill()
            self._popen.wait()


class DebuggeeLauncher:
    def __init__(self, config: Optional[LaunchConfig] = None) -> None:
        self.config = config or LaunchConfig()

    def launch(self, class_name: str, transport: TransportConfig) -> DebuggeeProcess:
        argv = self.config.command_line(class_name, transport)
        LOGGER.info("launching debuggee: %s", " ".join(shlex.quote(arg) for arg in argv))
        try:
            popen = subprocess.Popen(
                argv,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                text=True,
                bufsize=1,
                env=os.environ.copy(),
            )
        except OSError as exc:
            raise TestBug(f"failed to launch debuggee {class_name}: {exc}") from exc
        return DebuggeeProcess(popen)


class Binder:
    """Launches a debuggee and returns a connected :class:`DebuggeeSession`."""

    def __init__(
        self,
        transport_config: Optional[TransportConfig] = None,
        launch_config: Optional[LaunchConfig] = None,
        *,
        wait_timeout: Optional[float] = None,
    ) -> None:
        self.transport_config = transport_config or TransportConfig()
        self.launcher = DebuggeeLauncher(launch_config)
        self.wait_timeout = wait_timeout

    def bind_to_debuggee(self, class_name: str) -> DebuggeeSession:
        transport = JdwpTransport(self.transport_config)
        if self.transport_config.mode == LISTEN:
            transport.listen()
        elif self.transport_config.mode != ATTACH:
            raise TestBug(f"unknown connector mode: {self.transport_config.mode!r}")
        process = self.launcher.launch(class_name, transport.config)
        try:
            if self.transport_config.mode == LISTEN:
                transport.accept()
            else:
                transport.attach()
        except TransportError as exc:
            transport.close()
            process.kill()
            raise TestBug(f"unable to connect to debuggee: {exc}") from exc
        LOGGER.info("debuggee %s bound (pid %s)", class_name, process.pid)
        return DebuggeeSession(
            transport=transport,
            process=process,
            pipe=process.create_io_pipe(),
            wait_timeout=self.wait_timeout,
        )


def split_vm_options(raw: Optional[str]) -> Sequence[str]:
    return shlex.split(raw) if raw else []
