import pytest

from python.jdwpdbg import errors
from python.jdwpdbg.constants import Capability, Command
from python.jdwpdbg.packet import IDSizes
from python.jdwpdbg.session import DebuggeeSession, SessionState
from python.tests.jdwp_stubs import FakePipe, FakeProcess, FakeVM, make_reply, make_session, vm_init_event


@pytest.fixture
def vm():
    fake = FakeVM()
    yield fake
    fake.stop()


def test_prepare_reaches_ready(vm):
    session = make_session(vm)
    session.prepare()
    assert session.state is SessionState.READY
    assert session.vm_initialized
    assert session.id_sizes == IDSizes()
    assert vm.commands() == [Command.VirtualMachine.IDSizes, Command.VirtualMachine.Resume]


def test_prepare_adopts_negotiated_id_sizes():
    vm = FakeVM(id_sizes=IDSizes(field_id=4, method_id=4, object_id=4, reference_type_id=4, frame_id=4))
    try:
        session = make_session(vm)
        session.prepare()
        assert session.id_sizes.object_id == 4
        assert session.transport.id_sizes.object_id == 4
        assert session.commands.thread_name(5) == "TestedThread"
    finally:
        vm.stop()


@pytest.mark.parametrize(
    "signals, message",
    [
        (["error"], "not able to start tested thread"),
        ([None], "Null signal"),
        (["go"], "Unexpected signal received from debuggee: go"),
    ],
)
def test_prepare_rejects_bad_signal(vm, signals, message):
    session = make_session(vm, signals=signals)
    with pytest.raises(errors.TestBug, match=message):
        session.prepare()
    assert session.state is SessionState.FAILED
    assert message in session.failure_reason


def test_prepare_rejects_wrong_first_event():
    vm = FakeVM(send_vm_init=False)
    try:
        session = make_session(vm)
        vm._server.sendall(vm_init_event(kind=99))
        with pytest.raises(errors.TestBug, match="unexpected event kind"):
            session.prepare()
        assert session.state is SessionState.FAILED
    finally:
        vm.stop()


def test_commands_rejected_before_vm_init(vm):
    session = make_session(vm)
    with pytest.raises(errors.NotInitialized):
        session.new_command(Command.VirtualMachine.Version)
    with pytest.raises(errors.NotInitialized):
        session.id_sizes


def test_command_error_code_raises(vm):
    session = make_session(vm)
    session.prepare()
    vm.handlers[Command.VirtualMachine.Version] = lambda packet: vm.reply(packet, error_code=112)
    with pytest.raises(errors.CommandError) as excinfo:
        session.commands.version()
    assert excinfo.value.error_code == 112
    assert "VM_DEAD" in str(excinfo.value)


def test_get_capability(vm):
    session = make_session(vm)
    session.prepare()
    assert session.get_capability(Capability.CAN_GET_CURRENT_CONTENDED_MONITOR, "canGetCurrentContendedMonitor")
    assert not session.get_capability(Capability.CAN_WATCH_FIELD_ACCESS)
    with pytest.raises(errors.TestBug):
        session.get_capability(Capability.COUNT)


def test_suspended_block_resumes_on_exception(vm):
    session = make_session(vm)
    session.prepare()
    with pytest.raises(RuntimeError):
        with session.suspended():
            assert session.state is SessionState.SUSPENDED
            raise RuntimeError("boom")
    assert session.state is SessionState.RESUMED
    assert vm.count(Command.VirtualMachine.Suspend) == 1
    assert vm.count(Command.VirtualMachine.Resume) == 2


def test_quit_is_sent_once(vm):
    session = make_session(vm, exit_code=95)
    session.prepare()
    assert session.quit() == 95
    assert session.quit() == 95
    assert session.pipe.written == ["quit"]
    assert session.process.waited == 1
    assert session.state is SessionState.EXITED


def test_quit_from_suspended_state(vm):
    session = make_session(vm)
    session.prepare()
    session.suspend()
    assert session.quit() == 95
    assert session.state is SessionState.EXITED


def test_illegal_transition_raises(vm):
    session = make_session(vm)
    session.prepare()
    with pytest.raises(errors.SessionStateError):
        session._transition(SessionState.EXITED)
    assert session.state is SessionState.READY


def test_close_kills_running_process():
    vm = FakeVM()
    try:
        process = FakeProcess()
        pipe = FakePipe()
        vm.transport.handshake()
        session = DebuggeeSession(transport=vm.transport, process=process, pipe=pipe)
        session.close()
        assert process.killed
        assert pipe.closed
        assert session.state is SessionState.EXITED
        assert vm.transport.state == "disconnected"
    finally:
        vm.stop()


def test_unmatched_request_releases_packet_id(vm):
    session = make_session(vm)
    session.prepare()
    vm.handlers[Command.VirtualMachine.Version] = lambda packet: make_reply(packet.id + 3)
    with pytest.raises(errors.UnmatchedReply):
        session.commands.version()
    assert session.transport.allocator.outstanding == ()
