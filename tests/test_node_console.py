# Directory: tests/
# Filename: test_node_console.py

import pytest

from controllers.node_fsm import NodeNavigationFSM
from controllers.pairing import BluetoothDevice, SimulatedPairingTransport
from tools.node_console import ConsoleUsageError, NodeConsole
from utils.access_log import AccessLog
from utils.config_store import ConfigStore, OnboardingFlag, SystemConfig
from utils.persistence import MemoryStore


class ScriptedInput:
    """Feeds prepared answers to the console, then signals end of input."""
    def __init__(self, answers=()):
        self.answers = list(answers)
        self.prompts = []

    def __call__(self, prompt):
        self.prompts.append(prompt)
        if not self.answers:
            raise EOFError
        return self.answers.pop(0)


@pytest.fixture
def node():
    storage = MemoryStore()
    return NodeNavigationFSM(ConfigStore(storage), OnboardingFlag(storage), AccessLog())


@pytest.fixture
def transport():
    return SimulatedPairingTransport([BluetoothDevice(id="01", name="SmartNode-01", signal_strength=-50)])


@pytest.fixture
def output():
    return []


def make_console(node, transport, output, answers=()):
    return NodeConsole(node, transport, input_func=ScriptedInput(answers), output=output.append)


def test_pair_and_navigate(node, transport, output):
    console = make_console(node, transport, output)
    assert console.handle("start")
    assert console.handle("pair")
    assert node.state == 'MODE_SELECTION'
    console.handle("access_door")
    assert node.state == 'USER_MODE'


def test_master_setup_prompts(node, transport, output):
    console = make_console(node, transport, output, answers=["s3cret", "Pet?", "Rex", "", "8765"])
    console.handle("start")
    console.handle("pair")
    console.handle("become_master")
    console.handle("save_setup")
    assert node.state == 'MASTER_DASHBOARD'
    assert node.config.master_password == "s3cret"
    assert node.config.security_answer == "Rex"
    assert node.config.unlock_pin == "1234"
    assert node.config.lock_pin == "8765"


def test_update_config_assignments(node, transport, output):
    console = make_console(node, transport, output, answers=["pw", "", "", "", ""])
    for line in ("start", "pair", "become_master", "save_setup"):
        console.handle(line)
    console.handle("update_config attempts=5 disable=emergency add_command=gate:Gate:OPEN:pin label=Door-East")
    assert node.config.allowed_attempts == 5
    assert node.config.enabled_user_actions['emergency'] is False
    assert node.config.find_custom_command('gate').requires_pin is True
    assert node.config.device_label == "Door-East"


def test_unavailable_event_is_reported(node, transport, output):
    console = make_console(node, transport, output)
    assert console.handle("factory_reset")
    assert node.state == 'WELCOME'
    assert any("not available" in line for line in output)


def test_refused_event_shows_reason(node, transport, output):
    console = make_console(node, transport, output)
    for line in ("start", "pair", "access_door"):
        console.handle(line)
    console.handle("perform_action teleport")
    assert any("not enabled" in line for line in output)


def test_wrong_pin_reports_authentication_failure(node, transport, output):
    console = make_console(node, transport, output)
    for line in ("start", "pair", "access_door"):
        console.handle(line)
    console.handle("perform_action unlock 0000")
    assert node.wrong_attempts == 1
    assert output[-1] == "! Authentication failed."


def test_pin_gated_action_prompts_for_pin(node, transport, output):
    console = make_console(node, transport, output, answers=["1234"])
    for line in ("start", "pair", "access_door"):
        console.handle(line)
    console.handle("perform_action unlock")
    assert console.input.prompts[-1] == "PIN for unlock: "
    assert node.access_log[0].action == "User Cmd: unlock"
    assert node.wrong_attempts == 0


def test_pin_gated_action_with_blank_pin_is_refused(node, transport, output):
    console = make_console(node, transport, output, answers=[""])
    for line in ("start", "pair", "access_door"):
        console.handle(line)
    console.handle("perform_action lock")
    assert node.wrong_attempts == 1
    assert node.access_log[0].status == 'FAILED'


def test_disconnect_only_offered_while_linked(node, transport, output):
    console = make_console(node, transport, output)
    console.handle("disconnect")
    assert output[-1] == "! 'disconnect' is not available on this screen."


def test_quit_and_blank_lines(node, transport, output):
    console = make_console(node, transport, output)
    assert console.handle("") is True
    assert console.handle("quit") is False


def test_drop_link_via_console(node, transport, output):
    console = make_console(node, transport, output)
    console.handle("start")
    console.handle("pair")
    console.handle("drop")
    assert node.state == 'USER_ACCESS_FLOW'


def test_run_stops_on_end_of_input(node, transport, output):
    console = make_console(node, transport, output, answers=["start"])
    console.run()
    assert node.state == 'USER_ACCESS_FLOW'
    assert any("[WELCOME]" in line for line in output)
    assert any("[USER_ACCESS_FLOW]" in line for line in output)


@pytest.mark.parametrize("assignment", ["attempts=many", "enable=teleport", "add_command=only:two", "colour=red", "novalue"])
def test_apply_assignments_rejects_bad_input(assignment):
    with pytest.raises(ConsoleUsageError):
        NodeConsole.apply_assignments(SystemConfig(), [assignment])
