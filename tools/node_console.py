# Directory: tools
# Filename: node_console.py

#!/usr/bin/env python3

import os
import shlex
import sys
from typing import Callable, Dict, List

# --- Path Setup ---
_CURRENT_SCRIPT_DIR = os.path.dirname(os.path.abspath(__file__))
PROJECT_ROOT = os.path.dirname(_CURRENT_SCRIPT_DIR)
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from controllers.node_fsm import NodeNavigationFSM
from controllers.pairing import BluetoothDevice, SimulatedPairingTransport
from utils.config_store import USER_ACTIONS, CustomCommand, SystemConfig
from utils.logging_config import setup_logging_from_env
from node_toolkit import build_node

SCREEN_TITLES = {
    'WELCOME': "Welcome",
    'USER_ACCESS_FLOW': "Connect to node",
    'MANDATORY_CONNECTION': "Connection required",
    'MODE_SELECTION': "Select mode",
    'MASTER_SETUP': "Create master key",
    'MASTER_AUTH': "Master login",
    'MASTER_DASHBOARD': "Master dashboard",
    'USER_MODE': "Door access",
}


class ConsoleUsageError(Exception):
    """A console command line could not be turned into an event."""
    pass


class NodeConsole:
    """
    Text renderer for a NodeNavigationFSM.

    It only reads snapshots and calls the FSM's triggers; every command it
    accepts maps onto one event hook of the current screen, plus the transport
    shortcuts 'pair' and 'drop'.
    """
    def __init__(self, node: NodeNavigationFSM, transport: SimulatedPairingTransport,
                 input_func: Callable[[str], str] = input,
                 output: Callable[[str], None] = print):
        self.node = node
        self.transport = transport
        self.input = input_func
        self.output = output

    def render(self) -> None:
        snap = self.node.snapshot()
        self.output("")
        self.output(f"== {SCREEN_TITLES.get(snap.screen, snap.screen)} [{snap.screen}] ==")
        device = f"{snap.connected_device.name} ({snap.connected_device.signal_strength} dBm)" if snap.connected_device else "none"
        self.output(f"Node: {snap.config.device_label}   Link: {device}   Onboarded: {snap.onboarding_complete}")
        if snap.screen == 'USER_MODE':
            state = "LOCKDOWN" if snap.is_lockdown else "NORMAL"
            self.output(f"Security: {state}   Failures: {snap.wrong_attempts}/{snap.config.allowed_attempts}")
            actions = [a for a in USER_ACTIONS if snap.config.enabled_user_actions.get(a)]
            actions += [c.id for c in snap.config.custom_commands]
            self.output(f"Actions: {', '.join(actions) if actions else 'none'}")
        if snap.screen == 'MASTER_DASHBOARD':
            for entry in snap.logs[:10]:
                self.output(f"  {entry.timestamp:%H:%M:%S}  {entry.status:<8}  {entry.action}")
        self.output(f"Events: {', '.join(snap.available_events)}   (also: pair, drop, quit)")

    def _prompt_setup(self) -> SystemConfig:
        password = self.input("Master password: ")
        question = self.input("Security question: ")
        answer = self.input("Security answer: ")
        unlock_pin = self.input(f"Unlock PIN [{self.node.config.unlock_pin}]: ") or self.node.config.unlock_pin
        lock_pin = self.input(f"Lock PIN [{self.node.config.lock_pin}]: ") or self.node.config.lock_pin
        return self.node.config.replace(
            master_password=password,
            security_question=question,
            security_answer=answer,
            unlock_pin=unlock_pin,
            lock_pin=lock_pin,
        )

    @staticmethod
    def apply_assignments(config: SystemConfig, assignments: List[str]) -> SystemConfig:
        """
        Applies 'key=value' edits to a copy of `config`.

        Keys: label, unlock_pin, lock_pin, master_password, attempts, lockout
        (on/off), enable, disable, add_command (id:label:command[:pin]),
        remove_command.
        """
        updated = config.replace()
        for item in assignments:
            key, sep, value = item.partition('=')
            if not sep:
                raise ConsoleUsageError(f"Expected key=value, got '{item}'")
            if key == 'label':
                updated.device_label = value
            elif key in ('unlock_pin', 'lock_pin', 'master_password'):
                setattr(updated, key, value)
            elif key == 'attempts':
                try:
                    updated.allowed_attempts = int(value)
                except ValueError:
                    raise ConsoleUsageError(f"attempts must be a number, got '{value}'")
            elif key == 'lockout':
                updated.lockout_enabled = value.lower() in ('on', 'true', 'yes', '1')
            elif key in ('enable', 'disable'):
                if value not in USER_ACTIONS:
                    raise ConsoleUsageError(f"Unknown action '{value}'. Expected one of {USER_ACTIONS}.")
                updated.enabled_user_actions[value] = key == 'enable'
            elif key == 'add_command':
                parts = value.split(':')
                if len(parts) not in (3, 4):
                    raise ConsoleUsageError("add_command expects id:label:command[:pin]")
                updated.custom_commands.append(CustomCommand(
                    id=parts[0], label=parts[1], command=parts[2],
                    requires_pin=len(parts) == 4 and parts[3] == 'pin',
                ))
            elif key == 'remove_command':
                updated.custom_commands = [c for c in updated.custom_commands if c.id != value]
            else:
                raise ConsoleUsageError(f"Unknown setting '{key}'")
        return updated

    def handle(self, line: str) -> bool:
        """
        Runs one command line. Returns False when the console should exit.
        """
        try:
            words = shlex.split(line)
        except ValueError as e:
            self.output(f"! {e}")
            return True
        if not words:
            return True
        command, args = words[0], words[1:]

        if command in ('quit', 'exit'):
            return False
        if command == 'pair':
            if not self.node.pair_with(self.transport):
                self.output("! Pairing failed.")
            return True
        if command == 'drop':
            self.transport.drop_link()
            return True

        if command not in self.node.available_events():
            self.output(f"! '{command}' is not available on this screen.")
            return True

        kwargs: Dict[str, object] = {}
        try:
            if command == 'save_setup':
                kwargs['config'] = self._prompt_setup()
            elif command == 'update_config':
                kwargs['config'] = self.apply_assignments(self.node.config, args)
            elif command in ('authenticate_master', 'override_lockdown'):
                kwargs['password'] = args[0] if args else self.input("Master password: ")
            elif command == 'perform_action':
                if not args:
                    raise ConsoleUsageError("perform_action expects an action name")
                kwargs['action'] = args[0]
                if len(args) > 1:
                    kwargs['pin'] = args[1]
                elif self.node.requires_pin(args[0]):
                    kwargs['pin'] = self.input(f"PIN for {args[0]}: ")
        except ConsoleUsageError as e:
            self.output(f"! {e}")
            return True

        handled = getattr(self.node, command)(**kwargs)
        if not handled:
            reason = self.node.last_rejection or "not accepted"
            self.output(f"! {command}: {reason}")
        elif self.node.last_auth_ok is False and command in ('authenticate_master', 'override_lockdown', 'perform_action'):
            self.output("! Authentication failed.")
        return True

    def run(self) -> None:
        while True:
            self.render()
            try:
                line = self.input("> ")
            except EOFError:
                break
            if not self.handle(line):
                break


def main() -> int:
    setup_logging_from_env()
    node = build_node()
    transport = SimulatedPairingTransport([
        BluetoothDevice(id="AA:BB:CC:00:00:01", name=node.config.device_label, signal_strength=-58),
    ])
    NodeConsole(node, transport).run()
    return 0


if __name__ == "__main__":
    sys.exit(main())
