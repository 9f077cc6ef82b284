# Filename: scripts/lockdown_walkthrough.py

import sys
import os
import logging

# --- Path Setup if running this script directly and not from project root ---
SCRIPT_DIR_WALKTHROUGH = os.path.dirname(os.path.abspath(__file__))
PROJECT_ROOT_WALKTHROUGH = os.path.dirname(SCRIPT_DIR_WALKTHROUGH)
if PROJECT_ROOT_WALKTHROUGH not in sys.path:
    sys.path.insert(0, PROJECT_ROOT_WALKTHROUGH)
# --- End Path Setup ---

from controllers.pairing import BluetoothDevice, SimulatedPairingTransport
from node_toolkit import build_node
from utils.logging_config import setup_logging_from_env
from utils.persistence import MemoryStore

script_logger = logging.getLogger("LockdownWalkthrough")

MASTER_PASSWORD = "correct-horse"


def run_sequence():
    """
    Walks a fresh in-memory node through setup, a PIN lockdown and the master
    override, asserting the screen after every step.
    """
    node = build_node(storage=MemoryStore())
    transport = SimulatedPairingTransport([
        BluetoothDevice(id="AA:BB:CC:00:00:01", name=node.config.device_label, signal_strength=-55),
    ])

    script_logger.info("--- Pairing ---")
    node.start()
    assert node.pair_with(transport), "Pairing with the simulated transport failed."
    assert node.state == 'MODE_SELECTION'

    script_logger.info("--- Creating master key ---")
    node.become_master()
    assert node.state == 'MASTER_SETUP', "A fresh node must offer master setup."
    assert node.save_setup(config=node.config.replace(master_password=MASTER_PASSWORD, allowed_attempts=3))
    assert node.state == 'MASTER_DASHBOARD'

    script_logger.info("--- Triggering lockdown from user mode ---")
    node.back()
    node.access_door()
    for _ in range(node.config.allowed_attempts):
        node.perform_action(action='unlock', pin='0000')
    assert node.is_lockdown, "Node should be in lockdown after the allowed failures."
    assert not node.perform_action(action='status'), "Actions must be refused during lockdown."

    script_logger.info("--- Master override ---")
    node.override_lockdown(password=MASTER_PASSWORD)
    assert node.last_auth_ok and not node.is_lockdown

    script_logger.info("--- Link loss ---")
    transport.drop_link()
    assert node.state == 'MANDATORY_CONNECTION', "With a master key, link loss forces reconnection."

    script_logger.info("Access history (newest first):")
    for entry in node.access_log:
        script_logger.info(f"  {entry.timestamp:%H:%M:%S}  {entry.status:<8}  {entry.action}")
    script_logger.info("--- Walkthrough complete ---")


if __name__ == "__main__":
    setup_logging_from_env()
    try:
        run_sequence()
    except AssertionError as e:
        script_logger.error(f"Walkthrough failed: {e}")
        sys.exit(1)
