# Directory: /
# Filename: node_toolkit.py

import datetime
import logging
import os
import sys
from typing import Callable, Optional

# --- Path Setup ---
PROJECT_ROOT_FOR_GLOBAL = os.path.dirname(os.path.abspath(__file__))
if PROJECT_ROOT_FOR_GLOBAL not in sys.path:
    sys.path.insert(0, PROJECT_ROOT_FOR_GLOBAL)

from controllers.node_fsm import NodeNavigationFSM
from utils.access_log import AccessLog
from utils.config_store import ConfigStore, OnboardingFlag
from utils.persistence import JsonFileStore, KeyValueStore

STATE_DIR_ENV = "SMARTNODE_STATE_DIR"
DEFAULT_STATE_DIR = os.path.join(PROJECT_ROOT_FOR_GLOBAL, "state")

toolkit_logger = logging.getLogger("NodeToolkit")


def resolve_state_dir(state_dir: Optional[str] = None) -> str:
    """Explicit argument, then $SMARTNODE_STATE_DIR, then <project>/state."""
    return state_dir or os.environ.get(STATE_DIR_ENV) or DEFAULT_STATE_DIR


def build_node(storage: Optional[KeyValueStore] = None,
               state_dir: Optional[str] = None,
               clock: Optional[Callable[[], datetime.datetime]] = None) -> NodeNavigationFSM:
    """
    Wires a NodeNavigationFSM to its repositories.

    Args:
        storage: Key-value backend. Defaults to a JsonFileStore in the state dir.
        state_dir: Directory for the default JsonFileStore.
        clock: Timestamp source for the access log.
    """
    if storage is None:
        directory = resolve_state_dir(state_dir)
        storage = JsonFileStore(directory)
        toolkit_logger.info(f"Using state directory '{directory}'.")
    node = NodeNavigationFSM(
        config_store=ConfigStore(storage),
        onboarding=OnboardingFlag(storage),
        access_log=AccessLog(clock=clock),
    )
    toolkit_logger.info(f"Node '{node.config.device_label}' ready. Initial screen: {node.state}. "
                        f"Master configured: {node.config.is_master_configured}.")
    return node


# --- Global node ('node') ---
# Created on first use so importing this module has no filesystem side effects.
node: Optional[NodeNavigationFSM] = None


def get_node() -> NodeNavigationFSM:
    global node
    if node is None:
        try:
            node = build_node()
        except Exception as e_node_create:
            toolkit_logger.critical(f"Failed to create global 'node' instance: {e_node_create}", exc_info=True)
            raise RuntimeError("Global 'node' was not successfully initialized.") from e_node_create
    return node


def reset_global_node() -> None:
    global node
    node = None
