# Directory: controllers
# Filename: node_fsm.py

import copy
import dataclasses
import logging
import os
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

# --- FSM Machine Type Selection ---
# LockedMachine serializes every trigger behind one per-instance lock. The
# diagram tool swaps in GraphMachine, which needs pygraphviz.
DIAGRAM_MODE = os.environ.get('FSM_DIAGRAM_MODE', 'false').lower() == 'true'

if DIAGRAM_MODE:
    from transitions.extensions import GraphMachine as Machine
else:
    from transitions.extensions import LockedMachine as Machine
from transitions import EventData

from controllers.attempt_tracker import AttemptTracker
from controllers.errors import (
    ActionDisabled, AuthMismatch, ConfigValidationError, LockdownActive,
    TransitionCallbackError, verify_secret,
)
from controllers.pairing import BluetoothDevice, PairingTransport
from utils.access_log import AccessLog, AccessLogEntry
from utils.config_store import USER_ACTIONS, ConfigStore, OnboardingFlag, SystemConfig, validate_config

SCREENS: List[str] = ['WELCOME', 'USER_ACCESS_FLOW', 'MANDATORY_CONNECTION', 'MODE_SELECTION',
                      'MASTER_SETUP', 'MASTER_AUTH', 'MASTER_DASHBOARD', 'USER_MODE',
]

# Guards are model method names. `resolve_transition` evaluates the same names
# against a plain dict of facts, so the live machine and the pure resolver
# always agree on the table.
TRANSITIONS: List[Dict[str, Any]] = [
    # --- Welcome ---
    {'trigger': 'auto_advance', 'source': 'WELCOME', 'dest': 'MODE_SELECTION', 'conditions': ['_has_connection']},
    {'trigger': 'auto_advance', 'source': 'WELCOME', 'dest': 'MANDATORY_CONNECTION', 'unless': ['_has_connection']},
    {'trigger': 'start', 'source': 'WELCOME', 'dest': 'USER_ACCESS_FLOW'},

    # --- Pairing / Link loss ---
    {'trigger': 'device_paired', 'source': ['USER_ACCESS_FLOW', 'MANDATORY_CONNECTION'], 'dest': 'MODE_SELECTION', 'conditions': ['_device_supplied'], 'before': '_attach_device'},
    {'trigger': 'disconnect', 'source': '*', 'dest': 'MANDATORY_CONNECTION', 'conditions': ['_has_connection', '_master_configured'], 'before': '_detach_device'},
    {'trigger': 'disconnect', 'source': '*', 'dest': 'USER_ACCESS_FLOW', 'conditions': ['_has_connection'], 'unless': ['_master_configured'], 'before': '_detach_device'},
    {'trigger': 'continue_to_pairing', 'source': 'MANDATORY_CONNECTION', 'dest': 'USER_ACCESS_FLOW'},

    # --- Mode Selection ---
    {'trigger': 'become_master', 'source': 'MODE_SELECTION', 'dest': 'MASTER_AUTH', 'conditions': ['_master_configured']},
    {'trigger': 'become_master', 'source': 'MODE_SELECTION', 'dest': 'MASTER_SETUP', 'unless': ['_master_configured']},
    {'trigger': 'access_door', 'source': 'MODE_SELECTION', 'dest': 'USER_MODE'},

    # --- Master Mode ---
    {'trigger': 'save_setup', 'source': 'MASTER_SETUP', 'dest': 'MASTER_DASHBOARD', 'conditions': ['_config_valid'], 'before': '_commit_setup'},
    {'trigger': 'authenticate_master', 'source': 'MASTER_AUTH', 'dest': 'MASTER_DASHBOARD', 'conditions': ['_master_password_matches'], 'before': '_accept_master_auth'},
    {'trigger': 'authenticate_master', 'source': 'MASTER_AUTH', 'dest': 'MASTER_AUTH', 'unless': ['_master_password_matches'], 'before': '_reject_master_auth'},
    {'trigger': 'update_config', 'source': 'MASTER_DASHBOARD', 'dest': 'MASTER_DASHBOARD', 'conditions': ['_config_valid'], 'before': '_commit_config_update'},
    {'trigger': 'clear_history', 'source': 'MASTER_DASHBOARD', 'dest': 'MASTER_DASHBOARD', 'before': '_clear_history'},
    {'trigger': 'factory_reset', 'source': 'MASTER_DASHBOARD', 'dest': 'WELCOME', 'before': '_do_factory_reset'},

    # --- User Mode (Self-Loops) ---
    {'trigger': 'perform_action', 'source': 'USER_MODE', 'dest': 'USER_MODE', 'conditions': ['_not_in_lockdown', '_action_enabled', '_pin_accepted'], 'before': '_log_user_command'},
    {'trigger': 'perform_action', 'source': 'USER_MODE', 'dest': 'USER_MODE', 'conditions': ['_not_in_lockdown', '_action_enabled'], 'unless': ['_pin_accepted'], 'before': '_register_failed_attempt'},
    {'trigger': 'report_wrong_pin', 'source': 'USER_MODE', 'dest': 'USER_MODE', 'conditions': ['_not_in_lockdown'], 'before': '_register_failed_attempt'},
    {'trigger': 'override_lockdown', 'source': 'USER_MODE', 'dest': 'USER_MODE', 'before': '_override_lockdown'},

    # --- Back Navigation ---
    {'trigger': 'back', 'source': ['USER_ACCESS_FLOW', 'MODE_SELECTION'], 'dest': 'WELCOME'},
    {'trigger': 'back', 'source': ['MASTER_SETUP', 'MASTER_AUTH', 'MASTER_DASHBOARD', 'USER_MODE'], 'dest': 'MODE_SELECTION'},
]


def _as_list(value: Any) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def resolve_transition(screen: str, event: str, facts: Mapping[str, bool]) -> Tuple[Optional[str], Tuple[str, ...]]:
    """
    Pure lookup over TRANSITIONS.

    Args:
        screen: The current screen name.
        event: The trigger name.
        facts: Guard name to boolean, e.g. {'_has_connection': True}. Missing
               guards count as False.

    Returns:
        (destination screen, effect callback names) for the first matching
        transition, or (None, ()) when the event is not accepted on `screen`.
    """
    for transition in TRANSITIONS:
        if transition['trigger'] != event:
            continue
        source = transition['source']
        if source != '*' and screen not in _as_list(source):
            continue
        if not all(facts.get(guard, False) for guard in _as_list(transition.get('conditions'))):
            continue
        if any(facts.get(guard, False) for guard in _as_list(transition.get('unless'))):
            continue
        return transition['dest'], tuple(_as_list(transition.get('before')))
    return None, ()


@dataclasses.dataclass(frozen=True)
class NodeSnapshot:
    """Read-only view handed to the rendering collaborator."""
    screen: str
    config: SystemConfig
    logs: Tuple[AccessLogEntry, ...]
    connected_device: Optional[BluetoothDevice]
    onboarding_complete: bool
    wrong_attempts: int
    is_lockdown: bool
    available_events: Tuple[str, ...]

    @property
    def master_configured(self) -> bool:
        return self.config.is_master_configured


## --- FSM Class Definition ---
class NodeNavigationFSM:
    """
    Screen-level state machine for a SmartNode access device.

    This class owns the current screen, the transient link to a controller
    device and the in-memory config, and routes every UI or transport event
    through the TRANSITIONS table. Persistence goes through the injected
    ConfigStore and OnboardingFlag; failure counting and lockdown are delegated
    to an AttemptTracker; history goes to an AccessLog.

    Attributes:
        STATES: All screens the machine can show.
        config: The configuration in force (persisted on every mutation).
        connected_device: The paired controller, or None.
        last_auth_ok: Outcome of the most recent password/PIN check, or None.
        last_rejection: Why the most recent event was refused, or None.
        machine: The `transitions` machine powering the FSM.
        state: The current screen.
    """

    STATES: List[str] = SCREENS

    logger: logging.Logger
    machine: Machine
    state: str
    source_state: str = 'WELCOME'

    def __init__(self,
                 config_store: ConfigStore,
                 onboarding: OnboardingFlag,
                 access_log: Optional[AccessLog] = None,
                 attempt_tracker: Optional[AttemptTracker] = None,
                 logger_instance: Optional[logging.Logger] = None):
        """
        Initializes the NodeNavigationFSM and loads the persisted config.

        Args:
            config_store: Repository for the SystemConfig record.
            onboarding: Repository for the first-pairing flag.
            access_log: History sink; a fresh AccessLog is created if omitted.
            attempt_tracker: Failure counter; built on this FSM's config if omitted.
            logger_instance: Optional logger; defaults to 'NodeFSM'.
        """
        self.logger = logger_instance or logging.getLogger("NodeFSM")
        self.config_store = config_store
        self.onboarding = onboarding
        self.access_log = access_log if access_log is not None else AccessLog()
        self.attempts = attempt_tracker or AttemptTracker(
            config_provider=lambda: self.config,
            access_log=self.access_log,
            logger_instance=self.logger.getChild("Attempts"),
        )

        self.config: SystemConfig = self.config_store.load()
        self.connected_device: Optional[BluetoothDevice] = None
        self.last_auth_ok: Optional[bool] = None
        self.last_rejection: Optional[str] = None

        machine_kwargs = {
            'model': self,
            'states': NodeNavigationFSM.STATES,
            'transitions': TRANSITIONS,
            'initial': 'WELCOME',
            'send_event': True,
            'auto_transitions': False,
            'ignore_invalid_triggers': True,
            'prepare_event': '_prepare_event',
            'finalize_event': '_finalize_event',
            'after_state_change': '_log_state_change_details',
        }

        if DIAGRAM_MODE:
            machine_kwargs['graph_engine'] = 'pygraphviz'

        self.machine = Machine(**machine_kwargs)
        self.transition_config = TRANSITIONS

        # --- Public triggers --- #
        self.access_door: Callable
        self.authenticate_master: Callable
        self.auto_advance: Callable
        self.back: Callable
        self.become_master: Callable
        self.clear_history: Callable
        self.continue_to_pairing: Callable
        self.device_paired: Callable
        self.disconnect: Callable
        self.factory_reset: Callable
        self.override_lockdown: Callable
        self.perform_action: Callable
        self.report_wrong_pin: Callable
        self.save_setup: Callable
        self.start: Callable
        self.update_config: Callable

    # --- Read access for renderers --- #

    @property
    def onboarding_complete(self) -> bool:
        return self.onboarding.is_set()

    @property
    def is_lockdown(self) -> bool:
        return self.attempts.is_lockdown

    @property
    def wrong_attempts(self) -> int:
        return self.attempts.wrong_attempts

    def available_events(self) -> List[str]:
        """Triggers defined for the current screen, i.e. the renderer's callback hooks."""
        events = self.machine.get_triggers(self.state)
        if self.connected_device is None:
            # Link loss is only reported while a link exists.
            events = [event for event in events if event != 'disconnect']
        return sorted(events)

    def requires_pin(self, action: str) -> bool:
        """True when `perform_action(action)` must carry a PIN."""
        return self._required_pin(action) is not None

    def snapshot(self) -> NodeSnapshot:
        return NodeSnapshot(
            screen=self.state,
            config=copy.deepcopy(self.config),
            logs=tuple(self.access_log.entries()),
            connected_device=self.connected_device,
            onboarding_complete=self.onboarding_complete,
            wrong_attempts=self.attempts.wrong_attempts,
            is_lockdown=self.attempts.is_lockdown,
            available_events=tuple(self.available_events()),
        )

    def facts(self, **kwargs) -> Dict[str, bool]:
        """
        Evaluates every guard for a hypothetical event carrying `kwargs`.

        Feeding the result to `resolve_transition` predicts what the live
        machine will do without firing anything.
        """
        event_data = EventData(self.machine.get_state(self.state), None, self.machine, self, args=(), kwargs=kwargs)
        guards = ['_has_connection', '_master_configured', '_device_supplied', '_config_valid',
                  '_master_password_matches', '_not_in_lockdown', '_action_enabled', '_pin_accepted']
        saved_rejection = self.last_rejection
        result = {guard: bool(getattr(self, guard)(event_data)) for guard in guards}
        self.last_rejection = saved_rejection
        return result

    def pair_with(self, transport: PairingTransport) -> bool:
        """
        Asks `transport` for a device matching the configured label and, when one
        answers, fires `device_paired` and subscribes to its link-loss notification.

        Returns:
            True if the node is now paired.
        """
        device = transport.attempt_connect(self.config.device_label)
        if device is None:
            self.logger.info(f"Pairing attempt for '{self.config.device_label}' found no device.")
            return False
        if not self.device_paired(device=device):
            self.logger.warning(f"Device '{device.name}' answered, but pairing is not accepted on {self.state}.")
            return False
        transport.on_disconnect(self.disconnect)
        return True

    # --- Machine-level callbacks --- #

    def _prepare_event(self, event_data: EventData) -> None:
        self.last_rejection = None
        self.last_auth_ok = None

    def _finalize_event(self, event_data: EventData) -> None:
        if not event_data.result and self.last_rejection:
            self.logger.info(f"Event '{event_data.event.name}' refused on {self.state}: {self.last_rejection}")

    def _log_state_change_details(self, event_data: EventData) -> None:
        """
        Logs the details of every screen transition.

        Args:
            event_data: The event data provided by the FSM.
        """
        if event_data.transition is None:
            self.logger.info(f"FSM initialized to state: {self.state}")
            return
        self.source_state = event_data.transition.source
        self.logger.info(f"State changed: {self.source_state} -> {self.state} (Event: {event_data.event.name})")

    @staticmethod
    def _event_arg(event_data: EventData, name: str, index: int = 0, required: bool = False) -> Any:
        """Reads an event argument passed either by keyword or positionally."""
        if name in event_data.kwargs:
            return event_data.kwargs[name]
        if len(event_data.args) > index:
            return event_data.args[index]
        if required:
            raise TransitionCallbackError(f"Event '{event_data.event.name}' requires argument '{name}'.")
        return None

###########################################################################################################
# Guards

    def _has_connection(self, event_data: EventData) -> bool:
        return self.connected_device is not None

    def _master_configured(self, event_data: EventData) -> bool:
        return self.config.is_master_configured

    def _device_supplied(self, event_data: EventData) -> bool:
        device = self._event_arg(event_data, 'device')
        if device is None:
            self.last_rejection = "no device supplied"
            return False
        return True

    def _config_valid(self, event_data: EventData) -> bool:
        candidate = self._event_arg(event_data, 'config')
        if not isinstance(candidate, SystemConfig):
            self.last_rejection = "a SystemConfig is required"
            return False
        try:
            validate_config(candidate, previous=self.config)
        except ConfigValidationError as e:
            self.last_rejection = str(e)
            return False
        return True

    def _master_password_matches(self, event_data: EventData) -> bool:
        password = self._event_arg(event_data, 'password')
        if not self.config.is_master_configured:
            return False
        try:
            verify_secret(self.config.master_password, password, label="Master password")
        except AuthMismatch:
            return False
        return True

    def _not_in_lockdown(self, event_data: EventData) -> bool:
        try:
            self.attempts.ensure_not_locked()
        except LockdownActive as e:
            self.last_rejection = str(e)
            return False
        return True

    def _check_action_enabled(self, action: Optional[str]) -> None:
        if not action or not self.config.is_action_enabled(action):
            raise ActionDisabled(f"Action '{action}' is not enabled on this node.")

    def _action_enabled(self, event_data: EventData) -> bool:
        try:
            self._check_action_enabled(self._event_arg(event_data, 'action'))
        except ActionDisabled as e:
            self.last_rejection = str(e)
            return False
        return True

    def _required_pin(self, action: Optional[str]) -> Optional[str]:
        """The PIN guarding `action`, or None when the action needs no PIN."""
        if action == 'unlock':
            return self.config.unlock_pin
        if action == 'lock':
            return self.config.lock_pin
        command = self.config.find_custom_command(action) if action else None
        if command is not None and command.requires_pin:
            return self.config.unlock_pin
        return None

    def _pin_accepted(self, event_data: EventData) -> bool:
        expected = self._required_pin(self._event_arg(event_data, 'action'))
        if expected is None:
            return True
        # A PIN-gated action without a PIN counts as a wrong entry.
        pin = self._event_arg(event_data, 'pin', index=1)
        try:
            verify_secret(expected, pin, label="PIN")
        except AuthMismatch:
            return False
        return True

###########################################################################################################
# Effects (run 'before' the screen changes)

    def _attach_device(self, event_data: EventData) -> None:
        device = self._event_arg(event_data, 'device', required=True)
        self.connected_device = device
        if not self.onboarding.mark_complete():
            self.logger.warning("Onboarding flag could not be persisted; continuing with the in-memory link.")
        self.access_log.append(f"Node Link Established: {device.name}", 'SUCCESS')

    def _detach_device(self, event_data: EventData) -> None:
        self.logger.info(f"Link to {self.connected_device.name} lost.")
        self.connected_device = None
        self.access_log.append('Device Node Disconnected', 'PENDING')

    def _apply_config(self, candidate: SystemConfig) -> None:
        self.config = copy.deepcopy(candidate)
        if not self.config_store.save(self.config):
            self.logger.warning("Configuration applied in memory but could not be persisted.")

    def _commit_setup(self, event_data: EventData) -> None:
        self._apply_config(self._event_arg(event_data, 'config', required=True))
        self.access_log.append('Master Key Created', 'SUCCESS')

    def _commit_config_update(self, event_data: EventData) -> None:
        self._apply_config(self._event_arg(event_data, 'config', required=True))
        self.access_log.append('Security Config Optimized', 'SUCCESS')

    def _accept_master_auth(self, event_data: EventData) -> None:
        self.last_auth_ok = True

    def _reject_master_auth(self, event_data: EventData) -> None:
        self.last_auth_ok = False
        self.access_log.append('Master Auth Rejected', 'FAILED')

    def _clear_history(self, event_data: EventData) -> None:
        self.access_log.clear()

    def _do_factory_reset(self, event_data: EventData) -> None:
        self.logger.warning("Factory reset requested. Erasing all persisted state.")
        self.config = self.config_store.reset()
        self.onboarding.clear()
        self.access_log.clear()
        self.connected_device = None
        self.attempts.reset()
        self.last_auth_ok = None

    def _log_user_command(self, event_data: EventData) -> None:
        action = self._event_arg(event_data, 'action', required=True)
        command = None if action in USER_ACTIONS else self.config.find_custom_command(action)
        label = command.label if command is not None else action
        if self._event_arg(event_data, 'pin', index=1) is not None:
            self.last_auth_ok = True
        self.attempts.record_success()
        self.access_log.append(f"User Cmd: {label}", 'SUCCESS')

    def _register_failed_attempt(self, event_data: EventData) -> None:
        self.last_auth_ok = False
        self.attempts.record_failure()

    def _override_lockdown(self, event_data: EventData) -> None:
        password = self._event_arg(event_data, 'password', required=True)
        self.last_auth_ok = self.attempts.override_with(password)

###########################################################################################################
# Screen entry hooks

    def on_enter_MASTER_DASHBOARD(self, event_data: EventData) -> None:
        self.logger.info(f"Master session open for '{self.config.device_label}'.")

    def on_enter_USER_MODE(self, event_data: EventData) -> None:
        if self.attempts.is_lockdown and event_data.transition.source != 'USER_MODE':
            self.logger.warning("Entered USER_MODE while in LOCKDOWN. Only the master override is accepted.")

    def on_enter_WELCOME(self, event_data: EventData) -> None:
        self.logger.debug(f"Welcome screen. Onboarding complete: {self.onboarding_complete}.")
