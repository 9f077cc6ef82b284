# Directory: utils
# Filename: config_store.py

import copy
import dataclasses
import json
import logging
from typing import Any, Dict, List, Optional

from controllers.errors import ConfigCorrupt, ConfigValidationError, PersistenceError
from utils.persistence import KeyValueStore

STORAGE_KEY = 'sas_config_v1'
ONBOARDING_KEY = 'sas_onboarding_complete'

USER_ACTIONS: List[str] = ['unlock', 'lock', 'tempAccess', 'status', 'emergency']


@dataclasses.dataclass
class CustomCommand:
    id: str
    label: str
    command: str
    requires_pin: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'label': self.label,
            'command': self.command,
            'requiresPin': self.requires_pin,
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "CustomCommand":
        if not isinstance(data, dict):
            raise ConfigCorrupt(f"Custom command must be an object, got {type(data).__name__}")
        for key in ('id', 'label', 'command'):
            if not isinstance(data.get(key), str):
                raise ConfigCorrupt(f"Custom command field '{key}' must be a string")
        requires_pin = data.get('requiresPin', False)
        if not isinstance(requires_pin, bool):
            raise ConfigCorrupt("Custom command field 'requiresPin' must be a boolean")
        return CustomCommand(
            id=data['id'],
            label=data['label'],
            command=data['command'],
            requires_pin=requires_pin,
        )


def _all_actions_enabled() -> Dict[str, bool]:
    return {action: True for action in USER_ACTIONS}


@dataclasses.dataclass
class SystemConfig:
    """
    The node's persisted configuration.

    An empty `master_password` means master mode has never been set up.
    Attribute names are snake_case; the persisted JSON keeps the camelCase
    layout (`deviceLabel`, `masterPassword`, ...).
    """
    device_label: str = 'SmartNode-01'
    security_question: str = ''
    security_answer: str = ''
    master_password: str = ''
    unlock_pin: str = '1234'
    lock_pin: str = '4321'
    allowed_attempts: int = 3
    lockout_enabled: bool = True
    enabled_user_actions: Dict[str, bool] = dataclasses.field(default_factory=_all_actions_enabled)
    custom_commands: List[CustomCommand] = dataclasses.field(default_factory=list)

    @property
    def is_master_configured(self) -> bool:
        return self.master_password != ''

    def is_action_enabled(self, action: str) -> bool:
        if action in USER_ACTIONS:
            return bool(self.enabled_user_actions.get(action, False))
        return self.find_custom_command(action) is not None

    def find_custom_command(self, command_id: str) -> Optional[CustomCommand]:
        for command in self.custom_commands:
            if command.id == command_id:
                return command
        return None

    def replace(self, **changes) -> "SystemConfig":
        """Returns an independent copy with `changes` applied."""
        return dataclasses.replace(copy.deepcopy(self), **changes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'deviceLabel': self.device_label,
            'securityQuestion': self.security_question,
            'securityAnswer': self.security_answer,
            'masterPassword': self.master_password,
            'unlockPin': self.unlock_pin,
            'lockPin': self.lock_pin,
            'allowedAttempts': self.allowed_attempts,
            'lockoutEnabled': self.lockout_enabled,
            'enabledUserActions': dict(self.enabled_user_actions),
            'customCommands': [command.to_dict() for command in self.custom_commands],
        }

    @staticmethod
    def from_dict(data: Any) -> "SystemConfig":
        """
        Builds a config from its persisted JSON shape.

        Missing keys take their default. Present keys of the wrong type make
        the whole record unusable.

        Raises:
            ConfigCorrupt: if `data` is not an object or a field has the wrong type.
        """
        if not isinstance(data, dict):
            raise ConfigCorrupt(f"Config record must be an object, got {type(data).__name__}")
        default = SystemConfig()
        string_fields = {
            'deviceLabel': 'device_label',
            'securityQuestion': 'security_question',
            'securityAnswer': 'security_answer',
            'masterPassword': 'master_password',
            'unlockPin': 'unlock_pin',
            'lockPin': 'lock_pin',
        }
        values: Dict[str, Any] = {}
        for json_key, attr in string_fields.items():
            value = data.get(json_key, getattr(default, attr))
            if not isinstance(value, str):
                raise ConfigCorrupt(f"Config field '{json_key}' must be a string")
            values[attr] = value

        allowed = data.get('allowedAttempts', default.allowed_attempts)
        # bool is a subclass of int; reject it explicitly
        if isinstance(allowed, bool) or not isinstance(allowed, int) or allowed < 1:
            raise ConfigCorrupt("Config field 'allowedAttempts' must be an integer >= 1")
        values['allowed_attempts'] = allowed

        lockout = data.get('lockoutEnabled', default.lockout_enabled)
        if not isinstance(lockout, bool):
            raise ConfigCorrupt("Config field 'lockoutEnabled' must be a boolean")
        values['lockout_enabled'] = lockout

        actions = data.get('enabledUserActions', default.enabled_user_actions)
        if not isinstance(actions, dict):
            raise ConfigCorrupt("Config field 'enabledUserActions' must be an object")
        enabled = _all_actions_enabled()
        for action, flag in actions.items():
            if action not in USER_ACTIONS:
                continue
            if not isinstance(flag, bool):
                raise ConfigCorrupt(f"User action flag '{action}' must be a boolean")
            enabled[action] = flag
        values['enabled_user_actions'] = enabled

        commands = data.get('customCommands', [])
        if not isinstance(commands, list):
            raise ConfigCorrupt("Config field 'customCommands' must be a list")
        values['custom_commands'] = [CustomCommand.from_dict(item) for item in commands]

        return SystemConfig(**values)


def validate_config(config: SystemConfig, previous: Optional[SystemConfig] = None) -> None:
    """
    Business rules applied by the master setup and dashboard flows before a save.

    Args:
        config: The candidate configuration.
        previous: The configuration currently in force, if any. Used to enforce
                  that a configured master password is never cleared.

    Raises:
        ConfigValidationError: describing the first rule that fails.
    """
    if not config.master_password:
        if previous is not None and previous.master_password:
            raise ConfigValidationError("Master password cannot be removed; use factory reset instead.")
        raise ConfigValidationError("Master password must not be empty.")
    if not config.unlock_pin or not config.lock_pin:
        raise ConfigValidationError("Unlock and lock PINs must not be empty.")
    if isinstance(config.allowed_attempts, bool) or not isinstance(config.allowed_attempts, int) \
            or config.allowed_attempts < 1:
        raise ConfigValidationError("Allowed attempts must be an integer of at least 1.")
    if not config.device_label:
        raise ConfigValidationError("Device label must not be empty.")
    # Anything saved here must load back through from_dict on the next start.
    try:
        if not all(isinstance(command, CustomCommand) for command in config.custom_commands):
            raise ConfigCorrupt("Custom commands must be CustomCommand records")
        SystemConfig.from_dict(config.to_dict())
    except (ConfigCorrupt, TypeError, ValueError) as e:
        raise ConfigValidationError(f"Configuration cannot be stored: {e}.") from e
    seen_ids = set()
    for command in config.custom_commands:
        if not command.id or not command.label:
            raise ConfigValidationError("Custom commands need an id and a label.")
        if command.id in USER_ACTIONS:
            raise ConfigValidationError(f"Custom command id '{command.id}' shadows a built-in action.")
        if command.id in seen_ids:
            raise ConfigValidationError(f"Duplicate custom command id '{command.id}'.")
        seen_ids.add(command.id)


class ConfigStore:
    """
    Repository for the persisted SystemConfig record.

    Reading never fails: absent or malformed data yields the default config.
    Writing is synchronous; storage errors are logged and reported as False
    so the caller's in-memory transition can still complete.
    """
    def __init__(self, storage: KeyValueStore, logger_instance: Optional[logging.Logger] = None):
        self.storage = storage
        self.logger = logger_instance or logging.getLogger("ConfigStore")

    def load(self) -> SystemConfig:
        raw = self.storage.get(STORAGE_KEY)
        if raw is None:
            self.logger.info("No stored configuration found. Using defaults.")
            return SystemConfig()
        try:
            try:
                data = json.loads(raw)
            except (json.JSONDecodeError, TypeError) as e:
                raise ConfigCorrupt(f"Stored configuration is not valid JSON: {e}") from e
            config = SystemConfig.from_dict(data)
        except ConfigCorrupt as e:
            self.logger.warning(f"Discarding stored configuration: {e}. Using defaults.")
            return SystemConfig()
        self.logger.debug(f"Loaded configuration for '{config.device_label}'.")
        return config

    def save(self, config: SystemConfig) -> bool:
        payload = json.dumps(config.to_dict(), indent=2)
        try:
            self.storage.set(STORAGE_KEY, payload)
        except PersistenceError as e:
            self.logger.error(f"Failed to persist configuration: {e}")
            return False
        self.logger.debug("Configuration persisted.")
        return True

    def reset(self) -> SystemConfig:
        """Erases the config and onboarding records and returns the defaults."""
        for key in (STORAGE_KEY, ONBOARDING_KEY):
            try:
                self.storage.delete(key)
            except PersistenceError as e:
                self.logger.error(f"Failed to erase record '{key}': {e}")
        self.logger.info("Stored configuration erased. Defaults restored.")
        return SystemConfig()


class OnboardingFlag:
    """Persisted marker for 'a controller has paired with this node at least once'."""
    def __init__(self, storage: KeyValueStore, logger_instance: Optional[logging.Logger] = None):
        self.storage = storage
        self.logger = logger_instance or logging.getLogger("ConfigStore.Onboarding")

    def is_set(self) -> bool:
        return self.storage.get(ONBOARDING_KEY) == 'true'

    def mark_complete(self) -> bool:
        try:
            self.storage.set(ONBOARDING_KEY, 'true')
        except PersistenceError as e:
            self.logger.error(f"Failed to persist onboarding flag: {e}")
            return False
        return True

    def clear(self) -> None:
        try:
            self.storage.delete(ONBOARDING_KEY)
        except PersistenceError as e:
            self.logger.error(f"Failed to erase onboarding flag: {e}")
