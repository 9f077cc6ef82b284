# Directory: controllers
# Filename: pairing.py

import dataclasses
import logging
from typing import Callable, List, Optional


@dataclasses.dataclass(frozen=True)
class BluetoothDevice:
    id: str
    name: str
    signal_strength: int


class PairingTransport:
    """
    Narrow contract for the pairing collaborator.

    The node only consumes the identity of a paired device and the fact that the
    link dropped. Protocol details stay behind this interface.
    """
    def attempt_connect(self, device_label: str) -> Optional[BluetoothDevice]:
        raise NotImplementedError

    def on_disconnect(self, callback: Callable[[], object]) -> None:
        raise NotImplementedError


class SimulatedPairingTransport(PairingTransport):
    """
    In-process stand-in for the radio link.

    `attempt_connect` returns the strongest discovered device whose name matches
    the configured label. `drop_link` plays the asynchronous disconnect
    notification by calling every registered listener.
    """
    def __init__(self, discovered_devices: Optional[List[BluetoothDevice]] = None,
                 logger_instance: Optional[logging.Logger] = None):
        self.discovered_devices: List[BluetoothDevice] = list(discovered_devices or [])
        self.logger = logger_instance or logging.getLogger("Pairing")
        self.linked_device: Optional[BluetoothDevice] = None
        self._disconnect_listeners: List[Callable[[], object]] = []

    def attempt_connect(self, device_label: str) -> Optional[BluetoothDevice]:
        candidates = [d for d in self.discovered_devices if d.name == device_label]
        if not candidates:
            self.logger.info(f"No discovered device matches '{device_label}'.")
            return None
        self.linked_device = max(candidates, key=lambda d: d.signal_strength)
        self.logger.info(f"Linked to {self.linked_device.name} ({self.linked_device.id}, {self.linked_device.signal_strength} dBm).")
        return self.linked_device

    def on_disconnect(self, callback: Callable[[], object]) -> None:
        if callback not in self._disconnect_listeners:
            self._disconnect_listeners.append(callback)

    def drop_link(self) -> None:
        if self.linked_device is None:
            self.logger.debug("drop_link called with no active link.")
            return
        self.logger.info(f"Link to {self.linked_device.name} dropped.")
        self.linked_device = None
        for callback in list(self._disconnect_listeners):
            callback()
