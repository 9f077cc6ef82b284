# Directory: controllers
# Filename: errors.py

class NodeError(Exception):
    """Base class for every error raised by the node controller."""
    pass

class ConfigCorrupt(NodeError):
    """Persisted configuration could not be parsed into a SystemConfig."""
    pass

class ConfigValidationError(NodeError):
    """A candidate configuration breaks a setup or dashboard business rule."""
    pass

class PersistenceError(NodeError):
    """The storage medium refused a write or delete."""
    pass

class AuthMismatch(NodeError):
    """A password or PIN did not match the stored secret."""
    pass

class ActionDisabled(NodeError):
    """A user-mode action was requested that the master has not enabled."""
    pass

class LockdownActive(NodeError):
    """A user-mode action was requested while the node is in lockdown."""
    pass

# --- Custom Exception for Transition Failures ---
class TransitionCallbackError(NodeError):
    """Custom exception to be raised from 'before' callbacks on failure."""
    pass


def verify_secret(expected: str, provided: str, label: str = "secret") -> None:
    """
    Exact-match comparison of a stored secret with user input.

    Secrets are kept as plain strings, so this is a verbatim comparison.

    Raises:
        AuthMismatch: if `provided` differs from `expected`.
    """
    if provided is None or provided != expected:
        raise AuthMismatch(f"{label} rejected")
