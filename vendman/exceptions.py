"""Custom exceptions for vendman."""


class VendmanError(Exception):
    """Base exception for all vendman errors."""

    category = "error"


# ── Workspace / manifest ─────────────────────────────────────────────


class NotInitializedError(VendmanError):
    """Raised when the managed root or its manifest does not exist."""

    category = "not initialized"

    def __init__(self, root):
        self.root = root
        super().__init__(f"No vendman workspace at {root}. Run `vendman init` first.")


class CorruptManifestError(VendmanError):
    """Raised when the manifest exists but does not match the schema."""

    category = "corrupt manifest"


class ManifestIOError(VendmanError):
    """Raised when the manifest or workspace cannot be read or written."""

    category = "io error"


class InvalidLocatorError(VendmanError, ValueError):
    """Raised when no dependency name can be derived from a locator."""

    category = "invalid locator"


class DependencyNotFoundError(VendmanError, KeyError):
    """Raised when a named dependency is not declared in the manifest."""

    category = "unknown dependency"

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"No dependency named '{name}' in the manifest")

    def __str__(self) -> str:
        return self.args[0]


class LockTimeoutError(VendmanError, TimeoutError):
    """Raised when the workspace lock cannot be acquired within the timeout."""

    category = "locked"


# ── Source control provider ──────────────────────────────────────────


class ProviderError(VendmanError):
    """Base exception for failures reported by the source control provider."""

    category = "source control"


class CloneFailedError(ProviderError):
    """Raised when cloning a dependency fails."""

    category = "clone failed"


class SourceUnavailableError(CloneFailedError):
    """Raised when the source repository cannot be found or reached."""

    category = "source unavailable"


class AuthFailedError(CloneFailedError):
    """Raised when the remote rejects or requires credentials."""

    category = "authentication failed"


class PathConflictError(CloneFailedError):
    """Raised when the clone destination already exists."""

    category = "path conflict"


class NetworkError(ProviderError):
    """Raised when a fetch cannot talk to the remote."""

    category = "network error"


class RemoteNotFoundError(ProviderError):
    """Raised when the named remote is not configured in the clone."""

    category = "remote not found"


class InvalidRefError(ProviderError):
    """Raised when a branch or ref cannot be resolved."""

    category = "invalid ref"


class DirtyWorkingTreeError(ProviderError):
    """Raised when local modifications block a checkout."""

    category = "dirty working tree"


class EmptyRepositoryError(ProviderError):
    """Raised when a repository has no commits yet."""

    category = "empty repository"


class WorkspaceMissingError(ProviderError):
    """Raised when a dependency's workspace directory is absent or not a repository."""

    category = "workspace missing"
