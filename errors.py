from acme import errors


class WorkerError(errors.Error):
    """Base class for every failure that aborts the worker."""


class ConfigurationError(WorkerError):
    pass


class CoordinatorError(WorkerError):
    """A call to the coordinator service failed."""

    def __init__(self, method, cause=None):
        self.method = method
        self.cause = cause
        super().__init__(f"Coordinator call '{method}' failed: {cause}")


class ChallengeTypeNotFound(WorkerError):
    """An authorization did not offer a dns-01 challenge."""

    def __init__(self, domain):
        self.domain = domain
        super().__init__(f"Unable to find dns-01 challenge for '{domain}'.")


class ChallengeVerificationError(WorkerError):
    pass


class PropagationTimeout(WorkerError):
    """A TXT record was not seen in public DNS before the deadline."""

    def __init__(self, keys, timeout):
        self.keys = list(keys)
        self.timeout = timeout
        super().__init__(f"TXT records {self.keys} not propagated within {timeout}s")


class FinalizationError(WorkerError):
    pass
