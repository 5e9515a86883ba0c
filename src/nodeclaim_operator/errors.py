"""Error types raised during NodeClaim reconciliation."""


class OperatorError(Exception):
    """Base class for operator errors."""


class ClaimNotFoundError(OperatorError):
    """The NodeClaim no longer exists."""


class InstanceNotFoundError(OperatorError):
    """The Scaleway instance no longer exists."""


class ConflictError(OperatorError):
    """The NodeClaim was modified since it was read."""


class InstanceBusyError(OperatorError):
    """The instance is in a transitional state and cannot be released yet."""

    def __init__(self, instance_id, state):
        super().__init__(f"instance {instance_id} is {state}, retry later")
        self.instance_id = instance_id
        self.state = state


class ValidationError(OperatorError):
    """The NodeClaim cannot be acted on until its spec changes."""


class MissingRequirementError(ValidationError):
    def __init__(self, claim_name, key):
        super().__init__(f"nodeclaim {claim_name!r} does not have required label {key!r}")
        self.claim_name = claim_name
        self.key = key


class UnsupportedInstanceTypeError(ValidationError):
    def __init__(self, instance_type):
        super().__init__(f"unsupported instance type: {instance_type}")
        self.instance_type = instance_type


class BootstrapTokenError(OperatorError):
    """No bootstrap token could be resolved."""
