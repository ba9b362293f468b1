"""Engine exceptions."""


class FieldnetError(Exception):
    """Base class for monitoring engine errors."""


class UnknownNodeError(FieldnetError):
    def __init__(self, node_id: str):
        super().__init__(f"Unknown node: {node_id}")
        self.node_id = node_id


class RuleConfigError(FieldnetError):
    """A hazard rule cannot be evaluated as configured."""


class PublishError(FieldnetError):
    """An alert record could not be handed to the external store."""
