class TransitError(Exception):
    """Base class for precondition failures raised by the transit core."""


class EmptyIndex(TransitError):
    def __init__(self):
        super().__init__("No stops are configured.")


class EmptyCatalog(TransitError):
    def __init__(self):
        super().__init__("No routes are configured.")


class InvalidKind(TransitError, ValueError):
    def __init__(self, kind):
        self.kind = kind
        super().__init__(f"Unknown report type: {kind!r}")


class DuplicateIdentifier(TransitError, ValueError):
    def __init__(self, collection: str, identifier: str):
        super().__init__(f"Duplicate {collection} id: {identifier!r}")


class UnknownStop(TransitError, KeyError):
    def __str__(self):
        return f"Stop not found: {self.args[0]!r}"


class UnknownRoute(TransitError, KeyError):
    def __str__(self):
        return f"Route not found: {self.args[0]!r}"
