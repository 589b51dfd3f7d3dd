class PartitionError(ValueError):
    """A partition violates disjointness, coverage, or lacks a required subset."""


class LeakageError(RuntimeError):
    """A pipeline stage was asked to use rows already consumed by another stage."""


class TestSetReusedError(LeakageError):
    """The held-out rows were evaluated more than once."""

    # Keep pytest from collecting this as a test class.
    __test__ = False
