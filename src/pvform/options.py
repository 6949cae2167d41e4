"""
Contains the options to configure how validation passes of a binding interact with each other.
"""
from dataclasses import dataclass


@dataclass(frozen=True)
class BindingOptions:
    """
    Configures the behaviour of the validation passes of one binding.
    By default, passes run concurrently and the last pass to finish wins for the fields it touches.
    """

    serialize_passes: bool = False
    """
    If True, the passes of a binding run one after another in the order they got triggered. This closes the race
    between a whole-model pass and a field pass on the same field.
    """
    discard_stale_results: bool = False
    """
    If True, a pass doesn't commit results for fields covered by a newer pass (triggered after it) which already
    committed. A failed pass commits nothing and supersedes nothing.
    """


DEFAULT_OPTIONS = BindingOptions()
