"""Base transformation plus the building blocks used to declare reversals."""

import logging


class Transformation:
    """A step that mutates a TransformWork and knows how to undo itself."""

    def transform(self, work):
        raise NotImplementedError

    def reverse(self):
        raise NotImplementedError

    def describe(self):
        return type(self).__name__


class IntentionalNoop(Transformation):
    """A transformation that does nothing, on purpose."""

    def transform(self, work):
        logging.debug(f"Skipping intentional no-op for message of {len(work.message)} chars.")

    def reverse(self):
        return self

    def describe(self):
        return "noop"

    def __eq__(self, other):
        return isinstance(other, IntentionalNoop)

    def __hash__(self):
        return hash(IntentionalNoop)


class ExplicitReversal(Transformation):
    """
    Pairs a transformation with an explicitly declared inverse.

    Applying it runs `forward`; reversing it hands back `reverse_of` instead of
    trying to derive an inverse.
    """

    def __init__(self, forward, reverse_of):
        self.forward = forward
        self.reverse_of = reverse_of

    def transform(self, work):
        self.forward.transform(work)

    def reverse(self):
        return self.reverse_of

    def describe(self):
        return self.forward.describe()

    def __repr__(self):
        return f"ExplicitReversal(forward={self.forward!r}, reverse={self.reverse_of!r})"

    def __eq__(self, other):
        return (
            isinstance(other, ExplicitReversal)
            and self.forward == other.forward
            and self.reverse_of == other.reverse_of
        )

    def __hash__(self):
        return hash((self.forward, self.reverse_of))
