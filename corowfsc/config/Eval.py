from dataclasses import dataclass


@dataclass
class Eval:
    """
    A configuration value computed from a Python expression on first access.

    The expression sees numpy, math and corowfsc as `np`, `math` and
    `corowfsc`, and the parameters being loaded as `mp`, so one value may be
    derived from another (`Nact: !eval mp.dm1.Nact`).
    """

    globals: dict
    """Names visible to the expression as globals, e.g. `{"np": numpy}`."""

    locals: dict
    """
    Names visible to the expression as locals.

    The loader fills in `mp` after the record exists, so this dictionary is
    deliberately shared and mutated after construction.
    """

    code: str
    "Expression source."

    in_progress = False
    "Set while the expression runs; a re-entrant access means a cycle."

    def evaluate(self):
        """Run the expression and return its value."""
        if self.in_progress:
            raise ValueError("Circular parameter evaluation dependency "
                             "detected in expression %r." % self.code)

        self.in_progress = True
        try:
            return eval(self.code, self.globals, self.locals)
        finally:
            self.in_progress = False
