"""1-bit branch predictor with a branch target buffer."""

from __future__ import annotations
from enum import Enum
from typing import Dict, Optional, Tuple

from .isa import looks_like_control_flow
from .utils import to_unsigned_32


class MispredictKind(Enum):
    DIRECTION = "direction"
    TARGET = "target"


def classify_misprediction(predicted_taken: bool, predicted_target: int,
                           actually_taken: bool, actual_target: int
                           ) -> Optional[MispredictKind]:
    """Compare a resolved branch/jump against the prediction made at fetch."""
    if predicted_taken != actually_taken:
        return MispredictKind.DIRECTION
    if actually_taken and predicted_target != actual_target:
        return MispredictKind.TARGET
    return None


class BranchPredictor:
    """
    Last-outcome (1-bit) history table plus branch target buffer, both
    indexed by the full instruction address and never evicted.

    The BTB is only written when a branch resolves taken, so an address
    that later resolves not-taken keeps its stale target. The stale entry
    still counts as a BTB hit at fetch, but its target is only used when
    the history says taken.
    """

    def __init__(self):
        self.history: Dict[int, bool] = {}
        self.targets: Dict[int, int] = {}
        self.predictions = 0
        self.resolved = 0
        self.direction_mispredictions = 0
        self.target_mispredictions = 0

    def in_btb(self, pc: int) -> bool:
        return pc in self.targets

    def predict_taken(self, pc: int) -> bool:
        """Return True if the instruction at *pc* is predicted taken."""
        self.predictions += 1
        return self.history.get(pc, False)

    def predicted_target(self, pc: int) -> int:
        return self.targets.get(pc, to_unsigned_32(pc + 4))

    def predict(self, pc: int, word: int) -> Tuple[bool, int]:
        """
        Fetch-time prediction for the instruction *word* at *pc*.
        Returns (predicted_taken, predicted_target); the target is the
        fall-through address unless a taken prediction hits the BTB.
        """
        fall_through = to_unsigned_32(pc + 4)
        if self.in_btb(pc):
            if self.predict_taken(pc):
                return True, self.predicted_target(pc)
            return False, fall_through
        if looks_like_control_flow(word):
            # Direction only; an unknown target is corrected at resolution.
            return self.predict_taken(pc), fall_through
        return False, fall_through

    def update(self, pc: int, actually_taken: bool, actual_target: int,
               mispredicted: Optional[MispredictKind] = None):
        """Train on a resolved branch/jump and track accuracy."""
        self.history[pc] = actually_taken
        if actually_taken:
            self.targets[pc] = to_unsigned_32(actual_target)

        self.resolved += 1
        if mispredicted is MispredictKind.DIRECTION:
            self.direction_mispredictions += 1
        elif mispredicted is MispredictKind.TARGET:
            self.target_mispredictions += 1

    @property
    def mispredictions(self) -> int:
        return self.direction_mispredictions + self.target_mispredictions

    @property
    def accuracy(self) -> float:
        if self.resolved == 0:
            return 0.0
        return 1.0 - self.mispredictions / self.resolved

    def stats(self) -> dict:
        return {
            "predictions": self.predictions,
            "resolved": self.resolved,
            "mispredictions": self.mispredictions,
            "direction_mispredictions": self.direction_mispredictions,
            "target_mispredictions": self.target_mispredictions,
            "history": dict(sorted(self.history.items())),
            "targets": dict(sorted(self.targets.items())),
        }
